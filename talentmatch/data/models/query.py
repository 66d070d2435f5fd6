"""
Query-side models: structured filters and the per-request job query.

Filters are evaluated against raw documents returned by the vector
indexes, using MongoDB's matching rules for array-valued attributes: a
predicate holds when any element of the array satisfies it.
"""

import operator
from collections.abc import Mapping
from typing import Any, ClassVar, Optional

from pydantic import (
    AliasChoices,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from talentmatch.utils.constants import VECTOR_FIELD, FilterOperator
from talentmatch.utils.exceptions import InvalidInput

from .base import EmbeddedModel

_MISSING = object()

_COMPARATORS = {
    FilterOperator.EQ: operator.eq,
    FilterOperator.GT: operator.gt,
    FilterOperator.GTE: operator.ge,
    FilterOperator.LT: operator.lt,
    FilterOperator.LTE: operator.le,
}


def _lookup(record: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path such as ``social_links.github``."""
    current: Any = record
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


class AttributePredicate(EmbeddedModel):
    """A single ``field <operator> value`` condition."""

    model_config = ConfigDict(use_enum_values=False)

    field: str = Field(..., min_length=1)
    operator: FilterOperator = FilterOperator.EQ
    value: Any = None

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        v = v.strip()
        if v.startswith("$") or v.split(".")[0] == VECTOR_FIELD:
            raise ValueError(f"Cannot filter on field: {v}")
        return v

    @model_validator(mode="after")
    def validate_value(self) -> "AttributePredicate":
        if self.operator == FilterOperator.IN and not isinstance(self.value, (list, tuple, set)):
            raise ValueError("'in' predicates need a list value")
        return self

    def evaluate(self, record: Mapping[str, Any]) -> bool:
        """Check this predicate against one candidate document."""
        actual = _lookup(record, self.field)
        if actual is _MISSING or actual is None:
            return self.operator == FilterOperator.NE

        values = actual if isinstance(actual, list) else [actual]

        if self.operator == FilterOperator.NE:
            return all(v != self.value for v in values)
        if self.operator == FilterOperator.IN:
            return any(v in self.value for v in values)

        compare = _COMPARATORS[self.operator]
        for v in values:
            try:
                if compare(v, self.value):
                    return True
            except TypeError:
                # Incomparable types (e.g. str vs float) never match
                continue
        return False


class RecordFilter(EmbeddedModel):
    """
    Common behaviour of the structured filters run over a search pool.

    Subclasses turn their named fields into predicates; ``predicates``
    holds anything the named fields do not cover. ``role`` is accepted as
    an alias of ``roles``.
    """

    model_config = ConfigDict(extra="forbid")

    filter_name: ClassVar[str] = "filter"

    roles: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("roles", "role"),
    )
    predicates: list[AttributePredicate] = Field(default_factory=list)

    @field_validator("roles", mode="before")
    @classmethod
    def wrap_single_role(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    @classmethod
    def coerce(cls, value: "RecordFilter | Mapping[str, Any] | None") -> "RecordFilter":
        """
        Build a filter from a mapping, an instance, or None.

        Raises:
            InvalidInput: if the mapping does not describe a valid filter.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise InvalidInput(
                f"Filter must be a mapping, got {type(value).__name__}"
            )
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            raise InvalidInput(
                f"Malformed {cls.filter_name}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def named_predicates(self) -> list[AttributePredicate]:
        if not self.roles:
            return []
        return [AttributePredicate(field="role", operator=FilterOperator.IN, value=list(self.roles))]

    def to_predicates(self) -> list[AttributePredicate]:
        """Flatten the named fields and extra predicates into one list."""
        return self.named_predicates() + list(self.predicates)

    @property
    def is_empty(self) -> bool:
        return not self.to_predicates()

    def matches(self, record: Mapping[str, Any]) -> bool:
        """True when every predicate holds for ``record``."""
        return all(p.evaluate(record) for p in self.to_predicates())


class MatchFilter(RecordFilter):
    """
    Structured constraints applied to the over-fetched candidate pool.

    The named fields cover the filters used by the job workflow. The
    legacy key ``experience`` is accepted for ``min_experience``.
    """

    filter_name: ClassVar[str] = "match filter"

    min_experience: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("min_experience", "experience"),
    )
    max_experience: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def check_experience_range(self) -> "MatchFilter":
        if (
            self.min_experience is not None
            and self.max_experience is not None
            and self.min_experience > self.max_experience
        ):
            raise ValueError("min_experience cannot exceed max_experience")
        return self

    def named_predicates(self) -> list[AttributePredicate]:
        predicates: list[AttributePredicate] = []
        if self.min_experience is not None:
            predicates.append(
                AttributePredicate(field="experience", operator=FilterOperator.GTE, value=self.min_experience)
            )
        if self.max_experience is not None:
            predicates.append(
                AttributePredicate(field="experience", operator=FilterOperator.LTE, value=self.max_experience)
            )
        predicates.extend(super().named_predicates())
        if self.is_active is not None:
            predicates.append(
                AttributePredicate(field="is_active", operator=FilterOperator.EQ, value=self.is_active)
            )
        return predicates


class JobFilter(RecordFilter):
    """
    Structured constraints applied to the over-fetched job posting pool.

    ``max_exp_req`` keeps postings that ask for at most that many years.
    ``fit_experience`` bounds ``exp_req`` by the candidate's own
    experience once ``for_candidate`` resolves it.
    """

    filter_name: ClassVar[str] = "job filter"

    max_exp_req: Optional[float] = Field(default=None, ge=0)
    fit_experience: bool = False

    def for_candidate(self, experience: float) -> "JobFilter":
        """The filter with ``fit_experience`` turned into a concrete bound."""
        if not self.fit_experience:
            return self
        bound = experience if self.max_exp_req is None else min(self.max_exp_req, experience)
        return self.model_copy(update={"max_exp_req": bound, "fit_experience": False})

    def named_predicates(self) -> list[AttributePredicate]:
        predicates: list[AttributePredicate] = []
        if self.max_exp_req is not None:
            predicates.append(
                AttributePredicate(field="exp_req", operator=FilterOperator.LTE, value=self.max_exp_req)
            )
        predicates.extend(super().named_predicates())
        return predicates


class JobQuery(EmbeddedModel):
    """A single search request; built per call and discarded afterwards."""

    description: str
    filters: MatchFilter = Field(default_factory=MatchFilter)
    limit: int = Field(..., ge=1)

    @field_validator("description")
    @classmethod
    def require_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Job description must not be empty")
        return v.strip()
