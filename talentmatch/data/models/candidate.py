"""
Candidate data models for TalentMatch.

Defines the candidate profile stored in the ``candidates`` collection,
its create schema, and the summary returned by match queries.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .base import BaseDocument, EmbeddedModel, PyObjectId, VectorMixin


def _clean_strings(values: list[str]) -> list[str]:
    """Strip entries and drop blanks, keeping the original order."""
    return [v.strip() for v in values if v and v.strip()]


class Candidate(BaseDocument, VectorMixin):
    """
    A candidate profile.

    ``name``, ``bio`` and ``skills`` feed the embedding text; ``experience``,
    ``role``, ``is_active`` and ``location`` are the structured attributes
    match filters run against.
    """

    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone_no: Optional[str] = None

    bio: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    experience: float = Field(default=0.0, ge=0)  # years
    role: list[str] = Field(default_factory=list)

    is_active: bool = True
    location: Optional[str] = None

    @field_validator("skills", "role")
    @classmethod
    def clean_lists(cls, v: list[str]) -> list[str]:
        return _clean_strings(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class CandidateCreate(BaseModel):
    """Schema for creating a new candidate."""

    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone_no: Optional[str] = None
    bio: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    experience: float = Field(default=0.0, ge=0)
    role: list[str] = Field(default_factory=list)
    is_active: bool = True
    location: Optional[str] = None


class CandidateSummary(EmbeddedModel):
    """One entry of a match result."""

    id: PyObjectId
    name: str
    bio: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    experience: float = 0.0
    role: list[str] = Field(default_factory=list)
    score: float

    @classmethod
    def from_document(cls, document: dict, score: float) -> "CandidateSummary":
        """
        Build a summary from a raw candidate document returned by the index.

        Missing or null attributes fall back to their defaults; values of
        the wrong type still raise ``ValidationError``.
        """
        return cls(
            id=document["_id"],
            name=document.get("name") or "",
            bio=document.get("bio"),
            skills=document.get("skills") or [],
            experience=document.get("experience") or 0.0,
            role=document.get("role") or [],
            score=score,
        )
