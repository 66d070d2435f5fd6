"""Selection of the final results from an over-fetched search pool."""

from typing import Callable, Iterable, Optional, TypeVar

from pydantic import ValidationError

from talentmatch.data.models import RecordFilter
from talentmatch.ml.embeddings import SearchHit
from talentmatch.utils.logger import get_logger

logger = get_logger(__name__)

S = TypeVar("S")


def clamp_score(score: float) -> float:
    """Bound a similarity to the stored score range [-1, 1]."""
    return max(-1.0, min(1.0, score))


def select_hits(
    hits: Iterable[SearchHit],
    record_filter: RecordFilter,
    limit: int,
    summarize: Callable[[dict, float], S],
    min_score: Optional[float] = None,
) -> list[S]:
    """
    Filter the pool and keep the best ``limit`` records in score order.

    Scanning stops at the first hit scoring below ``min_score``. A stored
    document that cannot be summarised is logged and skipped, and the
    next hit takes its place.
    """
    ranked = sorted(hits, key=lambda h: h.score, reverse=True)

    selected: list[S] = []
    for hit in ranked:
        if len(selected) == limit:
            break
        if min_score is not None and hit.score < min_score:
            break
        if not record_filter.matches(hit.document):
            continue
        try:
            selected.append(summarize(hit.document, hit.score))
        except ValidationError as e:
            logger.warning(
                f"Skipping malformed record {hit.document.get('_id')}: "
                f"{e.error_count()} invalid field(s)"
            )
    return selected
