"""
Candidate matcher.

Ranks candidates against a job description: the description is embedded,
an over-fetched pool of nearest candidates is pulled from the vector
index, structured filters are applied to that pool, and the survivors
are truncated to the requested limit in similarity order.
"""

import math
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from talentmatch.data.models import (
    CandidateSummary,
    JobQuery,
    MatchFilter,
    MatchResult,
)
from talentmatch.ml.embeddings import (
    Embedder,
    VectorIndex,
    get_candidate_index,
    get_embedding_model,
    normalize_vector,
)
from talentmatch.utils.concurrency import with_timeout
from talentmatch.utils.config import MatchingSettings, get_settings
from talentmatch.utils.exceptions import EmbeddingFailure, InvalidInput
from talentmatch.utils.logger import audit_log, get_logger

from .selection import select_hits

logger = get_logger(__name__)

FilterInput = Optional[MatchFilter | Mapping[str, Any]]


class CandidateMatcher:
    """
    Semantic candidate retrieval with hard attribute filters.

    Any failure of the embedding model or the index aborts the query;
    a query that simply matches nobody returns an empty ``MatchResult``.
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        index: Optional[VectorIndex] = None,
        settings: Optional[MatchingSettings] = None,
        embedding_timeout: Optional[float] = None,
    ):
        """
        Initialize the matcher.

        Args:
            embedder: Embedding service. Defaults to the shared model.
            index: Candidate vector index. Defaults to the configured backend.
            settings: Matching settings. Defaults to config.
            embedding_timeout: Seconds allowed for embedding the query.
        """
        app_settings = get_settings()
        self._embedder = embedder
        self._index = index
        self.settings = settings or app_settings.matching
        self.embedding_timeout = (
            embedding_timeout
            if embedding_timeout is not None
            else app_settings.ml.embedding_timeout_seconds
        )

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = get_embedding_model()
        return self._embedder

    @property
    def index(self) -> VectorIndex:
        if self._index is None:
            self._index = get_candidate_index()
        return self._index

    # -------------------------------------------------------------------------
    # Query Parameters
    # -------------------------------------------------------------------------

    def resolve_limit(self, limit: Optional[int]) -> int:
        """Default or validate a requested result limit."""
        if limit is None:
            return self.settings.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInput(
                f"Limit must be a positive integer, got {limit!r}",
                details={"limit": repr(limit)},
            )
        return limit

    def fetch_size_for(self, limit: int) -> int:
        """Pool size pulled from the index for a given limit; always > limit."""
        return max(
            math.ceil(limit * self.settings.fetch_multiplier),
            self.settings.min_fetch_size,
            limit + 1,
        )

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    async def match(
        self,
        job_description: str,
        filters: FilterInput = None,
        limit: Optional[int] = None,
    ) -> MatchResult:
        """
        Find the candidates best matching a job description.

        Args:
            job_description: Free-text job description.
            filters: ``MatchFilter`` or a mapping such as
                ``{"min_experience": 3, "role": "DevOps"}``.
            limit: Maximum number of candidates. Defaults to config.

        Returns:
            MatchResult ordered by descending similarity.

        Raises:
            InvalidInput: blank description, bad limit or malformed filter.
            EmbeddingFailure: the description could not be embedded.
            IndexUnavailable: the candidate index could not be queried.
            OperationTimeout: embedding or search exceeded its budget.
        """
        limit = self.resolve_limit(limit)
        match_filter = MatchFilter.coerce(filters)

        try:
            query = JobQuery(description=job_description, filters=match_filter, limit=limit)
        except ValidationError as e:
            raise InvalidInput(
                "Invalid job query",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        query_vector = await self.embedder.embed_async(
            query.description, timeout=self.embedding_timeout
        )
        return await self.match_vector(
            query_vector,
            filters=query.filters,
            limit=query.limit,
            query_label=query.description,
        )

    async def match_vector(
        self,
        query_vector: Sequence[float],
        filters: FilterInput = None,
        limit: Optional[int] = None,
        query_label: str = "",
    ) -> MatchResult:
        """
        Rank candidates against an already computed query vector.

        The vector must come from the embedder's current model; it is
        re-normalised before searching.
        """
        limit = self.resolve_limit(limit)
        match_filter = MatchFilter.coerce(filters)
        model_version = self.embedder.model_version

        try:
            vector = normalize_vector(query_vector, self.embedder.dimension)
        except EmbeddingFailure as e:
            raise InvalidInput(f"Unusable query vector: {e.message}", details=e.details) from e

        fetch_size = self.fetch_size_for(limit)
        hits = await with_timeout(
            self.index.search(vector, fetch_size, model_version),
            self.settings.query_timeout_seconds,
            "candidate search",
        )

        result = MatchResult(
            query=query_label,
            model_version=model_version,
            candidates=select_hits(
                hits,
                match_filter,
                limit,
                CandidateSummary.from_document,
                min_score=self.settings.min_score,
            ),
            pool_size=len(hits),
        )

        logger.info(
            f"Matched {len(result)} of {len(hits)} pooled candidates "
            f"(limit={limit}, fetch={fetch_size})"
        )
        audit_log(
            "candidates_matched",
            {
                "query": query_label[:100],
                "model_version": model_version,
                "filters": match_filter.model_dump(exclude_defaults=True),
                "limit": limit,
                "pool_size": len(hits),
                "candidate_ids": result.candidate_ids,
            },
        )
        return result


_candidate_matcher: Optional[CandidateMatcher] = None


def get_candidate_matcher() -> CandidateMatcher:
    """Get the candidate matcher singleton instance."""
    global _candidate_matcher
    if _candidate_matcher is None:
        _candidate_matcher = CandidateMatcher()
    return _candidate_matcher
