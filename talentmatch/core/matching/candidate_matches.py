"""
Job matches per candidate.

The reverse direction of the job shortlists: a candidate's profile
vector is searched against the job posting index, the over-fetched pool
is filtered, and the best postings are stored in the
``candidate_matches`` collection.
"""

from collections.abc import Mapping
from typing import Any, Optional

from talentmatch.data.models import (
    Candidate,
    CandidateMatchEntry,
    CandidateMatches,
    JobFilter,
    JobMatchResult,
    JobSummary,
    RefreshReport,
)
from talentmatch.data.models.base import utc_now
from talentmatch.data.repositories import (
    CandidateMatchRepository,
    CandidateRepository,
    get_candidate_match_repository,
    get_candidate_repository,
)
from talentmatch.ml.embeddings import VectorIndex, candidate_embedding_text, get_job_index
from talentmatch.utils.concurrency import bounded_map, with_timeout
from talentmatch.utils.config import get_settings
from talentmatch.utils.exceptions import RecordNotFound
from talentmatch.utils.logger import audit_log, get_logger

from .candidate_matcher import CandidateMatcher, get_candidate_matcher
from .refresh import capture_outcome
from .selection import clamp_score, select_hits

logger = get_logger(__name__)

JobFilterInput = Optional[JobFilter | Mapping[str, Any]]


class CandidateMatchService:
    """
    Finds and stores the job postings that fit each candidate.

    Embedding, limits and the over-fetch policy are shared with the
    candidate matcher, so both directions rank with the same model.
    """

    def __init__(
        self,
        matcher: Optional[CandidateMatcher] = None,
        job_index: Optional[VectorIndex] = None,
        candidate_repository: Optional[CandidateRepository] = None,
        match_repository: Optional[CandidateMatchRepository] = None,
        concurrency: Optional[int] = None,
        max_stored_matches: Optional[int] = None,
    ):
        matching = get_settings().matching
        self._matcher = matcher
        self._job_index = job_index
        self._candidate_repository = candidate_repository
        self._match_repository = match_repository
        self.concurrency = concurrency or matching.refresh_concurrency
        self.max_stored_matches = max_stored_matches or matching.max_stored_matches

    @property
    def matcher(self) -> CandidateMatcher:
        if self._matcher is None:
            self._matcher = get_candidate_matcher()
        return self._matcher

    @property
    def job_index(self) -> VectorIndex:
        if self._job_index is None:
            self._job_index = get_job_index()
        return self._job_index

    @property
    def candidate_repository(self) -> CandidateRepository:
        if self._candidate_repository is None:
            self._candidate_repository = get_candidate_repository()
        return self._candidate_repository

    @property
    def match_repository(self) -> CandidateMatchRepository:
        if self._match_repository is None:
            self._match_repository = get_candidate_match_repository()
        return self._match_repository

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_candidate(self, candidate_id: str) -> Candidate:
        candidate = await self.candidate_repository.get_by_id_async(candidate_id)
        if candidate is None:
            raise RecordNotFound(
                f"Candidate not found: {candidate_id}",
                details={"candidate_id": str(candidate_id)},
            )
        return candidate

    async def _candidate_vector(self, candidate: Candidate) -> list[float]:
        """The candidate's stored vector if current, otherwise a fresh one (persisted)."""
        embedder = self.matcher.embedder
        model_version = embedder.model_version

        if candidate.is_vector_current(model_version, embedder.dimension):
            return candidate.vector

        logger.info(f"Embedding candidate {candidate.id} with {model_version}")
        vector = await embedder.embed_async(
            candidate_embedding_text(candidate),
            timeout=self.matcher.embedding_timeout,
            wait_on_timeout=True,
        )
        await self.candidate_repository.set_vector_async(candidate.id, vector, model_version)
        return vector

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def match_jobs_for_candidate(
        self,
        candidate_id: str,
        filters: JobFilterInput = None,
        limit: Optional[int] = None,
    ) -> JobMatchResult:
        """
        Find the job postings best matching a candidate's profile.

        Args:
            candidate_id: Id of the candidate.
            filters: ``JobFilter`` or a mapping such as
                ``{"role": "DevOps", "fit_experience": True}``.
            limit: Maximum number of postings. Defaults to config.

        Returns:
            JobMatchResult ordered by descending similarity.

        Raises:
            InvalidInput: malformed id, bad limit or malformed filter.
            RecordNotFound: the candidate does not exist.
            EmbeddingFailure: the profile could not be embedded.
            IndexUnavailable: the job index could not be queried.
            OperationTimeout: embedding or search exceeded its budget.
        """
        settings = self.matcher.settings
        limit = self.matcher.resolve_limit(limit)
        job_filter = JobFilter.coerce(filters)

        candidate = await self._get_candidate(candidate_id)
        job_filter = job_filter.for_candidate(candidate.experience)
        vector = await self._candidate_vector(candidate)
        model_version = self.matcher.embedder.model_version

        fetch_size = self.matcher.fetch_size_for(limit)
        hits = await with_timeout(
            self.job_index.search(vector, fetch_size, model_version),
            settings.query_timeout_seconds,
            "job search",
        )

        result = JobMatchResult(
            query=candidate.name,
            model_version=model_version,
            jobs=select_hits(
                hits,
                job_filter,
                limit,
                JobSummary.from_document,
                min_score=settings.min_score,
            ),
            pool_size=len(hits),
        )

        logger.info(
            f"Matched {len(result)} of {len(hits)} pooled job postings for "
            f"candidate {candidate.id} (limit={limit}, fetch={fetch_size})"
        )
        audit_log(
            "jobs_matched",
            {
                "candidate_id": str(candidate.id),
                "model_version": model_version,
                "filters": job_filter.model_dump(exclude_defaults=True),
                "limit": limit,
                "pool_size": len(hits),
                "job_ids": result.job_ids,
            },
        )
        return result

    async def refresh_candidate_matches(
        self,
        candidate_id: str,
        filters: JobFilterInput = None,
    ) -> CandidateMatches:
        """
        Recompute and store the job matches of one candidate.

        Job shortlists are left untouched; they are owned by the job
        match refresh.

        Raises:
            RecordNotFound: if the candidate does not exist.
        """
        result = await self.match_jobs_for_candidate(
            candidate_id, filters=filters, limit=self.max_stored_matches
        )

        now = utc_now()
        entries = [
            CandidateMatchEntry(
                job_id=job.id,
                match_score=clamp_score(job.score),
                matched_at=now,
            )
            for job in result.jobs
        ]

        stored = await self.match_repository.replace_matches_async(candidate_id, entries)
        logger.info(f"Stored {len(entries)} job matches for candidate {candidate_id}")
        return stored

    async def refresh_all_candidate_matches(self) -> RefreshReport:
        """
        Refresh the job matches of every active candidate.

        Raises:
            IndexUnavailable: if the candidates cannot be listed.
        """
        started_at = utc_now()
        model_version = self.matcher.embedder.model_version
        candidate_ids = await self.candidate_repository.list_active_ids_async()
        logger.info(f"Refreshing job matches for {len(candidate_ids)} candidates")

        async def refresh(candidate_id: str):
            return await capture_outcome(
                candidate_id, None, lambda: self.refresh_candidate_matches(candidate_id)
            )

        outcomes = await bounded_map(candidate_ids, refresh, self.concurrency)

        report = RefreshReport(
            job="candidate_matches",
            model_version=model_version,
            outcomes=outcomes,
            started_at=started_at,
            finished_at=utc_now(),
        )
        logger.info(
            f"Candidate match refresh finished: {report.succeeded} succeeded, {report.failed} failed"
        )
        audit_log(
            "candidate_matches_refreshed",
            {"total": report.total, "succeeded": report.succeeded, "failed": report.failed},
            audit_type="BATCH",
        )
        return report

    async def get_candidate_matches(self, candidate_id: str) -> list[CandidateMatchEntry]:
        """Stored job matches of a candidate, best first."""
        stored = await self.match_repository.get_by_candidate_async(candidate_id)
        if stored is None:
            return []
        return list(stored.matches)


_candidate_match_service: Optional[CandidateMatchService] = None


def get_candidate_match_service() -> CandidateMatchService:
    """Get the candidate match service singleton instance."""
    global _candidate_match_service
    if _candidate_match_service is None:
        _candidate_match_service = CandidateMatchService()
    return _candidate_match_service
