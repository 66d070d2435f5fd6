"""
Stored shortlists per job posting.

For each job posting the best matching candidates are kept in the
``job_matches`` collection together with a review status, so that the
recruiter workflow can show and update them without re-running a query.
"""

from collections.abc import Mapping
from typing import Any, Optional

from talentmatch.data.models import JobMatchEntry, JobMatches, JobPosting, MatchFilter, RefreshReport
from talentmatch.data.models.base import utc_now
from talentmatch.data.repositories import (
    JobRepository,
    MatchRepository,
    get_job_repository,
    get_match_repository,
)
from talentmatch.ml.embeddings import job_embedding_text
from talentmatch.utils.concurrency import bounded_map
from talentmatch.utils.config import get_settings
from talentmatch.utils.constants import MatchStatus
from talentmatch.utils.exceptions import InvalidInput, RecordNotFound
from talentmatch.utils.logger import audit_log, get_logger

from .candidate_matcher import CandidateMatcher, get_candidate_matcher
from .refresh import capture_outcome
from .selection import clamp_score

logger = get_logger(__name__)


class JobMatchService:
    """Maintains the persisted top matches of every job posting."""

    def __init__(
        self,
        matcher: Optional[CandidateMatcher] = None,
        job_repository: Optional[JobRepository] = None,
        match_repository: Optional[MatchRepository] = None,
        concurrency: Optional[int] = None,
        max_stored_matches: Optional[int] = None,
    ):
        matching = get_settings().matching
        self._matcher = matcher
        self._job_repository = job_repository
        self._match_repository = match_repository
        self.concurrency = concurrency or matching.refresh_concurrency
        self.max_stored_matches = max_stored_matches or matching.max_stored_matches

    @property
    def matcher(self) -> CandidateMatcher:
        if self._matcher is None:
            self._matcher = get_candidate_matcher()
        return self._matcher

    @property
    def job_repository(self) -> JobRepository:
        if self._job_repository is None:
            self._job_repository = get_job_repository()
        return self._job_repository

    @property
    def match_repository(self) -> MatchRepository:
        if self._match_repository is None:
            self._match_repository = get_match_repository()
        return self._match_repository

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_job(self, job_id: str) -> JobPosting:
        job = await self.job_repository.get_by_id_async(job_id)
        if job is None:
            raise RecordNotFound(f"Job posting not found: {job_id}", details={"job_id": str(job_id)})
        return job

    async def _job_vector(self, job: JobPosting) -> list[float]:
        """The job's stored vector if current, otherwise a fresh one (persisted)."""
        embedder = self.matcher.embedder
        model_version = embedder.model_version

        if job.is_vector_current(model_version, embedder.dimension):
            return job.vector

        logger.info(f"Embedding job posting {job.id} with {model_version}")
        vector = await embedder.embed_async(
            job_embedding_text(job),
            timeout=self.matcher.embedding_timeout,
            wait_on_timeout=True,
        )
        await self.job_repository.set_vector_async(job.id, vector, model_version)
        return vector

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def refresh_job_matches(
        self,
        job_id: str,
        filters: Optional[MatchFilter | Mapping[str, Any]] = None,
    ) -> JobMatches:
        """
        Recompute and store the shortlist of one job posting.

        Candidates that stay on the shortlist keep their status; new ones
        start as pending.

        Raises:
            RecordNotFound: if the job posting does not exist.
        """
        job = await self._get_job(job_id)
        vector = await self._job_vector(job)

        result = await self.matcher.match_vector(
            vector,
            filters=filters,
            limit=self.max_stored_matches,
            query_label=job.title,
        )

        existing = await self.match_repository.get_by_job_async(job.id)
        previous = {str(e.candidate_id): e.status for e in existing.matches} if existing else {}

        now = utc_now()
        entries = [
            JobMatchEntry(
                candidate_id=summary.id,
                match_score=clamp_score(summary.score),
                matched_at=now,
                status=previous.get(str(summary.id), MatchStatus.PENDING),
            )
            for summary in result.candidates
        ]

        stored = await self.match_repository.replace_matches_async(job.id, entries)
        logger.info(f"Stored {len(entries)} matches for job {job.id}")
        return stored

    async def refresh_all_job_matches(self) -> RefreshReport:
        """
        Refresh the shortlist of every job posting.

        Raises:
            IndexUnavailable: if the job postings cannot be listed.
        """
        started_at = utc_now()
        model_version = self.matcher.embedder.model_version
        job_ids = await self.job_repository.list_ids_async()
        logger.info(f"Refreshing matches for {len(job_ids)} job postings")

        async def refresh(job_id: str):
            return await capture_outcome(job_id, None, lambda: self.refresh_job_matches(job_id))

        outcomes = await bounded_map(job_ids, refresh, self.concurrency)

        report = RefreshReport(
            job="job_matches",
            model_version=model_version,
            outcomes=outcomes,
            started_at=started_at,
            finished_at=utc_now(),
        )
        logger.info(
            f"Job match refresh finished: {report.succeeded} succeeded, {report.failed} failed"
        )
        audit_log(
            "job_matches_refreshed",
            {"total": report.total, "succeeded": report.succeeded, "failed": report.failed},
            audit_type="BATCH",
        )
        return report

    async def mark_candidate_applied(self, job_id: str, candidate_id: str) -> JobMatches:
        """
        Flag a shortlisted candidate as having applied.

        Raises:
            RecordNotFound: if the job has no stored matches or the
                candidate is not among them.
        """
        updated = await self.match_repository.set_status_async(
            job_id, candidate_id, MatchStatus.APPLIED
        )
        if updated is None:
            raise RecordNotFound(
                f"Candidate {candidate_id} is not shortlisted for job {job_id}",
                details={"job_id": str(job_id), "candidate_id": str(candidate_id)},
            )

        audit_log(
            "candidate_marked_applied",
            {"job_id": str(job_id), "candidate_id": str(candidate_id)},
            audit_type="OVERRIDE",
        )
        return updated

    async def get_job_matches(
        self,
        job_id: str,
        status: Optional[MatchStatus | str] = None,
    ) -> list[JobMatchEntry]:
        """Stored entries of a job, best first, optionally only one status."""
        if status is not None:
            try:
                status = MatchStatus(status)
            except ValueError as e:
                raise InvalidInput(f"Unknown match status: {status!r}") from e

        stored = await self.match_repository.get_by_job_async(job_id)
        if stored is None:
            return []
        return stored.with_status(status)


_job_match_service: Optional[JobMatchService] = None


def get_job_match_service() -> JobMatchService:
    """Get the job match service singleton instance."""
    global _job_match_service
    if _job_match_service is None:
        _job_match_service = JobMatchService()
    return _job_match_service
