"""
Batch refresh of candidate embeddings.

Re-embeds candidate profiles with a bounded worker pool and writes the
vectors back onto the candidate records. Each record is processed in
isolation: a failure is recorded in the report and the batch carries on.
"""

from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional

from talentmatch.data.models import Candidate, RefreshOutcome, RefreshReport
from talentmatch.data.models.base import utc_now
from talentmatch.data.repositories import CandidateRepository, get_candidate_repository
from talentmatch.ml.embeddings import Embedder, candidate_embedding_text, get_embedding_model
from talentmatch.utils.concurrency import bounded_map
from talentmatch.utils.config import get_settings
from talentmatch.utils.exceptions import RecordNotFound, TalentMatchError
from talentmatch.utils.logger import audit_log, get_logger

logger = get_logger(__name__)


async def capture_outcome(
    record_id: str,
    label: Optional[str],
    operation: Callable[[], Awaitable[Any]],
) -> RefreshOutcome:
    """Run one record's work and turn its result or error into an outcome."""
    try:
        await operation()
    except TalentMatchError as e:
        logger.warning(f"Record {record_id} failed: [{e.error_code}] {e.message}")
        return RefreshOutcome(
            record_id=record_id,
            label=label,
            success=False,
            error_kind=e.error_code,
            error=e.message,
        )
    except Exception as e:
        logger.exception(f"Unexpected error while processing record {record_id}")
        return RefreshOutcome(
            record_id=record_id,
            label=label,
            success=False,
            error_kind=type(e).__name__,
            error=str(e),
        )
    return RefreshOutcome(record_id=record_id, label=label, success=True)


class CandidateEmbeddingRefresher:
    """Backfills ``vector`` / ``vector_model`` on candidate records."""

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        repository: Optional[CandidateRepository] = None,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self._embedder = embedder
        self._repository = repository
        self.concurrency = concurrency or settings.matching.refresh_concurrency
        self.timeout = timeout if timeout is not None else settings.ml.embedding_timeout_seconds

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = get_embedding_model()
        return self._embedder

    @property
    def repository(self) -> CandidateRepository:
        if self._repository is None:
            self._repository = get_candidate_repository()
        return self._repository

    async def _embed_and_store(self, candidate: Candidate) -> None:
        text = candidate_embedding_text(candidate)
        vector = await self.embedder.embed_async(
            text, timeout=self.timeout, wait_on_timeout=True
        )
        written = await self.repository.set_vector_async(
            candidate.id, vector, self.embedder.model_version
        )
        if not written:
            raise RecordNotFound(
                f"Candidate {candidate.id} disappeared before its vector was stored",
                details={"candidate_id": str(candidate.id)},
            )

    async def refresh_one(self, candidate: Candidate | Mapping[str, Any]) -> RefreshOutcome:
        """
        Embed one candidate and store the vector; never raises.

        A raw document is validated as part of the record's own work, so
        a malformed record fails alone with ``InvalidInput``.
        """
        if isinstance(candidate, Candidate):
            record_id, label = str(candidate.id), candidate.name
        else:
            record_id = str(candidate.get("_id"))
            name = candidate.get("name")
            label = name if isinstance(name, str) else None

        async def operation() -> None:
            if isinstance(candidate, Candidate):
                model = candidate
            else:
                model = self.repository.parse_document(candidate)
            await self._embed_and_store(model)

        return await capture_outcome(record_id, label, operation)

    async def refresh_all(self, only_stale: bool = False) -> RefreshReport:
        """
        Re-embed every candidate, or only those with a missing/stale vector.

        Returns:
            RefreshReport with one outcome per candidate.

        Raises:
            IndexUnavailable: if the candidates cannot be listed.
        """
        started_at = utc_now()
        model_version = self.embedder.model_version
        documents = await self.repository.list_for_embedding_async(
            model_version, only_stale=only_stale
        )
        logger.info(
            f"Refreshing embeddings for {len(documents)} candidates "
            f"(model={model_version}, concurrency={self.concurrency})"
        )

        outcomes = await bounded_map(documents, self.refresh_one, self.concurrency)

        report = RefreshReport(
            job="candidate_embeddings",
            model_version=model_version,
            outcomes=outcomes,
            started_at=started_at,
            finished_at=utc_now(),
        )
        logger.info(
            f"Embedding refresh finished: {report.succeeded} succeeded, "
            f"{report.failed} failed in {report.duration_seconds:.1f}s"
        )
        audit_log(
            "candidate_embeddings_refreshed",
            {
                "model_version": model_version,
                "only_stale": only_stale,
                "total": report.total,
                "succeeded": report.succeeded,
                "failed": report.failed,
            },
            audit_type="BATCH",
        )
        return report


_candidate_refresher: Optional[CandidateEmbeddingRefresher] = None


def get_candidate_refresher() -> CandidateEmbeddingRefresher:
    """Get the embedding refresher singleton instance."""
    global _candidate_refresher
    if _candidate_refresher is None:
        _candidate_refresher = CandidateEmbeddingRefresher()
    return _candidate_refresher
