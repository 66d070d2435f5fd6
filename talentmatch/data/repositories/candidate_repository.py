"""
Candidate repository for TalentMatch.

Provides data access for candidate documents, including the reads and
vector writes performed by the embedding backfill.
"""

from typing import Any, Optional

from talentmatch.data.models.candidate import Candidate, CandidateCreate
from talentmatch.utils.constants import CANDIDATES_COLLECTION
from talentmatch.utils.logger import get_logger

from .base import WITHOUT_VECTOR, VectorRepository

logger = get_logger(__name__)


class CandidateRepository(VectorRepository[Candidate]):
    """Repository for candidate document operations."""

    @property
    def collection_name(self) -> str:
        return CANDIDATES_COLLECTION

    @property
    def model_class(self) -> type[Candidate]:
        return Candidate

    async def create_from_schema_async(self, data: CandidateCreate) -> Candidate:
        """Create a candidate from a create schema. The vector starts absent."""
        return await self.create_async(Candidate(**data.model_dump()))

    async def get_by_email_async(self, email: str) -> Optional[Candidate]:
        return await self.find_one_async({"email": email.lower()})

    async def list_async(self, skip: int = 0, limit: int = 100) -> list[Candidate]:
        """Page through candidates without loading their vectors."""
        return await self.find_async({}, skip=skip, limit=limit, projection=WITHOUT_VECTOR)

    async def list_active_ids_async(self) -> list[str]:
        """Ids of candidates open to new job matches."""
        return await self.list_ids_async({"is_active": True})

    async def list_for_embedding_async(
        self,
        model_version: str,
        only_stale: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Raw candidate documents the backfill should (re-)embed.

        Args:
            model_version: Tag of the deployed embedding model.
            only_stale: Restrict to candidates without a vector from
                that model.

        Returns:
            Unvalidated documents without their vector payload, oldest
            first. The caller validates each one with ``parse_document``.
        """
        query = self.stale_vector_query(model_version) if only_stale else {}
        documents = await self.find_documents_async(
            query,
            limit=0,
            sort_by="created_at",
            sort_order=1,
            projection=WITHOUT_VECTOR,
        )
        logger.debug(
            f"Loaded {len(documents)} candidates for embedding (only_stale={only_stale})"
        )
        return documents


_candidate_repository: Optional[CandidateRepository] = None


def get_candidate_repository() -> CandidateRepository:
    """Get the candidate repository singleton instance."""
    global _candidate_repository
    if _candidate_repository is None:
        _candidate_repository = CandidateRepository()
    return _candidate_repository
