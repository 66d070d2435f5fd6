"""
Candidate match repository for TalentMatch.

Stores one ``CandidateMatches`` document per candidate with the job
postings that currently fit them best.
"""

from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

from talentmatch.data.models.base import utc_now
from talentmatch.data.models.match import CandidateMatchEntry, CandidateMatches
from talentmatch.utils.constants import CANDIDATE_MATCHES_COLLECTION
from talentmatch.utils.logger import get_logger

from .base import BaseRepository, translate_errors

logger = get_logger(__name__)


class CandidateMatchRepository(BaseRepository[CandidateMatches]):
    """Repository for stored candidate-to-job matches."""

    @property
    def collection_name(self) -> str:
        return CANDIDATE_MATCHES_COLLECTION

    @property
    def model_class(self) -> type[CandidateMatches]:
        return CandidateMatches

    async def get_by_candidate_async(self, candidate_id: str | ObjectId) -> Optional[CandidateMatches]:
        return await self.find_one_async({"candidate_id": self._to_object_id(candidate_id)})

    async def replace_matches_async(
        self,
        candidate_id: str | ObjectId,
        entries: list[CandidateMatchEntry],
    ) -> CandidateMatches:
        """Upsert the match list of a candidate, replacing any previous entries."""
        now = utc_now()
        candidate_oid = self._to_object_id(candidate_id)
        with translate_errors(f"store {self.collection_name}"):
            document = await self.collection.find_one_and_update(
                {"candidate_id": candidate_oid},
                {
                    "$set": {
                        "matches": [e.model_dump() for e in entries],
                        "last_updated": now,
                        "updated_at": now,
                    },
                    "$setOnInsert": {"candidate_id": candidate_oid, "created_at": now},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        logger.debug(f"Stored {len(entries)} job matches for candidate {candidate_id}")
        return self._to_model(document)


_candidate_match_repository: Optional[CandidateMatchRepository] = None


def get_candidate_match_repository() -> CandidateMatchRepository:
    """Get the candidate match repository singleton instance."""
    global _candidate_match_repository
    if _candidate_match_repository is None:
        _candidate_match_repository = CandidateMatchRepository()
    return _candidate_match_repository
