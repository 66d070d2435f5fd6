"""
Match repository for TalentMatch.

Stores one ``JobMatches`` document per job posting with the shortlisted
candidates and their review status.
"""

from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

from talentmatch.data.models.base import utc_now
from talentmatch.data.models.match import JobMatchEntry, JobMatches
from talentmatch.utils.constants import JOB_MATCHES_COLLECTION, MatchStatus
from talentmatch.utils.logger import get_logger

from .base import BaseRepository, translate_errors

logger = get_logger(__name__)


class MatchRepository(BaseRepository[JobMatches]):
    """Repository for stored job shortlists."""

    @property
    def collection_name(self) -> str:
        return JOB_MATCHES_COLLECTION

    @property
    def model_class(self) -> type[JobMatches]:
        return JobMatches

    async def get_by_job_async(self, job_id: str | ObjectId) -> Optional[JobMatches]:
        return await self.find_one_async({"job_id": self._to_object_id(job_id)})

    async def replace_matches_async(
        self,
        job_id: str | ObjectId,
        entries: list[JobMatchEntry],
    ) -> JobMatches:
        """Upsert the shortlist of a job, replacing any previous entries."""
        now = utc_now()
        job_oid = self._to_object_id(job_id)
        with translate_errors(f"store {self.collection_name}"):
            document = await self.collection.find_one_and_update(
                {"job_id": job_oid},
                {
                    "$set": {
                        "matches": [e.model_dump() for e in entries],
                        "last_updated": now,
                        "updated_at": now,
                    },
                    "$setOnInsert": {"job_id": job_oid, "created_at": now},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        logger.debug(f"Stored {len(entries)} matches for job {job_id}")
        return self._to_model(document)

    async def set_status_async(
        self,
        job_id: str | ObjectId,
        candidate_id: str | ObjectId,
        status: MatchStatus,
    ) -> Optional[JobMatches]:
        """
        Change the status of one shortlisted candidate.

        Returns:
            The updated document, or None when the job has no stored
            entry for that candidate.
        """
        now = utc_now()
        with translate_errors(f"update {self.collection_name}"):
            document = await self.collection.find_one_and_update(
                {
                    "job_id": self._to_object_id(job_id),
                    "matches.candidate_id": self._to_object_id(candidate_id),
                },
                {
                    "$set": {
                        "matches.$.status": MatchStatus(status).value,
                        "last_updated": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
            )
        return self._to_model(document)


_match_repository: Optional[MatchRepository] = None


def get_match_repository() -> MatchRepository:
    """Get the match repository singleton instance."""
    global _match_repository
    if _match_repository is None:
        _match_repository = MatchRepository()
    return _match_repository
