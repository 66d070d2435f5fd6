"""Job posting repository for TalentMatch."""

from typing import Optional

from talentmatch.data.models.job import JobCreate, JobPosting
from talentmatch.utils.constants import JOB_POSTINGS_COLLECTION

from .base import VectorRepository


class JobRepository(VectorRepository[JobPosting]):
    """Repository for job postings read by the job match store."""

    @property
    def collection_name(self) -> str:
        return JOB_POSTINGS_COLLECTION

    @property
    def model_class(self) -> type[JobPosting]:
        return JobPosting

    async def create_from_schema_async(self, data: JobCreate) -> JobPosting:
        return await self.create_async(JobPosting(**data.model_dump()))


_job_repository: Optional[JobRepository] = None


def get_job_repository() -> JobRepository:
    """Get the job repository singleton instance."""
    global _job_repository
    if _job_repository is None:
        _job_repository = JobRepository()
    return _job_repository
