"""
Text builders that turn records into embedding input.

The field order is fixed: it shapes what the embedding emphasises, and
changing it invalidates every stored vector just like a model upgrade.
"""

from talentmatch.data.models.candidate import Candidate
from talentmatch.data.models.job import JobPosting
from talentmatch.utils.exceptions import InvalidInput


def candidate_embedding_text(candidate: Candidate) -> str:
    """``"{name}. {bio}. Skills: {skill, skill}"``"""
    name = (candidate.name or "").strip()
    bio = (candidate.bio or "").strip()
    skills = ", ".join(candidate.skills)

    if not (name or bio or skills):
        raise InvalidInput(
            "Candidate has no name, bio or skills to embed",
            details={"candidate_id": str(candidate.id)},
        )
    return f"{name}. {bio}. Skills: {skills}".strip()


def job_embedding_text(job: JobPosting) -> str:
    """``"{title}. {description}. Experience required: N years. Skills: ..."``"""
    title = (job.title or "").strip()
    description = (job.description or "").strip()
    skills = ", ".join(job.skills)
    experience = f"Experience required: {job.exp_req:g} years." if job.exp_req > 0 else ""

    if not (title or description or skills):
        raise InvalidInput(
            "Job posting has no title, description or skills to embed",
            details={"job_id": str(job.id)},
        )
    return f"{title}. {description}. {experience} Skills: {skills}".strip()
