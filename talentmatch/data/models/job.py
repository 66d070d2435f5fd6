"""
Job posting data models for TalentMatch.

Only the fields the matchers read are modelled; the rest of a posting
belongs to the job workflow that owns the collection.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .base import BaseDocument, EmbeddedModel, PyObjectId, VectorMixin


class JobPosting(BaseDocument, VectorMixin):
    """A job posting whose description is matched against candidates."""

    title: str = Field(..., min_length=1)
    description: str = ""
    company: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    exp_req: float = Field(default=0.0, ge=0)  # minimum years
    role: Optional[str] = None

    @field_validator("skills")
    @classmethod
    def clean_skills(cls, v: list[str]) -> list[str]:
        return [s.strip() for s in v if s and s.strip()]


class JobCreate(BaseModel):
    """Schema for creating a job posting."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    company: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    exp_req: float = Field(default=0.0, ge=0)
    role: Optional[str] = None


class JobSummary(EmbeddedModel):
    """One entry of a candidate's job match result."""

    id: PyObjectId
    title: str
    company: Optional[str] = None
    role: Optional[str] = None
    exp_req: float = 0.0
    score: float

    @classmethod
    def from_document(cls, document: dict, score: float) -> "JobSummary":
        return cls(
            id=document["_id"],
            title=document.get("title") or "",
            company=document.get("company"),
            role=document.get("role"),
            exp_req=document.get("exp_req") or 0.0,
            score=score,
        )
