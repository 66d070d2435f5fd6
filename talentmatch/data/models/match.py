"""
Match and batch-report data models for TalentMatch.

``MatchResult`` and ``JobMatchResult`` are the ephemeral answers to a
query. ``JobMatches`` and ``CandidateMatches`` are the persisted match
lists per job posting and per candidate. ``RefreshReport`` records the
per-record outcome of a batch job.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, computed_field

from talentmatch.utils.constants import MatchStatus

from .base import BaseDocument, EmbeddedModel, PyObjectId, utc_now
from .candidate import CandidateSummary
from .job import JobSummary


class MatchResult(EmbeddedModel):
    """Candidates ordered by descending similarity to the query vector."""

    query: str
    model_version: str
    candidates: list[CandidateSummary] = Field(default_factory=list)
    pool_size: int = 0  # candidates fetched before filtering

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    @property
    def candidate_ids(self) -> list[str]:
        return [str(c.id) for c in self.candidates]


class JobMatchEntry(EmbeddedModel):
    """A candidate stored in a job's shortlist."""

    candidate_id: PyObjectId
    match_score: float = Field(..., ge=-1.0, le=1.0)
    matched_at: datetime = Field(default_factory=utc_now)
    status: MatchStatus = MatchStatus.PENDING


class JobMatches(BaseDocument):
    """Persisted shortlist for one job posting (``job_matches`` collection)."""

    job_id: PyObjectId
    matches: list[JobMatchEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utc_now)

    def entry_for(self, candidate_id: str) -> Optional[JobMatchEntry]:
        for entry in self.matches:
            if str(entry.candidate_id) == str(candidate_id):
                return entry
        return None

    def with_status(self, status: Optional[MatchStatus]) -> list[JobMatchEntry]:
        if status is None:
            return list(self.matches)
        return [m for m in self.matches if m.status == MatchStatus(status)]


class JobMatchResult(EmbeddedModel):
    """Job postings ordered by descending similarity to a candidate."""

    query: str
    model_version: str
    jobs: list[JobSummary] = Field(default_factory=list)
    pool_size: int = 0

    def __len__(self) -> int:
        return len(self.jobs)

    @property
    def is_empty(self) -> bool:
        return not self.jobs

    @property
    def job_ids(self) -> list[str]:
        return [str(j.id) for j in self.jobs]


class CandidateMatchEntry(EmbeddedModel):
    """A job posting stored in a candidate's match list."""

    job_id: PyObjectId
    match_score: float = Field(..., ge=-1.0, le=1.0)
    matched_at: datetime = Field(default_factory=utc_now)


class CandidateMatches(BaseDocument):
    """Persisted job matches for one candidate (``candidate_matches`` collection)."""

    candidate_id: PyObjectId
    matches: list[CandidateMatchEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def job_ids(self) -> list[str]:
        return [str(m.job_id) for m in self.matches]


class RefreshOutcome(EmbeddedModel):
    """Result of processing one record in a batch job."""

    record_id: str
    label: Optional[str] = None
    success: bool
    error_kind: Optional[str] = None
    error: Optional[str] = None


class RefreshReport(EmbeddedModel):
    """Summary of a batch job with every record's outcome."""

    job: str
    model_version: str
    outcomes: list[RefreshOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @computed_field
    @property
    def total(self) -> int:
        return len(self.outcomes)

    @computed_field
    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def failures(self) -> list[RefreshOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
