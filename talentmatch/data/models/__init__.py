"""
Pydantic data models and schemas for TalentMatch.

This module provides the persisted documents, embedded models and
query/result value objects used by the matching core.
"""

# Base models
from .base import BaseDocument, EmbeddedModel, PyObjectId, TimestampMixin, VectorMixin

# Candidate models
from .candidate import (
    Candidate,
    CandidateCreate,
    CandidateSummary,
)

# Job models
from .job import JobCreate, JobPosting, JobSummary

# Query models
from .query import AttributePredicate, JobFilter, JobQuery, MatchFilter, RecordFilter

# Match models
from .match import (
    CandidateMatchEntry,
    CandidateMatches,
    JobMatchEntry,
    JobMatches,
    JobMatchResult,
    MatchResult,
    RefreshOutcome,
    RefreshReport,
)

__all__ = [
    # Base
    "BaseDocument",
    "EmbeddedModel",
    "PyObjectId",
    "TimestampMixin",
    "VectorMixin",
    # Candidate
    "Candidate",
    "CandidateCreate",
    "CandidateSummary",
    # Job
    "JobCreate",
    "JobPosting",
    "JobSummary",
    # Query
    "AttributePredicate",
    "JobFilter",
    "JobQuery",
    "MatchFilter",
    "RecordFilter",
    # Match
    "CandidateMatchEntry",
    "CandidateMatches",
    "JobMatchEntry",
    "JobMatches",
    "JobMatchResult",
    "MatchResult",
    "RefreshOutcome",
    "RefreshReport",
]
