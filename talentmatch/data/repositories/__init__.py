"""
Database repositories for TalentMatch data access.

This module provides repository classes for all database collections,
implementing the repository pattern for clean data access.
"""

# Base repositories
from .base import BaseRepository, VectorRepository, translate_errors

# Entity repositories
from .candidate_repository import CandidateRepository, get_candidate_repository
from .candidate_match_repository import CandidateMatchRepository, get_candidate_match_repository
from .job_repository import JobRepository, get_job_repository
from .match_repository import MatchRepository, get_match_repository

__all__ = [
    # Base
    "BaseRepository",
    "VectorRepository",
    "translate_errors",
    # Candidate
    "CandidateRepository",
    "get_candidate_repository",
    # Candidate matches
    "CandidateMatchRepository",
    "get_candidate_match_repository",
    # Job
    "JobRepository",
    "get_job_repository",
    # Match
    "MatchRepository",
    "get_match_repository",
]
