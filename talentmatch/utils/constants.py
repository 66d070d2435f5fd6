"""
Application-wide constants for TalentMatch.

Collection names, vector field names and enums shared by the data
and matching layers.
"""

from enum import Enum
from typing import Final


# =============================================================================
# Storage
# =============================================================================

CANDIDATES_COLLECTION: Final[str] = "candidates"
JOB_POSTINGS_COLLECTION: Final[str] = "job_postings"
JOB_MATCHES_COLLECTION: Final[str] = "job_matches"
CANDIDATE_MATCHES_COLLECTION: Final[str] = "candidate_matches"

VECTOR_FIELD: Final[str] = "vector"
VECTOR_MODEL_FIELD: Final[str] = "vector_model"
VECTOR_UPDATED_FIELD: Final[str] = "vector_updated_at"

# Transient field added by the index pipelines
SCORE_FIELD: Final[str] = "score"


# =============================================================================
# Enums
# =============================================================================


class MatchStatus(str, Enum):
    """Review status of a stored job match."""

    PENDING = "pending"
    APPLIED = "applied"


class FilterOperator(str, Enum):
    """Comparison operators accepted by attribute predicates."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
