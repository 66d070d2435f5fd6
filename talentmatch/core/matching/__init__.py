"""Candidate and job matching, embedding refresh and stored match lists."""

from .candidate_matcher import (
    CandidateMatcher,
    get_candidate_matcher,
)
from .candidate_matches import (
    CandidateMatchService,
    get_candidate_match_service,
)
from .job_matches import (
    JobMatchService,
    get_job_match_service,
)
from .refresh import (
    CandidateEmbeddingRefresher,
    capture_outcome,
    get_candidate_refresher,
)
from .scheduler import (
    MatchRefreshScheduler,
    PassResult,
)
from .selection import select_hits

__all__ = [
    # Matching
    "CandidateMatcher",
    "get_candidate_matcher",
    "select_hits",
    # Job shortlists
    "JobMatchService",
    "get_job_match_service",
    # Candidate matches
    "CandidateMatchService",
    "get_candidate_match_service",
    # Embedding refresh
    "CandidateEmbeddingRefresher",
    "capture_outcome",
    "get_candidate_refresher",
    # Scheduling
    "MatchRefreshScheduler",
    "PassResult",
]
