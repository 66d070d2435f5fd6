"""
Exception hierarchy for TalentMatch.

Every error raised by the matching core derives from ``TalentMatchError``
so callers can tell "unable to compute matches" apart from an empty result.
"""

from typing import Any, Optional


class TalentMatchError(Exception):
    """Base exception for all TalentMatch errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

class InvalidInput(TalentMatchError):
    """Raised for empty text, bad limits or malformed filters."""


class EmbeddingFailure(TalentMatchError):
    """Raised when the embedding model fails to load or to produce a vector."""


class IndexUnavailable(TalentMatchError):
    """Raised when the candidate store or search backend cannot be reached."""


class OperationTimeout(TalentMatchError):
    """Raised when an embedding call or index query exceeds its time budget."""


class RecordNotFound(TalentMatchError):
    """Raised when a job posting, candidate or stored match does not exist."""
