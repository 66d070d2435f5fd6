"""
Utility modules for TalentMatch.

This package contains shared utilities used across the application:
- config: Configuration management
- logger: Logging infrastructure
- constants: Application-wide constants
- exceptions: Error hierarchy
- concurrency: Timeouts and bounded concurrent maps
"""

from talentmatch.utils.config import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    MatchingSettings,
    MLSettings,
    get_settings,
    reload_settings,
    ROOT_DIR,
)
from talentmatch.utils.constants import (
    FilterOperator,
    MatchStatus,
)
from talentmatch.utils.exceptions import (
    EmbeddingFailure,
    IndexUnavailable,
    InvalidInput,
    OperationTimeout,
    RecordNotFound,
    TalentMatchError,
)
from talentmatch.utils.logger import (
    setup_logging,
    get_logger,
    audit_log,
)

__all__ = [
    # Config
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "MatchingSettings",
    "MLSettings",
    "get_settings",
    "reload_settings",
    "ROOT_DIR",
    # Constants
    "FilterOperator",
    "MatchStatus",
    # Exceptions
    "EmbeddingFailure",
    "IndexUnavailable",
    "InvalidInput",
    "OperationTimeout",
    "RecordNotFound",
    "TalentMatchError",
    # Logger
    "setup_logging",
    "get_logger",
    "audit_log",
]
