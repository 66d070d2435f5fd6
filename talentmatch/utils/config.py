"""
Configuration management for TalentMatch.

Uses Pydantic Settings for type-safe configuration with environment variable support.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Base paths
ROOT_DIR = Path(__file__).parent.parent.parent


class DatabaseSettings(BaseSettings):
    """MongoDB database configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    # A full URI (e.g. an Atlas SRV string) takes precedence over the parts below
    uri: Optional[str] = None
    host: str = "localhost"
    port: int = 27017
    name: str = "talentmatch"
    username: str | None = None
    password: str | None = None
    timeout_ms: int = 5000


class MLSettings(BaseSettings):
    """Embedding model configuration."""

    model_config = SettingsConfigDict(env_prefix="ML_")

    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_revision: Optional[str] = None
    embedding_dimension: int = 384

    device: Literal["cpu", "cuda", "mps", "auto"] = "auto"

    embedding_timeout_seconds: float = 30.0

    @field_validator("device")
    @classmethod
    def validate_device(cls, v: str) -> str:
        """Auto-detect device if set to auto."""
        if v == "auto":
            try:
                import torch

                if torch.cuda.is_available():
                    return "cuda"
                elif torch.backends.mps.is_available():
                    return "mps"
            except ImportError:
                pass
            return "cpu"
        return v

    @property
    def model_version(self) -> str:
        """Tag stored next to every vector produced by the configured model."""
        if self.embedding_revision:
            return f"{self.embedding_model}@{self.embedding_revision}"
        return self.embedding_model


class MatchingSettings(BaseSettings):
    """Candidate retrieval and batch job configuration."""

    model_config = SettingsConfigDict(env_prefix="MATCH_")

    search_backend: Literal["cosine", "atlas"] = "cosine"
    atlas_index_name: str = "candidate_vector_index"
    job_atlas_index_name: str = "job_vector_index"

    default_limit: int = Field(default=5, ge=1)

    # Over-fetch: fetch max(limit * multiplier, min_fetch_size, limit + 1)
    fetch_multiplier: float = Field(default=3.0, ge=1.0)
    min_fetch_size: int = Field(default=20, ge=1)
    num_candidates_multiplier: int = Field(default=10, ge=1)

    min_score: Optional[float] = Field(default=None, ge=-1.0, le=1.0)

    query_timeout_seconds: float = Field(default=10.0, gt=0)
    refresh_concurrency: int = Field(default=4, ge=1)
    max_stored_matches: int = Field(default=20, ge=1)
    refresh_interval_seconds: float = Field(default=300.0, gt=0)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
    file_path: Path = ROOT_DIR / "logs" / "talentmatch.log"
    rotation: str = "10 MB"
    retention: str = "30 days"
    console_output: bool = True


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = "TalentMatch"
    version: str = "0.1.0"
    description: str = "Semantic candidate matching for recruitment workflows"
    debug: bool = False

    environment: Literal["development", "production", "testing"] = "development"

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ml: MLSettings = Field(default_factory=MLSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def check_stored_matches(self) -> "AppSettings":
        if self.matching.max_stored_matches < self.matching.default_limit:
            raise ValueError(
                "MATCH_MAX_STORED_MATCHES must not be smaller than MATCH_DEFAULT_LIMIT"
            )
        return self


_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Force reload settings from environment."""
    global _settings
    _settings = AppSettings()
    return _settings
