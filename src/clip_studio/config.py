"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend API
    api_base_url: str = Field(
        default="http://localhost:3001",
        description="Backend REST base URL (paths are prefixed with /v1)",
    )
    api_token: str | None = Field(
        default=None,
        description="Static bearer token used by the CLI",
    )
    api_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )

    # Suggestions
    cut_job_max_clips: int = Field(
        default=5,
        description="Maximum number of clip suggestions requested per cut job",
    )
    regenerate_quota: int = Field(
        default=2,
        description="Number of times suggestions may be regenerated per video",
    )

    # Trim limits
    manual_trim_max_ms: int = Field(
        default=60_000,
        description="Maximum clip length in the fine-tune stage",
    )
    precut_max_ms: int = Field(
        default=180_000,
        description="Maximum clip length accepted for backend pre-cut suggestions",
    )
    min_clip_ms: int = Field(default=1_000, description="Minimum clip length")
    nudge_step_ms: int = Field(
        default=100,
        description="Keyboard nudge step and snapping granularity",
    )

    # Persistence
    autosave_debounce_seconds: float = Field(
        default=2.0,
        description="Trailing debounce before trim edits are written to the backend",
    )

    # Job tracking
    job_event_timeout_seconds: float = Field(
        default=30.0,
        description="Seconds to wait for a push event before pulling job status",
    )
    job_max_refetches: int = Field(
        default=10,
        description="Pull attempts before giving up on a silent job",
    )

    # Notifications
    notification_ttl_seconds: float = Field(
        default=3.0,
        description="Seconds before a transient notification is dismissed",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


# Convenience alias
settings = get_settings()
