"""
Runtime settings for the navigator.

Values come from environment variables prefixed with ``OPSNAV_`` or a local
``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OPSNAV_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ─── Storage ────────────────────────────────────────────────────────────────
    database_path: Path = Field(
        default=Path(".opsnavigator") / "progress.db",
        description="SQLite file holding step progress and workflow completions",
    )
    user_id: str = Field(
        default="local",
        description="Learner id used for freemium completion tracking",
    )

    # ─── Freemium ───────────────────────────────────────────────────────────────
    free_workflow_limit: int = Field(
        default=1,
        ge=0,
        description="Workflows a free learner may complete before the simulator is gated",
    )

    # ─── Mentor ─────────────────────────────────────────────────────────────────
    mentor_url: str = Field(
        default="",
        description="Streaming chat endpoint of the mentor assistant (disabled when empty)",
    )
    mentor_api_key: str = Field(
        default="",
        description="Bearer token sent to the mentor endpoint",
    )
    mentor_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait on the mentor stream",
    )

    # ─── Terminal ───────────────────────────────────────────────────────────────
    realtime_playback: bool = Field(
        default=True,
        description="Sleep through transcript delays in the CLI instead of printing at once",
    )
    log_level: str = Field(
        default="WARNING",
        description="Minimum loguru level written to stderr",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
