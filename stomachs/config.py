"""
Configuration settings for the stomachs scheduling engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with ``STOMACHS_`` (e.g. ``STOMACHS_DATABASE_URL``).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STOMACHS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///stomachs.db",
        description="SQLAlchemy connection string for learner state and history",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level written by the stderr sink",
    )

    # ========================================
    # Stage Policy
    # ========================================
    stage_intervals_days: list[float] = Field(
        default=[1, 2, 4, 7, 21],
        description="Review interval in days for stages 1-5 (stage 5 is the graduated refresher)",
    )

    # ========================================
    # Scheduler
    # ========================================
    max_cas_attempts: int = Field(
        default=3,
        ge=1,
        description="Read-compute-write attempts before a review fails with ConcurrentUpdate",
    )

    # ========================================
    # Sessions
    # ========================================
    session_idle_timeout_minutes: float = Field(
        default=30,
        gt=0,
        description="Minutes without an answer before a session expires",
    )
    default_batch_size: int = Field(
        default=20,
        gt=0,
        description="Due items pulled into a session when the caller gives no size",
    )
    requeue_incorrect: bool = Field(
        default=True,
        description="Show missed items once more before the session ends",
    )

    @field_validator("stage_intervals_days")
    @classmethod
    def _check_intervals(cls, value: list[float]) -> list[float]:
        if len(value) != 5:
            raise ValueError("stage_intervals_days needs exactly 5 entries (stages 1-5)")
        if any(days <= 0 for days in value):
            raise ValueError("stage intervals must be positive")
        if any(later < earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("stage intervals must not decrease with stage")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
