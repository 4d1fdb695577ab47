"""
Configuration and settings for the task service.

Field names double as environment variable names (case-insensitive), e.g.
``DATABASE_URL``, ``REDIS_URL`` or ``STALE_TASK_HOURS``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and the scheduler."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage for generated reports
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Offline sync queue (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="reahub:sync")

    # Business thresholds
    location_update_interval_seconds: float = Field(default=10.0, gt=0)
    stale_task_hours: float = Field(default=24.0, gt=0)
    estimation_daily_goal: int = Field(default=10, ge=1)
    report_period_days: int = Field(default=7, ge=1)

    # Scheduler intervals (seconds)
    escalation_interval_seconds: int = Field(default=900)
    automation_interval_seconds: int = Field(default=3600)
    stale_interval_seconds: int = Field(default=6 * 3600)
    reminder_interval_seconds: int = Field(default=3600)
    report_interval_seconds: int = Field(default=7 * 24 * 3600)
    efficiency_interval_seconds: int = Field(default=24 * 3600)
    sync_interval_seconds: int = Field(default=30)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
