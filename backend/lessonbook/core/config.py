# backend/lessonbook/core/config.py
"""
Application settings.

Values come from the environment (and ``backend/.env`` outside CI). Runtime
knobs that an admin can change without a deploy live in the ``system_settings``
table instead; see ``SystemSettingsRepository``.
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


def is_running_tests() -> bool:
    """Detect if code is running under pytest."""
    return os.getenv("PYTEST_CURRENT_TEST") is not None


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = "development"

    # Persistence
    database_url: str = Field(
        default="sqlite:///./lessonbook.db",
        description="SQLAlchemy URL; PostgreSQL in production",
    )
    database_echo: bool = False

    # Redis backs both the Celery broker and the per-teacher booking lock
    redis_url: str = "redis://localhost:6379"
    booking_lock_ttl_seconds: int = Field(default=30, ge=1)
    booking_lock_namespace: str = "lessonbook"

    # Scheduling policy
    default_timezone: str = Field(
        default="America/New_York",
        description="Fallback timezone applied at the API boundary only",
    )
    booking_min_duration_minutes: int = Field(default=30, ge=1)
    booking_max_duration_minutes: int = Field(default=120, ge=1)
    recurring_occurrences: int = Field(
        default=12, ge=1, description="Lessons created up front for a recurring booking"
    )
    lesson_generation_weeks: int = Field(default=12, ge=1)
    cancellation_buffer_hours: int = Field(default=0, ge=0)

    # Billing
    default_invoice_due_days: int = Field(
        default=30, ge=0, description="Used when no system_settings row exists"
    )
    invoice_number_prefix: str = "INV"

    # Email
    email_provider: Literal["console", "resend"] = Field(
        default="console",
        alias="EMAIL_PROVIDER",
        description="Email provider name",
    )
    resend_api_key: Optional[str] = Field(default=None, alias="RESEND_API_KEY")
    from_email: str = "Lessonbook <lessons@lessonbook.app>"
    frontend_url: str = "http://localhost:3000"

    # Maintenance jobs
    job_log_retention_days: int = Field(default=30, ge=1)
    stale_slot_months: int = Field(default=6, ge=1)

    # Celery queue names
    notifications_queue: str = "notifications"
    maintenance_queue: str = "maintenance"

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_default_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown default timezone: {value}")
        return value

    @field_validator("booking_max_duration_minutes")
    @classmethod
    def _validate_duration_bounds(cls, value: int, info) -> int:
        minimum = info.data.get("booking_min_duration_minutes", 1)
        if value < minimum:
            raise ValueError("booking_max_duration_minutes must be >= booking_min_duration_minutes")
        return value


settings = Settings()
