# backend/lessonbook/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # backend/.env
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the booking and credit ledger engine."""

    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./lessonbook.db",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, ge=1, description="Pool size for server databases")
    db_max_overflow: int = Field(default=5, ge=0)
    sqlite_busy_timeout_seconds: int = Field(
        default=30,
        ge=0,
        description="How long a SQLite connection waits on a locked database",
    )

    # Scheduling
    slot_timezone: str = Field(
        default="UTC",
        description="Timezone slot dates and times are expressed in",
    )
    materialize_weeks: int = Field(
        default=4, ge=1, le=52, description="Rolling window used to materialize templates"
    )
    no_show_grace_minutes: int = Field(
        default=30,
        ge=0,
        description="Minutes after slot end before a booked slot is swept to no_show",
    )
    teaching_day_start_hour: int = Field(default=6, ge=0, le=23)
    teaching_day_end_hour: int = Field(default=22, ge=1, le=23)
    conflict_max_suggestions: int = Field(default=5, ge=1, le=20)
    conflict_lookahead_weeks: int = Field(
        default=4, ge=1, description="Weeks of concrete slots checked for recurring windows"
    )

    # Booking and billing
    booking_debit_hours: float = Field(
        default=1.0, gt=0, description="Credit hours debited per booking"
    )
    bill_by_duration: bool = Field(
        default=False,
        description="Scale the debit by duration_minutes / 60 instead of a flat unit",
    )
    cancellation_notice_hours: int = Field(
        default=24,
        ge=0,
        description="Minimum notice a student must give to cancel a booking",
    )
    relist_on_cancel: bool = Field(
        default=True,
        description="Re-advertise a cancelled future slot as a new available slot",
    )

    # Share tokens
    share_token_bytes: int = Field(default=32, ge=16, le=64)
    share_token_ttl_days: int = Field(default=90, ge=1)
    share_token_rotation_days: int = Field(
        default=30, ge=1, description="Token age after which rotation is recommended"
    )
    share_token_max_access_count: int = Field(default=10000, ge=1)
    public_booking_base_url: str = Field(default="http://localhost:3000")

    # Waitlist
    waitlist_entry_ttl_days: int = Field(default=7, ge=1)
    waitlist_notify_expiry_hours: int = Field(default=24, ge=1)
    waitlist_hours_per_position: float = Field(default=24.0, gt=0)

    # Notifications
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint of the external notification sender; unset logs events only",
    )
    notification_dispatch: Literal["inline", "celery"] = Field(
        default="celery",
        description=(
            "Queue webhooks on the Celery notifications queue, or post them in-process "
            "(inline blocks the request on the receiver; local development only)"
        ),
    )
    notification_timeout_seconds: float = Field(default=5.0, gt=0)

    # Identity provider
    identity_jwt_secret: str = Field(
        default="change-me-in-production",
        description="Shared secret used to verify identity provider tokens",
    )
    identity_jwt_algorithm: str = Field(default="HS256")

    # Celery
    redis_url: str = Field(default="redis://localhost:6379/0")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _check_teaching_day(self) -> "Settings":
        if self.teaching_day_start_hour >= self.teaching_day_end_hour:
            raise ValueError("teaching_day_start_hour must be before teaching_day_end_hour")
        if (
            self.environment == "production"
            and self.identity_jwt_secret == "change-me-in-production"
        ):
            logger.warning("IDENTITY_JWT_SECRET is using the development default")
        return self


settings = Settings()
