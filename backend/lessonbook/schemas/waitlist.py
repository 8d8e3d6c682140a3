"""Waitlist schemas."""
import datetime as dt
from typing import Optional, Union

from pydantic import Field, field_validator

from ..core.timezone_utils import parse_day_of_week
from .base import StandardizedModel, StrictModel


class WaitlistJoin(StrictModel):
    token: Optional[str] = None
    teacher_id: Optional[str] = Field(
        None, max_length=64, description="Required with a bearer token; implied by a share token"
    )
    day_of_week: Union[int, str]
    start_time: dt.time
    end_time: dt.time
    preferred_date: Optional[dt.date] = None
    auto_book: bool = False
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("day_of_week")
    @classmethod
    def _normalize_day(cls, value: Union[int, str]) -> int:
        return parse_day_of_week(value)


class WaitlistJoinResponse(StandardizedModel):
    waitlist_entry_id: str
    position: int
    estimated_wait_hours: float
    expires_at: dt.datetime


class WaitlistPromote(StrictModel):
    priority: Optional[int] = Field(None, ge=1, le=10)


class WaitlistExtend(StrictModel):
    hours: int = Field(..., ge=1, le=168)


class WaitlistEntryResponse(StandardizedModel):
    id: str
    teacher_id: str
    student_id: str
    day_of_week: int
    start_time: dt.time
    end_time: dt.time
    preferred_date: Optional[dt.date] = None
    priority: int
    position: Optional[int] = None
    status: str
    auto_book: bool
    joined_at: dt.datetime
    notified_at: Optional[dt.datetime] = None
    notification_expires_at: Optional[dt.datetime] = None
    notified_slot_id: Optional[str] = None
    expires_at: Optional[dt.datetime] = None
