"""Availability, slot and template schemas."""
import datetime as dt
from datetime import time
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, field_validator, model_validator

from ..core.timezone_utils import parse_day_of_week
from ..domain.time_windows import ResolutionStrategy, ShiftDirection, TimeWindow
from ..services.slot_registry_service import build_window
from .base import StandardizedModel, StrictModel


def _day_of_week(value: Union[int, str, None]) -> Optional[int]:
    if value is None:
        return None
    return parse_day_of_week(value)


class WindowIn(StrictModel):
    """A dated window, or a weekly one when only ``day_of_week`` is given."""

    date: Optional[dt.date] = None
    day_of_week: Optional[Union[int, str]] = None
    start_time: time
    end_time: time

    @field_validator("day_of_week")
    @classmethod
    def _normalize_day(cls, value: Union[int, str, None]) -> Optional[int]:
        return _day_of_week(value)

    @model_validator(mode="after")
    def _needs_day(self) -> "WindowIn":
        if self.date is None and self.day_of_week is None:
            raise ValueError("Provide either date or day_of_week")
        return self

    def to_window(self) -> TimeWindow:
        return build_window(self.start_time, self.end_time, self.date, self.day_of_week)


class ConflictOptions(StrictModel):
    strategy: ResolutionStrategy = ResolutionStrategy.REJECT
    max_adjustment_minutes: int = Field(60, ge=15, le=120)
    direction: ShiftDirection = ShiftDirection.ANY
    allow_day_change: bool = False


class ConflictCheckRequest(ConflictOptions):
    windows: List[WindowIn] = Field(..., min_length=1, max_length=50)


class ConflictCheckResponse(StandardizedModel):
    has_conflicts: bool
    reports: List[Dict[str, Any]]


class AvailabilityCreate(ConflictOptions):
    windows: List[WindowIn] = Field(..., min_length=1, max_length=50)
    override: bool = False
    subject: Optional[str] = Field(None, max_length=100)
    max_students: int = Field(1, ge=1, le=50)
    weeks: Optional[int] = Field(None, ge=1, le=52)


class SlotCreate(StrictModel):
    date: dt.date
    start_time: time
    end_time: time
    subject: Optional[str] = Field(None, max_length=100)
    max_students: int = Field(1, ge=1, le=50)
    override: bool = False


class SlotResponse(StandardizedModel):
    id: str
    teacher_id: str
    date: dt.date
    start_time: time
    end_time: time
    duration_minutes: int
    subject: Optional[str] = None
    status: str
    max_students: int
    seats_taken: int = 0
    parent_template_id: Optional[str] = None
    relisted_from_id: Optional[str] = None


class TemplateCreate(StrictModel):
    day_of_week: Union[int, str]
    start_time: time
    end_time: time
    subject: Optional[str] = Field(None, max_length=100)
    max_students: int = Field(1, ge=1, le=50)
    is_recurring: bool = True
    recurrence_end_date: Optional[dt.date] = None
    weeks: Optional[int] = Field(None, ge=1, le=52)
    exception_dates: List[dt.date] = Field(default_factory=list)
    preview_only: bool = False
    override: bool = False

    @field_validator("day_of_week")
    @classmethod
    def _normalize_day(cls, value: Union[int, str, None]) -> Optional[int]:
        return _day_of_week(value)


class TemplateUpdate(StrictModel):
    day_of_week: Optional[Union[int, str]] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    subject: Optional[str] = Field(None, max_length=100)
    max_students: Optional[int] = Field(None, ge=1, le=50)
    is_active: Optional[bool] = None
    recurrence_end_date: Optional[dt.date] = None
    cascade: bool = False

    @field_validator("day_of_week")
    @classmethod
    def _normalize_day(cls, value: Union[int, str, None]) -> Optional[int]:
        return _day_of_week(value)


class MaterializeRequest(StrictModel):
    weeks: Optional[int] = Field(None, ge=1, le=52)
    exception_dates: List[dt.date] = Field(default_factory=list)
    preview_only: bool = False


class TemplateResponse(StandardizedModel):
    id: str
    teacher_id: str
    day_of_week: int
    start_time: time
    end_time: time
    duration_minutes: int
    subject: Optional[str] = None
    max_students: int
    is_recurring: bool
    is_active: bool
    recurrence_end_date: Optional[dt.date] = None


class MaterializationResponse(StandardizedModel):
    template_id: Optional[str] = None
    preview_only: bool
    planned_dates: List[dt.date]
    created_slot_ids: List[str]
    skipped: List[Dict[str, Any]]


class AvailabilityCreateResponse(StandardizedModel):
    created: List[SlotResponse]
    templates: List[TemplateResponse]
    cancelled_slot_ids: List[str]
    conflicts: List[Dict[str, Any]]


class BlockedTimeCreate(StrictModel):
    date: dt.date
    start_time: time
    end_time: time
    reason: Optional[str] = Field(None, max_length=500)


class BlockedTimeResponse(StandardizedModel):
    id: str
    teacher_id: str
    date: dt.date
    start_time: time
    end_time: time
    reason: Optional[str] = None
