"""
Timezone utilities for slot scheduling.

Slot dates and wall-clock times are stored naive in the configured slot
timezone. All comparisons with "now" go through these helpers so the
store never mixes naive local times with UTC instants.
"""

from datetime import date, datetime, time, timedelta

import pytz

from .config import settings

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def get_slot_timezone() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.slot_timezone)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def localize(day: date, at: time) -> datetime:
    """Return the aware instant of a slot wall-clock time."""
    return get_slot_timezone().localize(datetime.combine(day, at))


def to_slot_local(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(get_slot_timezone())


def slot_today(now: datetime) -> date:
    return to_slot_local(now).date()


def day_name(day_of_week: int) -> str:
    return DAY_NAMES[day_of_week]


def parse_day_of_week(value: "int | str") -> int:
    """Accept 0-6 (Monday=0) or a day name."""
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"day_of_week must be between 0 and 6, got {value}")
    normalized = value.strip().lower()
    if normalized.isdigit():
        return parse_day_of_week(int(normalized))
    if normalized not in DAY_NAMES:
        raise ValueError(f"Unknown day of week: {value}")
    return DAY_NAMES.index(normalized)


def next_weekday_on_or_after(start: date, day_of_week: int) -> date:
    return start + timedelta(days=(day_of_week - start.weekday()) % 7)


def minutes_of(at: time) -> int:
    return at.hour * 60 + at.minute


def time_from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)
