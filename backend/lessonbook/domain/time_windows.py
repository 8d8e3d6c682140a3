"""
Time-window value objects and the pure overlap/shift logic shared by the
conflict detector, the slot registry and the API schemas.

Windows are half-open: [start, end). Two windows on the same day overlap
iff ``a.start < b.end and a.end > b.start``, which is symmetric and
covers containment, partial overlap and exact duplicates.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..core.timezone_utils import day_name, minutes_of, time_from_minutes

SHIFT_STEP_MINUTES = 15
MIN_ADJUSTMENT_MINUTES = 15
MAX_ADJUSTMENT_MINUTES = 120
DAY_CHANGE_SCORE = 50


class ConflictSource(str, Enum):
    TEMPLATE = "recurring_template"
    SLOT = "schedule_slot"
    BLOCKED = "blocked_time"
    REQUEST = "request"


class ShiftDirection(str, Enum):
    EARLIER = "earlier"
    LATER = "later"
    ANY = "any"


class ResolutionStrategy(str, Enum):
    REJECT = "reject"
    SUGGEST_ALTERNATIVES = "suggest_alternatives"
    AUTO_ADJUST = "auto_adjust"
    MERGE = "merge"


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


@dataclass(frozen=True)
class TimeWindow:
    """A candidate or existing window, either on a date or on a weekday."""

    start_time: time
    end_time: time
    date: Optional[date] = None
    day_of_week: Optional[int] = None

    def __post_init__(self) -> None:
        if self.date is None and self.day_of_week is None:
            raise ValueError("A window needs either a date or a day_of_week")
        if self.date is not None and self.day_of_week is not None:
            if self.date.weekday() != self.day_of_week:
                raise ValueError("day_of_week does not match date")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")

    @property
    def weekday(self) -> int:
        return self.date.weekday() if self.date is not None else int(self.day_of_week)

    @property
    def is_recurring(self) -> bool:
        return self.date is None

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start_time)

    @property
    def end_minutes(self) -> int:
        return minutes_of(self.end_time)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def shares_day_with(self, other: "TimeWindow") -> bool:
        """
        Same calendar day, or the same weekday where either side recurs.

        A weekly rule applies to every date with its weekday.
        """
        if self.date is not None and other.date is not None:
            return self.date == other.date
        return self.weekday == other.weekday

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.shares_day_with(other) and intervals_overlap(
            self.start_minutes, self.end_minutes, other.start_minutes, other.end_minutes
        )

    def shifted(self, minutes: int) -> "TimeWindow":
        return replace(
            self,
            start_time=time_from_minutes(self.start_minutes + minutes),
            end_time=time_from_minutes(self.end_minutes + minutes),
        )

    def moved_days(self, days: int) -> "TimeWindow":
        if self.date is not None:
            return replace(self, date=self.date + timedelta(days=days), day_of_week=None)
        return replace(self, day_of_week=(int(self.day_of_week) + days) % 7)

    def sort_key(self) -> tuple:
        return (self.date or date.min, self.weekday, self.start_minutes, self.end_minutes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat() if self.date else None,
            "day_of_week": day_name(self.weekday),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
        }


@dataclass(frozen=True)
class ExistingWindow:
    source: ConflictSource
    id: str
    window: TimeWindow
    status: Optional[str] = None
    label: Optional[str] = None

    def sort_key(self) -> tuple:
        return (*self.window.sort_key(), self.source.value, self.id)

    def to_dict(self) -> Dict[str, Any]:
        data = {"source": self.source.value, "id": self.id, **self.window.to_dict()}
        if self.status:
            data["status"] = self.status
        if self.label:
            data["label"] = self.label
        return data


@dataclass(frozen=True)
class Suggestion:
    window: TimeWindow
    adjustment_minutes: int
    direction: str
    score: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.window.to_dict(),
            "adjustment_minutes": self.adjustment_minutes,
            "direction": self.direction,
            "score": self.score,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Unresolvable:
    """No valid shift exists; the candidate is reported, never dropped."""

    candidate: TimeWindow
    reason: str = "no_valid_shift"

    def to_dict(self) -> Dict[str, Any]:
        return {"unresolvable": True, "reason": self.reason, **self.candidate.to_dict()}


@dataclass
class ConflictReport:
    candidate: TimeWindow
    conflicts: List[ExistingWindow] = field(default_factory=list)
    suggestions: List[Suggestion] = field(default_factory=list)
    adjusted: Optional[TimeWindow] = None
    merged: Optional[TimeWindow] = None
    merged_ids: List[str] = field(default_factory=list)
    unresolvable: bool = False

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def by_source(self) -> Dict[str, List[ExistingWindow]]:
        grouped: Dict[str, List[ExistingWindow]] = {source.value: [] for source in ConflictSource}
        for conflict in self.conflicts:
            grouped[conflict.source.value].append(conflict)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "candidate": self.candidate.to_dict(),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "conflicts_by_source": {
                source: [c.to_dict() for c in items] for source, items in self.by_source().items()
            },
        }
        if self.suggestions:
            data["suggestions"] = [s.to_dict() for s in self.suggestions]
        if self.adjusted is not None:
            data["adjusted"] = self.adjusted.to_dict()
        if self.merged is not None:
            data["merged"] = self.merged.to_dict()
            data["merged_ids"] = list(self.merged_ids)
        if self.unresolvable:
            data["unresolvable"] = True
        return data


def find_conflicts(
    candidate: TimeWindow, existing: Iterable[ExistingWindow]
) -> List[ExistingWindow]:
    """Every existing window overlapping ``candidate``, sorted by start time."""
    hits = [item for item in existing if candidate.overlaps(item.window)]
    return sorted(hits, key=lambda item: item.sort_key())


def _score(window: TimeWindow, adjustment: int, later: bool) -> int:
    hour = window.start_time.hour
    score = 100 - adjustment
    if 9 <= hour <= 17:
        score += 20
    if hour < 8 or hour > 19:
        score -= 15
    if later:
        score += 5
    return score


def suggest_alternatives(
    candidate: TimeWindow,
    existing: Sequence[ExistingWindow],
    *,
    max_adjustment_minutes: int = 60,
    direction: Union[ShiftDirection, str] = ShiftDirection.ANY,
    allow_day_change: bool = False,
    limit: int = 5,
    day_start_hour: int = 6,
    day_end_hour: int = 22,
) -> List[Suggestion]:
    """
    Propose non-conflicting shifts of ``candidate``.

    Shifts move in 15-minute steps up to ``max_adjustment_minutes`` and stay
    inside [day_start_hour, day_end_hour]. Shifts in the requested direction
    rank ahead of the opposite direction. Adjacent days are only proposed
    with ``allow_day_change``.
    """
    direction = ShiftDirection(direction)
    max_adjustment_minutes = max(
        MIN_ADJUSTMENT_MINUTES, min(MAX_ADJUSTMENT_MINUTES, int(max_adjustment_minutes))
    )
    day_start = day_start_hour * 60
    day_end = day_end_hour * 60

    def is_free(window: TimeWindow) -> bool:
        return not any(window.overlaps(item.window) for item in existing)

    ranked: List[tuple] = []
    for adjustment in range(SHIFT_STEP_MINUTES, max_adjustment_minutes + 1, SHIFT_STEP_MINUTES):
        shifts = ((ShiftDirection.EARLIER, -adjustment), (ShiftDirection.LATER, adjustment))
        for shift_direction, delta in shifts:
            if candidate.start_minutes + delta < day_start:
                continue
            if candidate.end_minutes + delta > day_end:
                continue
            window = candidate.shifted(delta)
            if not is_free(window):
                continue
            preferred = direction == ShiftDirection.ANY or direction == shift_direction
            suggestion = Suggestion(
                window=window,
                adjustment_minutes=adjustment,
                direction=shift_direction.value,
                score=_score(window, adjustment, shift_direction == ShiftDirection.LATER),
                reason=f"Shift {adjustment} minutes {shift_direction.value}",
            )
            rank = 0 if preferred else 1
            ranked.append((rank, -suggestion.score, adjustment, window.start_minutes, suggestion))

    if allow_day_change:
        for days in (-1, 1):
            window = candidate.moved_days(days)
            if not is_free(window):
                continue
            suggestion = Suggestion(
                window=window,
                adjustment_minutes=0,
                direction="previous_day" if days < 0 else "next_day",
                score=DAY_CHANGE_SCORE,
                reason=f"Same time on {window.to_dict()['day_of_week']}",
            )
            ranked.append((0, -suggestion.score, 24 * 60, days, suggestion))

    ranked.sort(key=lambda item: item[:4])
    return [item[-1] for item in ranked[:limit]]


def auto_adjust(
    candidate: TimeWindow,
    existing: Sequence[ExistingWindow],
    **options: Any,
) -> Union[TimeWindow, Unresolvable]:
    """First valid suggestion, or an explicit Unresolvable."""
    if not find_conflicts(candidate, existing):
        return candidate
    suggestions = suggest_alternatives(candidate, existing, limit=1, **options)
    if not suggestions:
        return Unresolvable(candidate)
    return suggestions[0].window


def merge_window(candidate: TimeWindow, mergeable: Sequence[ExistingWindow]) -> TimeWindow:
    """Union of a dated candidate with the windows it overlaps."""
    start = min([candidate.start_minutes] + [m.window.start_minutes for m in mergeable])
    end = max([candidate.end_minutes] + [m.window.end_minutes for m in mergeable])
    return replace(candidate, start_time=time_from_minutes(start), end_time=time_from_minutes(end))
