# backend/lessonbook/services/conflict_detector.py
"""
Availability Conflict Detector

Checks proposed availability windows against a teacher's existing
recurring templates, concrete available/booked slots and blocked time,
and proposes resolutions:

- reject: report conflicts only
- suggest_alternatives: up to N shifted windows that fit
- auto_adjust: apply the best suggestion or mark the window unresolvable
- merge: fold a dated window into overlapping open one-off slots

Detection is deterministic: conflicts are sorted by start time, and the
result for a candidate never depends on the order existing rows were read.
"""

from datetime import date, timedelta
import logging
from typing import Iterable, List, Optional, Sequence, Set, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import next_weekday_on_or_after, slot_today
from ..domain.time_windows import (
    ConflictReport,
    ConflictSource,
    ExistingWindow,
    ResolutionStrategy,
    ShiftDirection,
    TimeWindow,
    Unresolvable,
    auto_adjust,
    find_conflicts,
    merge_window,
    suggest_alternatives,
)
from ..models.schedule import SlotStatus
from ..repositories import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


class AvailabilityConflictDetector(BaseService):
    """Service for detecting and resolving availability overlaps."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_schedule_slot_repository(db)
        self.template_repository = RepositoryFactory.create_template_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_time_repository(db)

    def _dates_to_scan(
        self, candidates: Sequence[TimeWindow], include_adjacent_days: bool
    ) -> Set[date]:
        today = slot_today(self.now())
        offsets = (-1, 0, 1) if include_adjacent_days else (0,)
        dates: Set[date] = set()
        for candidate in candidates:
            if candidate.date is not None:
                dates.update(candidate.date + timedelta(days=offset) for offset in offsets)
                continue
            for offset in offsets:
                first = next_weekday_on_or_after(today, (candidate.weekday + offset) % 7)
                dates.update(
                    first + timedelta(weeks=week)
                    for week in range(settings.conflict_lookahead_weeks)
                )
        return dates

    def load_existing(
        self,
        teacher_id: str,
        candidates: Sequence[TimeWindow],
        *,
        include_adjacent_days: bool = False,
        exclude_template_id: Optional[str] = None,
        exclude_slot_ids: Iterable[str] = (),
    ) -> List[ExistingWindow]:
        """Existing windows that could overlap any of ``candidates``."""
        excluded = set(exclude_slot_ids)
        existing: List[ExistingWindow] = []

        for template in self.template_repository.list_for_teacher(teacher_id):
            if template.id == exclude_template_id:
                continue
            existing.append(
                ExistingWindow(
                    source=ConflictSource.TEMPLATE,
                    id=template.id,
                    window=TimeWindow(
                        start_time=template.start_time,
                        end_time=template.end_time,
                        day_of_week=template.day_of_week,
                    ),
                    label=template.subject,
                )
            )

        dates = self._dates_to_scan(candidates, include_adjacent_days)
        statuses = (SlotStatus.AVAILABLE.value, SlotStatus.BOOKED.value)
        for slot in self.slot_repository.list_on_dates(teacher_id, dates, statuses):
            if slot.id in excluded:
                continue
            existing.append(
                ExistingWindow(
                    source=ConflictSource.SLOT,
                    id=slot.id,
                    window=TimeWindow(
                        start_time=slot.start_time, end_time=slot.end_time, date=slot.date
                    ),
                    status=slot.status,
                    label=slot.subject,
                )
            )

        for blocked in self.blocked_repository.list_on_dates(teacher_id, dates):
            existing.append(
                ExistingWindow(
                    source=ConflictSource.BLOCKED,
                    id=blocked.id,
                    window=TimeWindow(
                        start_time=blocked.start_time, end_time=blocked.end_time, date=blocked.date
                    ),
                    label=blocked.reason,
                )
            )

        return sorted(existing, key=lambda item: item.sort_key())

    @BaseService.measure_operation("check_availability_conflicts")
    def check(
        self,
        teacher_id: str,
        candidates: Sequence[TimeWindow],
        *,
        strategy: Union[ResolutionStrategy, str] = ResolutionStrategy.REJECT,
        max_adjustment_minutes: int = 60,
        direction: Union[ShiftDirection, str] = ShiftDirection.ANY,
        allow_day_change: bool = False,
        exclude_template_id: Optional[str] = None,
        existing: Optional[Sequence[ExistingWindow]] = None,
    ) -> List[ConflictReport]:
        """
        One report per candidate, in input order.

        Candidates in the same request are also checked against each other.
        """
        strategy = ResolutionStrategy(strategy)
        if existing is None:
            existing = self.load_existing(
                teacher_id,
                candidates,
                include_adjacent_days=allow_day_change,
                exclude_template_id=exclude_template_id,
            )

        reports: List[ConflictReport] = []
        for index, candidate in enumerate(candidates):
            peers = [
                ExistingWindow(source=ConflictSource.REQUEST, id=f"request-{other}", window=window)
                for other, window in enumerate(candidates)
                if other != index
            ]
            against = list(existing) + peers
            report = ConflictReport(
                candidate=candidate, conflicts=find_conflicts(candidate, against)
            )
            if report.has_conflicts:
                self._resolve(
                    report,
                    against,
                    strategy=strategy,
                    max_adjustment_minutes=max_adjustment_minutes,
                    direction=direction,
                    allow_day_change=allow_day_change,
                )
            reports.append(report)

        conflicted = sum(1 for report in reports if report.has_conflicts)
        if conflicted:
            self.logger.info(
                "Availability conflicts detected",
                extra={
                    "teacher_id": teacher_id,
                    "candidates": len(candidates),
                    "conflicted": conflicted,
                    "strategy": strategy.value,
                },
            )
        return reports

    def _resolve(
        self,
        report: ConflictReport,
        against: Sequence[ExistingWindow],
        *,
        strategy: ResolutionStrategy,
        max_adjustment_minutes: int,
        direction: Union[ShiftDirection, str],
        allow_day_change: bool,
    ) -> None:
        if strategy == ResolutionStrategy.REJECT:
            return

        if strategy == ResolutionStrategy.MERGE:
            mergeable = [
                conflict
                for conflict in report.conflicts
                if conflict.source == ConflictSource.SLOT
                and conflict.status == SlotStatus.AVAILABLE.value
            ]
            if report.candidate.date is None or len(mergeable) != len(report.conflicts):
                report.unresolvable = True
                return
            report.merged = merge_window(report.candidate, mergeable)
            report.merged_ids = [conflict.id for conflict in mergeable]
            return

        shift_options = dict(
            max_adjustment_minutes=max_adjustment_minutes,
            direction=direction,
            allow_day_change=allow_day_change,
            day_start_hour=settings.teaching_day_start_hour,
            day_end_hour=settings.teaching_day_end_hour,
        )
        if strategy == ResolutionStrategy.AUTO_ADJUST:
            outcome = auto_adjust(report.candidate, against, **shift_options)
            if isinstance(outcome, Unresolvable):
                report.unresolvable = True
            else:
                report.adjusted = outcome
            return

        report.suggestions = suggest_alternatives(
            report.candidate,
            against,
            limit=settings.conflict_max_suggestions,
            **shift_options,
        )
