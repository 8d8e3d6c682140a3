# backend/lessonbook/services/slot_registry_service.py
"""
Slot Registry Service

Owns teacher availability: recurring templates, the concrete slots they
materialize into, ad hoc slots and blocked time. It is also the only code
that moves a slot through its status machine:

    available -> booked -> completed | no_show
    available -> cancelled
    booked    -> cancelled

Status writes are conditional updates keyed on (status, version). A writer
that loses a race gets a typed conflict; nothing is retried here.

The state-machine helpers (``claim``, ``release``, ``complete``,
``mark_no_show``, ``relist``) run inside the caller's unit of work. The
availability operations own their transactions.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    BookingConflictException,
    InvalidSlotTransitionException,
    NotFoundException,
    SlotInPastException,
    SlotNotFoundException,
    SlotUnavailableException,
    TimeConflictException,
    UnresolvableConflictException,
    ValidationException,
)
from ..core.timezone_utils import localize, next_weekday_on_or_after, slot_today
from ..domain.time_windows import (
    ConflictReport,
    ResolutionStrategy,
    ShiftDirection,
    TimeWindow,
    find_conflicts,
)
from ..models.schedule import (
    SLOT_TRANSITIONS,
    BlockedTime,
    ScheduleSlot,
    SlotStatus,
    TimeSlotTemplate,
)
from ..repositories import RepositoryFactory
from .base import BaseService, Clock
from .conflict_detector import AvailabilityConflictDetector

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480
MIN_WEEKS = 1
MAX_WEEKS = 52


@dataclass
class MaterializationResult:
    template_id: Optional[str]
    planned: List[date] = field(default_factory=list)
    created: List[ScheduleSlot] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    preview_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "preview_only": self.preview_only,
            "planned_dates": [d.isoformat() for d in self.planned],
            "created_slot_ids": [slot.id for slot in self.created],
            "skipped": self.skipped,
        }


@dataclass
class AvailabilityResult:
    slots: List[ScheduleSlot] = field(default_factory=list)
    templates: List[TimeSlotTemplate] = field(default_factory=list)
    cancelled_slot_ids: List[str] = field(default_factory=list)
    reports: List[ConflictReport] = field(default_factory=list)

    @property
    def conflicts(self) -> List[Dict[str, Any]]:
        return [report.to_dict() for report in self.reports if report.has_conflicts]


def build_window(
    start_time: time,
    end_time: time,
    on_date: Optional[date] = None,
    day_of_week: Optional[int] = None,
    bounded: bool = True,
) -> TimeWindow:
    """
    Validated TimeWindow; bad input becomes a ValidationException.

    ``bounded`` applies the lesson-length limits. Blocked time only needs
    start before end, so a whole day can be blocked.
    """
    try:
        window = TimeWindow(
            start_time=start_time, end_time=end_time, date=on_date, day_of_week=day_of_week
        )
    except ValueError as exc:
        raise ValidationException(str(exc), code="INVALID_WINDOW") from exc
    if bounded and not MIN_DURATION_MINUTES <= window.duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationException(
            f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes",
            code="INVALID_WINDOW",
            details={"duration_minutes": window.duration_minutes},
        )
    return window


class SlotRegistryService(BaseService):
    """Service for availability and the slot status machine."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conflict_detector: Optional[AvailabilityConflictDetector] = None,
    ):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_schedule_slot_repository(db)
        self.template_repository = RepositoryFactory.create_template_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_time_repository(db)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.conflict_detector = conflict_detector or AvailabilityConflictDetector(db, self.clock)

    # Reads

    def get_slot(self, slot_id: str, fresh: bool = False) -> ScheduleSlot:
        slot = self.slot_repository.get_by_id(slot_id, for_update=fresh, fresh=fresh)
        if slot is None:
            raise SlotNotFoundException(slot_id)
        return slot

    def get_template(self, template_id: str) -> TimeSlotTemplate:
        template = self.template_repository.get_by_id(template_id)
        if template is None:
            raise NotFoundException(
                "Template not found",
                code="TEMPLATE_NOT_FOUND",
                details={"template_id": template_id},
            )
        return template

    def list_slots(
        self,
        teacher_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        statuses: Optional[Sequence[str]] = None,
        include_seats: bool = False,
    ) -> List[ScheduleSlot]:
        return self.slot_repository.list_for_teacher(
            teacher_id, start_date, end_date, statuses, include_seats
        )

    def list_templates(self, teacher_id: str, active_only: bool = True) -> List[TimeSlotTemplate]:
        return self.template_repository.list_for_teacher(teacher_id, active_only)

    def seats_taken(self, slot: ScheduleSlot) -> int:
        if slot.is_group:
            return self.slot_repository.count_occupied_seats(slot.id)
        return 0 if slot.status in (SlotStatus.AVAILABLE.value, SlotStatus.CANCELLED.value) else 1

    def starts_at(self, slot: ScheduleSlot) -> datetime:
        return localize(slot.date, slot.start_time)

    def ends_at(self, slot: ScheduleSlot) -> datetime:
        return localize(slot.date, slot.end_time)

    def has_started(self, slot: ScheduleSlot) -> bool:
        return self.starts_at(slot) <= self.now()

    # Ad hoc slots and blocked time

    @BaseService.measure_operation("create_slot")
    def create_slot(
        self,
        teacher_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
        *,
        subject: Optional[str] = None,
        max_students: int = 1,
        override: bool = False,
    ) -> ScheduleSlot:
        window = build_window(start_time, end_time, on_date=on_date)
        self._require_future(window)
        self._require_capacity(max_students)
        with self.transaction():
            report = self.conflict_detector.check(teacher_id, [window])[0]
            if report.has_conflicts and not override:
                raise TimeConflictException([report.to_dict()])
            slot = self._insert_slot(teacher_id, window, subject=subject, max_students=max_students)
        self.log_operation("slot_created", slot_id=slot.id, teacher_id=teacher_id)
        return slot

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, slot_id: str) -> None:
        """Remove an unbooked future slot. Anything with history is kept."""
        with self.transaction():
            slot = self.get_slot(slot_id, fresh=True)
            if (
                slot.is_seat
                or slot.status != SlotStatus.AVAILABLE.value
                or self.has_started(slot)
                or self.slot_repository.count_occupied_seats(slot.id) > 0
            ):
                raise ValidationException(
                    "Only unbooked future slots can be deleted",
                    code="SLOT_NOT_DELETABLE",
                    details={"schedule_slot_id": slot_id, "status": slot.status},
                )
            for seat in self.slot_repository.seats_for(slot.id):
                self.slot_repository.delete(seat.id)
            self.slot_repository.delete(slot.id)
        self.log_operation("slot_deleted", slot_id=slot_id)

    def block_time(
        self,
        teacher_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
        reason: Optional[str] = None,
    ) -> BlockedTime:
        window = build_window(start_time, end_time, on_date=on_date, bounded=False)
        with self.transaction():
            return self.blocked_repository.create(
                teacher_id=teacher_id,
                date=window.date,
                start_time=window.start_time,
                end_time=window.end_time,
                reason=reason,
            )

    # Templates

    @BaseService.measure_operation("create_template")
    def create_template(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        *,
        subject: Optional[str] = None,
        max_students: int = 1,
        is_recurring: bool = True,
        recurrence_end_date: Optional[date] = None,
        weeks: Optional[int] = None,
        exception_dates: Iterable[date] = (),
        preview_only: bool = False,
        override: bool = False,
    ) -> MaterializationResult:
        """
        Create a weekly rule and materialize its upcoming occurrences.

        With ``preview_only`` nothing is written; the result lists the
        dates that would be created and the ones that would be skipped.
        """
        window = build_window(start_time, end_time, day_of_week=day_of_week)
        self._require_capacity(max_students)
        weeks = self._weeks(weeks)

        with self.transaction():
            report = self.conflict_detector.check(teacher_id, [window])[0]
            if report.has_conflicts and not override:
                raise TimeConflictException([report.to_dict()])

            template = TimeSlotTemplate(
                teacher_id=teacher_id,
                day_of_week=window.weekday,
                start_time=window.start_time,
                end_time=window.end_time,
                duration_minutes=window.duration_minutes,
                subject=subject,
                max_students=max_students,
                is_recurring=is_recurring,
                is_active=True,
                recurrence_end_date=recurrence_end_date,
            )
            if preview_only:
                return self._materialize(
                    template, weeks, exception_dates=exception_dates, preview_only=True
                )
            self.db.add(template)
            self.db.flush()
            result = self._materialize(template, weeks, exception_dates=exception_dates)

        self.log_operation(
            "template_created",
            template_id=template.id,
            teacher_id=teacher_id,
            slots_created=len(result.created),
            skipped=len(result.skipped),
        )
        return result

    @BaseService.measure_operation("update_template")
    def update_template(
        self, template_id: str, *, cascade: bool = False, **changes: Any
    ) -> TimeSlotTemplate:
        """
        Edit a template. Materialized slots are left alone unless ``cascade``
        is set, in which case unbooked future slots are regenerated.
        """
        allowed = {
            "day_of_week",
            "start_time",
            "end_time",
            "subject",
            "max_students",
            "is_active",
            "recurrence_end_date",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationException(
                "Unknown template fields",
                code="INVALID_FIELDS",
                details={"fields": sorted(unknown)},
            )

        with self.transaction():
            template = self.get_template(template_id)
            for key, value in changes.items():
                if value is not None:
                    setattr(template, key, value)
            window = build_window(
                template.start_time, template.end_time, day_of_week=template.day_of_week
            )
            self._require_capacity(template.max_students)
            template.duration_minutes = window.duration_minutes
            self.db.flush()

            if cascade:
                removed = self._remove_unbooked_future(template)
                created = 0
                if template.is_active:
                    created = len(self._materialize(template, settings.materialize_weeks).created)
                self.log_operation(
                    "template_cascaded",
                    template_id=template_id,
                    removed=removed,
                    slots_created=created,
                )
        return template

    @BaseService.measure_operation("delete_template")
    def delete_template(self, template_id: str, cascade: bool = False) -> int:
        """Delete a template; returns how many unbooked future slots went with it."""
        with self.transaction():
            template = self.get_template(template_id)
            removed = self._remove_unbooked_future(template) if cascade else 0
            self.template_repository.delete(template.id)
        self.log_operation("template_deleted", template_id=template_id, removed_slots=removed)
        return removed

    @BaseService.measure_operation("materialize_template")
    def materialize(
        self,
        template_id: str,
        weeks: Optional[int] = None,
        *,
        exception_dates: Iterable[date] = (),
        preview_only: bool = False,
    ) -> MaterializationResult:
        weeks = self._weeks(weeks)
        with self.transaction():
            template = self.get_template(template_id)
            return self._materialize(
                template, weeks, exception_dates=exception_dates, preview_only=preview_only
            )

    @BaseService.measure_operation("materialize_rolling_window")
    def materialize_rolling_window(self) -> int:
        """Extend every active recurring template; safe to run repeatedly."""
        created = 0
        for template in self.template_repository.list_active_recurring():
            with self.transaction():
                created += len(self._materialize(template, settings.materialize_weeks).created)
        return created

    def _materialize(
        self,
        template: TimeSlotTemplate,
        weeks: int,
        *,
        start_date: Optional[date] = None,
        exception_dates: Iterable[date] = (),
        preview_only: bool = False,
    ) -> MaterializationResult:
        result = MaterializationResult(template_id=template.id, preview_only=preview_only)
        today = slot_today(self.now())
        first = next_weekday_on_or_after(max(start_date or today, today), template.day_of_week)
        occurrences = weeks if template.is_recurring else 1
        skip_dates = set(exception_dates)

        windows = [
            TimeWindow(
                start_time=template.start_time,
                end_time=template.end_time,
                date=first + timedelta(weeks=week),
            )
            for week in range(occurrences)
        ]
        existing = self.conflict_detector.load_existing(
            template.teacher_id, windows, exclude_template_id=template.id
        )

        for window in windows:
            day = window.date
            if template.recurrence_end_date is not None and day > template.recurrence_end_date:
                break
            if day in skip_dates:
                result.skipped.append({"date": day.isoformat(), "reason": "exception_date"})
                continue
            if localize(day, window.start_time) <= self.now():
                result.skipped.append({"date": day.isoformat(), "reason": "past"})
                continue
            if self.slot_repository.find_exact(
                template.teacher_id, day, window.start_time, window.end_time
            ):
                result.skipped.append({"date": day.isoformat(), "reason": "exists"})
                continue
            conflicts = find_conflicts(window, existing)
            if conflicts:
                result.skipped.append(
                    {
                        "date": day.isoformat(),
                        "reason": "conflict",
                        "conflicts": [c.to_dict() for c in conflicts],
                    }
                )
                continue
            result.planned.append(day)
            if not preview_only:
                result.created.append(
                    self._insert_slot(
                        template.teacher_id,
                        window,
                        subject=template.subject,
                        max_students=template.max_students,
                        template_id=template.id,
                    )
                )
        return result

    def _remove_unbooked_future(self, template: TimeSlotTemplate) -> int:
        removed = 0
        today = slot_today(self.now())
        for slot in self.slot_repository.unbooked_future_for_template(template.id, today):
            if self.has_started(slot) or self.slot_repository.count_occupied_seats(slot.id):
                continue
            for seat in self.slot_repository.seats_for(slot.id):
                self.slot_repository.delete(seat.id)
            self.slot_repository.delete(slot.id)
            removed += 1
        return removed

    # Batch availability

    @BaseService.measure_operation("create_availability")
    def create_availability(
        self,
        teacher_id: str,
        windows: Sequence[TimeWindow],
        *,
        strategy: Union[ResolutionStrategy, str] = ResolutionStrategy.REJECT,
        override: bool = False,
        max_adjustment_minutes: int = 60,
        direction: Union[ShiftDirection, str] = ShiftDirection.ANY,
        allow_day_change: bool = False,
        subject: Optional[str] = None,
        max_students: int = 1,
        weeks: Optional[int] = None,
    ) -> AvailabilityResult:
        """
        Create dated slots and weekly templates in one all-or-nothing batch.

        Unresolved conflicts abort the whole batch with TimeConflict unless
        ``override`` is set. ``auto_adjust`` applies its adjusted windows;
        ``merge`` folds overlapping open slots into one window on override.
        """
        if not windows:
            raise ValidationException("At least one window is required", code="INVALID_WINDOW")
        strategy = ResolutionStrategy(strategy)
        self._require_capacity(max_students)
        weeks = self._weeks(weeks)
        for window in windows:
            build_window(window.start_time, window.end_time, window.date, window.day_of_week)
            if window.date is not None:
                self._require_future(window)

        result = AvailabilityResult()
        with self.transaction():
            result.reports = self.conflict_detector.check(
                teacher_id,
                windows,
                strategy=strategy,
                max_adjustment_minutes=max_adjustment_minutes,
                direction=direction,
                allow_day_change=allow_day_change,
            )

            to_apply: List[TimeWindow] = []
            to_cancel: List[str] = []
            unresolved: List[ConflictReport] = []
            for report in result.reports:
                if not report.has_conflicts:
                    to_apply.append(report.candidate)
                elif report.adjusted is not None:
                    to_apply.append(report.adjusted)
                elif report.merged is not None and override:
                    to_apply.append(report.merged)
                    to_cancel.extend(report.merged_ids)
                elif override:
                    to_apply.append(report.candidate)
                else:
                    unresolved.append(report)

            if unresolved:
                if strategy == ResolutionStrategy.AUTO_ADJUST:
                    raise UnresolvableConflictException(unresolved[0].candidate.to_dict())
                raise TimeConflictException(result.conflicts)

            for slot_id in to_cancel:
                self.cancel_open_slot(self.get_slot(slot_id, fresh=True))
                result.cancelled_slot_ids.append(slot_id)

            for window in to_apply:
                if window.date is not None:
                    result.slots.append(
                        self._insert_slot(
                            teacher_id, window, subject=subject, max_students=max_students
                        )
                    )
                    continue
                template = self.template_repository.create(
                    teacher_id=teacher_id,
                    day_of_week=window.weekday,
                    start_time=window.start_time,
                    end_time=window.end_time,
                    duration_minutes=window.duration_minutes,
                    subject=subject,
                    max_students=max_students,
                    is_recurring=True,
                    is_active=True,
                )
                result.templates.append(template)
                result.slots.extend(self._materialize(template, weeks).created)

        self.log_operation(
            "availability_created",
            teacher_id=teacher_id,
            slots=len(result.slots),
            templates=len(result.templates),
            conflicts=len(result.conflicts),
            strategy=strategy.value,
            override=override,
        )
        return result

    # Status machine; callers own the transaction

    def check_bookable(self, slot: ScheduleSlot) -> None:
        if slot.is_seat or slot.status != SlotStatus.AVAILABLE.value:
            raise SlotUnavailableException(slot.id, slot.status)
        if self.has_started(slot):
            raise SlotInPastException(slot.id)
        if slot.is_group and self.slot_repository.count_occupied_seats(slot.id) >= (
            slot.max_students
        ):
            raise SlotUnavailableException(slot.id, "full")

    def open_seats(self, slot: ScheduleSlot) -> int:
        if slot.is_group:
            return max(0, slot.max_students - self.slot_repository.count_occupied_seats(slot.id))
        return 1 if slot.status == SlotStatus.AVAILABLE.value else 0

    def held_slot_ids(self, slots: Sequence[ScheduleSlot]) -> Set[str]:
        """
        Slots whose open seats are all reserved by unexpired waitlist offers.

        A notified student has until ``notification_expires_at`` to take the
        offer; until then nobody else can book the seat.
        """
        offers = self.waitlist_repository.offers_on_slots(
            [slot.id for slot in slots], unexpired_at=self.now()
        )
        holders: Dict[str, Set[str]] = {}
        for entry in offers:
            holders.setdefault(entry.notified_slot_id, set()).add(entry.student_id)
        return {
            slot.id
            for slot in slots
            if slot.id in holders and len(holders[slot.id]) >= self.open_seats(slot)
        }

    def check_not_held(self, slot: ScheduleSlot, student_id: str) -> None:
        offers = self.waitlist_repository.offers_on_slots([slot.id], unexpired_at=self.now())
        holders = {entry.student_id for entry in offers}
        if not holders or student_id in holders:
            return
        if len(holders) >= self.open_seats(slot):
            raise SlotUnavailableException(slot.id, "held")

    def claim(self, slot: ScheduleSlot, student_id: str) -> ScheduleSlot:
        """
        available -> booked for ``student_id``.

        Returns the row the student now occupies: the slot itself, or a new
        seat row for a group slot.
        """
        self.check_bookable(slot)
        slot_id = slot.id
        version = slot.version

        if not slot.is_group:
            if not self.slot_repository.claim(slot_id, version, student_id):
                self._raise_lost_race(slot_id)
            return slot

        if not self.slot_repository.reserve_seat(slot_id, version):
            self._raise_lost_race(slot_id)
        if self.slot_repository.count_occupied_seats(slot_id) >= slot.max_students:
            raise SlotUnavailableException(slot_id, "full")
        return self.slot_repository.create(
            teacher_id=slot.teacher_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration_minutes=slot.duration_minutes,
            subject=slot.subject,
            status=SlotStatus.BOOKED.value,
            max_students=1,
            booked_by=student_id,
            parent_slot_id=slot_id,
            parent_template_id=slot.parent_template_id,
            version=1,
        )

    def release(self, slot: ScheduleSlot) -> ScheduleSlot:
        return self._transition(slot, SlotStatus.CANCELLED, booked_by=None)

    def complete(self, slot: ScheduleSlot) -> ScheduleSlot:
        return self._transition(slot, SlotStatus.COMPLETED)

    def mark_no_show(self, slot: ScheduleSlot) -> ScheduleSlot:
        return self._transition(slot, SlotStatus.NO_SHOW)

    def cancel_open_slot(self, slot: ScheduleSlot) -> ScheduleSlot:
        if slot.is_group and self.slot_repository.count_occupied_seats(slot.id):
            raise InvalidSlotTransitionException(
                slot.id, slot.status, SlotStatus.CANCELLED.value
            )
        return self._transition(slot, SlotStatus.CANCELLED)

    def relist(self, slot: ScheduleSlot) -> Optional[ScheduleSlot]:
        """Fresh available copy of a cancelled future slot, or None if not relistable."""
        if slot.status != SlotStatus.CANCELLED.value or slot.is_seat or self.has_started(slot):
            return None
        if self.slot_repository.find_exact(
            slot.teacher_id, slot.date, slot.start_time, slot.end_time
        ):
            return None
        copy = self.slot_repository.create(
            teacher_id=slot.teacher_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration_minutes=slot.duration_minutes,
            subject=slot.subject,
            status=SlotStatus.AVAILABLE.value,
            max_students=slot.max_students,
            parent_template_id=slot.parent_template_id,
            relisted_from_id=slot.id,
            version=1,
        )
        self.logger.info(
            "Slot relisted", extra={"slot_id": copy.id, "relisted_from_id": slot.id}
        )
        return copy

    def _transition(self, slot: ScheduleSlot, target: SlotStatus, **values: Any) -> ScheduleSlot:
        current = SlotStatus(slot.status)
        if target not in SLOT_TRANSITIONS[current]:
            raise InvalidSlotTransitionException(slot.id, current.value, target.value)
        if not self.slot_repository.transition(
            slot.id, slot.version, current.value, target.value, **values
        ):
            raise BookingConflictException(
                "The slot changed concurrently", details={"schedule_slot_id": slot.id}
            )
        return slot

    def _raise_lost_race(self, slot_id: str) -> None:
        current = self.slot_repository.get_by_id(slot_id, fresh=True)
        if current is None:
            raise SlotNotFoundException(slot_id)
        if current.status != SlotStatus.AVAILABLE.value:
            raise SlotUnavailableException(slot_id, current.status)
        raise BookingConflictException(
            "The slot changed while booking; nothing was charged",
            details={"schedule_slot_id": slot_id},
        )

    # Helpers

    def _insert_slot(
        self,
        teacher_id: str,
        window: TimeWindow,
        *,
        subject: Optional[str] = None,
        max_students: int = 1,
        template_id: Optional[str] = None,
    ) -> ScheduleSlot:
        return self.slot_repository.create(
            teacher_id=teacher_id,
            date=window.date,
            start_time=window.start_time,
            end_time=window.end_time,
            duration_minutes=window.duration_minutes,
            subject=subject,
            status=SlotStatus.AVAILABLE.value,
            max_students=max_students,
            parent_template_id=template_id,
            version=1,
        )

    def _require_future(self, window: TimeWindow) -> None:
        if localize(window.date, window.start_time) <= self.now():
            raise ValidationException(
                "Availability cannot start in the past",
                code="SLOT_IN_PAST",
                details=window.to_dict(),
            )

    @staticmethod
    def _require_capacity(max_students: int) -> None:
        if max_students is None or max_students < 1:
            raise ValidationException("max_students must be at least 1", code="INVALID_CAPACITY")

    @staticmethod
    def _weeks(weeks: Optional[int]) -> int:
        weeks = settings.materialize_weeks if weeks is None else weeks
        if not MIN_WEEKS <= weeks <= MAX_WEEKS:
            raise ValidationException(
                f"weeks must be between {MIN_WEEKS} and {MAX_WEEKS}",
                code="INVALID_WEEKS",
                details={"weeks": weeks},
            )
        return weeks
