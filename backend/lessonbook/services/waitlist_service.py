# backend/lessonbook/services/waitlist_service.py
"""
Waitlist Service

Queues students for slot patterns that are currently full and offers them
freed slots in order: priority descending, then join time ascending.

Positions count waiting entries only and are recomputed for the whole
pattern whenever the queue changes, so they are always dense (1, 2, 3...).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AlreadyOnWaitlistException,
    DomainException,
    SlotCurrentlyAvailableException,
    SlotInPastException,
    SlotNotFoundException,
    SlotUnavailableException,
    ValidationException,
    WaitlistEntryNotFoundException,
)
from ..core.timezone_utils import as_utc, localize, slot_today
from ..events import EventPublisher
from ..events.booking_events import WaitlistPromoted
from ..models.schedule import ScheduleSlot, SlotStatus
from ..models.waitlist import ACTIVE_WAITLIST_STATUSES, WaitlistEntry, WaitlistStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService, Clock
from .slot_registry_service import build_window

logger = logging.getLogger(__name__)

MIN_PRIORITY = 1
MAX_PRIORITY = 10
MIN_EXTEND_HOURS = 1
MAX_EXTEND_HOURS = 168

# Booking failures that mean the slot itself is gone, not just this student
_SLOT_GONE = (SlotUnavailableException, SlotNotFoundException, SlotInPastException)


def _later(stored: Optional[datetime], now: datetime) -> datetime:
    return max(as_utc(stored), now) if stored is not None else now


@dataclass(frozen=True)
class WaitlistJoinResult:
    entry_id: str
    position: int
    estimated_wait_hours: float
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "waitlist_entry_id": self.entry_id,
            "position": self.position,
            "estimated_wait_hours": self.estimated_wait_hours,
            "expires_at": self.expires_at,
        }


class WaitlistService(BaseService):
    """Service for the per-pattern waitlist queue."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        engine=None,
        publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db, clock)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.slot_repository = RepositoryFactory.create_schedule_slot_repository(db)
        self.publisher = publisher or EventPublisher()
        self._engine = engine

    @property
    def engine(self):
        if self._engine is None:
            from .booking_engine import BookingTransactionEngine

            self._engine = BookingTransactionEngine(
                self.db, self.clock, publisher=self.publisher, waitlist=self
            )
        return self._engine

    def get_entry(self, entry_id: str) -> WaitlistEntry:
        entry = self.waitlist_repository.get_by_id(entry_id, fresh=True)
        if entry is None:
            raise WaitlistEntryNotFoundException(entry_id)
        return entry

    def list_for_teacher(
        self, teacher_id: str, statuses: Optional[Sequence[str]] = None
    ) -> List[WaitlistEntry]:
        return self.waitlist_repository.list_for_teacher(teacher_id, statuses)

    def list_for_student(self, student_id: str) -> List[WaitlistEntry]:
        return self.waitlist_repository.list_for_student(student_id)

    def estimated_wait_hours(self, position: Optional[int]) -> float:
        return float((position or 0) * settings.waitlist_hours_per_position)

    # Join

    @BaseService.measure_operation("join_waitlist")
    def join(
        self,
        teacher_id: str,
        student_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        *,
        preferred_date: Optional[date] = None,
        priority: int = MIN_PRIORITY,
        auto_book: bool = False,
        notes: Optional[str] = None,
    ) -> WaitlistJoinResult:
        """
        Queue a student for a slot pattern.

        Raises SlotCurrentlyAvailable when a matching slot can be booked
        right now, and AlreadyOnWaitlist for a second active entry.
        """
        window = build_window(start_time, end_time, on_date=preferred_date, day_of_week=day_of_week)
        self._require_priority(priority)
        now = self.now()
        if preferred_date is not None and preferred_date < slot_today(now):
            raise ValidationException(
                "preferred_date is in the past",
                code="INVALID_WINDOW",
                details={"preferred_date": preferred_date.isoformat()},
            )

        with self.transaction():
            open_slot = self._open_slot_for(
                teacher_id, window.weekday, start_time, end_time, preferred_date
            )
            if open_slot is not None:
                raise SlotCurrentlyAvailableException(open_slot.id)

            existing = self.waitlist_repository.active_for_student(
                student_id, teacher_id, window.weekday, start_time, end_time, preferred_date
            )
            if existing is not None:
                raise AlreadyOnWaitlistException(existing.id)

            entry = self.waitlist_repository.create(
                teacher_id=teacher_id,
                student_id=student_id,
                day_of_week=window.weekday,
                start_time=start_time,
                end_time=end_time,
                preferred_date=preferred_date,
                priority=priority,
                status=WaitlistStatus.WAITING.value,
                auto_book=auto_book,
                notes=notes,
                joined_at=now,
                expires_at=now + timedelta(days=settings.waitlist_entry_ttl_days),
            )
            self._recompute_positions(teacher_id, window.weekday, start_time, end_time)
            result = WaitlistJoinResult(
                entry_id=entry.id,
                position=entry.position,
                estimated_wait_hours=self.estimated_wait_hours(entry.position),
                expires_at=entry.expires_at,
            )

        self.log_operation(
            "waitlist_joined",
            entry_id=result.entry_id,
            teacher_id=teacher_id,
            student_id=student_id,
            position=result.position,
        )
        return result

    def _open_slot_for(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        on_date: Optional[date],
    ) -> Optional[ScheduleSlot]:
        now = self.now()
        for slot in self.slot_repository.open_for_window(
            teacher_id, start_time, end_time, slot_today(now), on_date
        ):
            if slot.date.weekday() != day_of_week:
                continue
            if localize(slot.date, slot.start_time) <= now:
                continue
            open_seats = 1
            if slot.is_group:
                open_seats = slot.max_students - self.slot_repository.count_occupied_seats(slot.id)
            offers = self.waitlist_repository.offers_on_slots([slot.id], unexpired_at=now)
            if len({entry.student_id for entry in offers}) >= open_seats:
                continue
            return slot
        return None

    # Teacher management

    @BaseService.measure_operation("promote_waitlist_entry")
    def promote(self, entry_id: str, priority: Optional[int] = None) -> WaitlistEntry:
        """
        Move an entry up the queue.

        Without an explicit priority the entry goes one above the current
        top of its pattern, capped at the maximum priority.
        """
        with self.transaction():
            entry = self.get_entry(entry_id)
            if entry.status != WaitlistStatus.WAITING.value:
                raise ValidationException(
                    "Only waiting entries can be reordered",
                    code="ENTRY_NOT_WAITING",
                    details={"waitlist_entry_id": entry_id, "status": entry.status},
                )
            if priority is None:
                queue = self.waitlist_repository.in_pattern(*entry.pattern_key)
                top = max((other.priority for other in queue), default=entry.priority)
                priority = min(MAX_PRIORITY, top + 1)
            self._require_priority(priority)
            entry.priority = priority
            self.db.flush()
            self._recompute_positions(*entry.pattern_key)
        self.log_operation("waitlist_promoted", entry_id=entry_id, priority=priority)
        return entry

    @BaseService.measure_operation("remove_waitlist_entry")
    def remove(self, entry_id: str) -> WaitlistEntry:
        with self.transaction():
            entry = self.get_entry(entry_id)
            if entry.status not in ACTIVE_WAITLIST_STATUSES:
                raise ValidationException(
                    "Entry is no longer active",
                    code="ENTRY_NOT_ACTIVE",
                    details={"waitlist_entry_id": entry_id, "status": entry.status},
                )
            entry.status = WaitlistStatus.REMOVED.value
            entry.position = None
            self.db.flush()
            self._recompute_positions(*entry.pattern_key)
        self.log_operation("waitlist_removed", entry_id=entry_id)
        return entry

    @BaseService.measure_operation("extend_waitlist_entry")
    def extend(self, entry_id: str, hours: int) -> WaitlistEntry:
        """Push out the response deadline of a notified entry, or the expiry of a waiting one."""
        if not MIN_EXTEND_HOURS <= hours <= MAX_EXTEND_HOURS:
            raise ValidationException(
                f"hours must be between {MIN_EXTEND_HOURS} and {MAX_EXTEND_HOURS}",
                code="INVALID_EXTENSION",
                details={"hours": hours},
            )
        with self.transaction():
            entry = self.get_entry(entry_id)
            delta = timedelta(hours=hours)
            now = self.now()
            if entry.status == WaitlistStatus.NOTIFIED.value:
                entry.notification_expires_at = _later(entry.notification_expires_at, now) + delta
            elif entry.status == WaitlistStatus.WAITING.value:
                entry.expires_at = _later(entry.expires_at, now) + delta
            else:
                raise ValidationException(
                    "Entry is no longer active",
                    code="ENTRY_NOT_ACTIVE",
                    details={"waitlist_entry_id": entry_id, "status": entry.status},
                )
            self.db.flush()
        return entry

    # Promotion

    @BaseService.measure_operation("offer_freed_slot")
    def on_slot_freed(
        self, slot_id: str, exclude_ids: Iterable[str] = ()
    ) -> Optional[WaitlistEntry]:
        """
        Offer a freed slot to the queue.

        The first waiting entry for the slot's pattern is notified. If it
        asked for auto-booking the slot is booked for it immediately; a
        failed auto-book reverts the entry to waiting and the offer moves
        on to the next entry. Returns the entry that ended up holding the
        offer, if any.
        """
        excluded = list(exclude_ids)
        while True:
            with self.transaction():
                slot = self.slot_repository.get_by_id(slot_id, fresh=True)
                if slot is None or not self._offerable(slot):
                    return None
                candidates = self.waitlist_repository.candidates_for_date(
                    slot.teacher_id,
                    slot.date.weekday(),
                    slot.start_time,
                    slot.end_time,
                    slot.date,
                    exclude_ids=excluded,
                )
                if not candidates:
                    return None
                entry = candidates[0]
                self._mark_notified(entry, slot)

            if not entry.auto_book:
                self._announce(entry, slot_id, auto_booked=False)
                return entry

            try:
                self.engine.book(slot_id, entry.student_id, waitlist_entry_id=entry.id)
            except DomainException as exc:
                self.logger.info(
                    "Waitlist auto-book failed",
                    extra={"entry_id": entry.id, "slot_id": slot_id, "code": exc.code},
                )
                self._revert(entry.id)
                if isinstance(exc, _SLOT_GONE):
                    return None
                excluded.append(entry.id)
                continue

            self._announce(entry, slot_id, auto_booked=True)
            return entry

    def _offerable(self, slot: ScheduleSlot) -> bool:
        if slot.is_seat or slot.status != SlotStatus.AVAILABLE.value:
            return False
        if localize(slot.date, slot.start_time) <= self.now():
            return False
        if slot.is_group:
            return self.slot_repository.count_occupied_seats(slot.id) < slot.max_students
        return True

    def _mark_notified(self, entry: WaitlistEntry, slot: ScheduleSlot) -> None:
        now = self.now()
        entry.status = WaitlistStatus.NOTIFIED.value
        entry.notified_at = now
        entry.notification_expires_at = now + timedelta(
            hours=settings.waitlist_notify_expiry_hours
        )
        entry.notified_slot_id = slot.id
        entry.position = None
        self.db.flush()
        self._recompute_positions(*entry.pattern_key)

    def _revert(self, entry_id: str) -> None:
        with self.transaction():
            entry = self.get_entry(entry_id)
            if entry.status != WaitlistStatus.NOTIFIED.value:
                return
            self._reset_to_waiting(entry)
            self.db.flush()
            self._recompute_positions(*entry.pattern_key)

    def withdraw_offers(self, slot_id: str) -> List[WaitlistEntry]:
        """
        Put entries still notified for ``slot_id`` back in the queue.

        Called once the slot has been taken; runs in the caller's
        transaction. The entries keep their priority and join time, so
        they return to their old place in line.
        """
        offers = self.waitlist_repository.offers_on_slots([slot_id])
        if not offers:
            return []
        for entry in offers:
            self._reset_to_waiting(entry)
        self.db.flush()
        for pattern in sorted({entry.pattern_key for entry in offers}, key=repr):
            self._recompute_positions(*pattern)
        self.logger.info(
            "Waitlist offers withdrawn",
            extra={"slot_id": slot_id, "entry_ids": [entry.id for entry in offers]},
        )
        return offers

    @staticmethod
    def _reset_to_waiting(entry: WaitlistEntry) -> None:
        entry.status = WaitlistStatus.WAITING.value
        entry.notified_at = None
        entry.notification_expires_at = None
        entry.notified_slot_id = None

    def _announce(self, entry: WaitlistEntry, slot_id: str, auto_booked: bool) -> None:
        self.log_operation(
            "waitlist_offer",
            entry_id=entry.id,
            slot_id=slot_id,
            student_id=entry.student_id,
            auto_booked=auto_booked,
        )
        self.publisher.publish(
            WaitlistPromoted(
                waitlist_entry_id=entry.id,
                student_id=entry.student_id,
                teacher_id=entry.teacher_id,
                schedule_slot_id=slot_id,
                respond_by=entry.notification_expires_at,
                auto_booked=auto_booked,
            )
        )

    # Housekeeping

    @BaseService.measure_operation("expire_waitlist_notifications")
    def expire_notifications(self) -> Dict[str, int]:
        """
        Revert unanswered notifications and expire stale waiting entries.

        Each freed offer moves on to the next waiting entry. Running this
        twice in a row changes nothing the second time.
        """
        now = self.now()
        reoffer: Dict[str, List[str]] = {}
        with self.transaction():
            patterns = set()
            lapsed = self.waitlist_repository.notifications_expired_before(now)
            for entry in lapsed:
                if entry.notified_slot_id:
                    reoffer.setdefault(entry.notified_slot_id, []).append(entry.id)
                self._reset_to_waiting(entry)
                patterns.add(entry.pattern_key)

            stale = self.waitlist_repository.waiting_expired_before(now)
            for entry in stale:
                entry.status = WaitlistStatus.EXPIRED.value
                entry.position = None
                patterns.add(entry.pattern_key)

            self.db.flush()
            for pattern in sorted(patterns, key=repr):
                self._recompute_positions(*pattern)

        for slot_id, skipped in reoffer.items():
            self.on_slot_freed(slot_id, exclude_ids=skipped)

        prometheus_metrics.record_housekeeping("waitlist_notifications_reverted", len(lapsed))
        prometheus_metrics.record_housekeeping("waitlist_entries_expired", len(stale))
        return {"reverted": len(lapsed), "expired": len(stale)}

    # Helpers

    def _recompute_positions(
        self, teacher_id: str, day_of_week: int, start_time: time, end_time: time
    ) -> None:
        queue = self.waitlist_repository.in_pattern(teacher_id, day_of_week, start_time, end_time)
        for index, entry in enumerate(queue, start=1):
            entry.position = index
        self.db.flush()

    @staticmethod
    def _require_priority(priority: int) -> None:
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise ValidationException(
                f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}",
                code="INVALID_PRIORITY",
                details={"priority": priority},
            )
