# backend/lessonbook/repositories/schedule_repository.py
"""
Schedule repositories: concrete slots, recurring templates and blocked time.

Slot status changes are only ever written through the conditional helpers
here (``claim``, ``transition``, ``reserve_seat``). Each one matches on the
row's current status and version, so a lost race shows up as a False
return value instead of a silent overwrite.
"""

from __future__ import annotations

from datetime import date, time
import logging
from typing import Iterable, List, Optional, Sequence, cast

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.schedule import (
    OCCUPIED_STATUSES,
    BlockedTime,
    ScheduleSlot,
    SlotStatus,
    TimeSlotTemplate,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_UNSET = object()


class ScheduleSlotRepository(BaseRepository[ScheduleSlot]):
    def __init__(self, db: Session):
        super().__init__(db, ScheduleSlot)

    def list_for_teacher(
        self,
        teacher_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        statuses: Optional[Sequence[str]] = None,
        include_seats: bool = False,
    ) -> List[ScheduleSlot]:
        query = self.db.query(ScheduleSlot).filter(ScheduleSlot.teacher_id == teacher_id)
        if start_date is not None:
            query = query.filter(ScheduleSlot.date >= start_date)
        if end_date is not None:
            query = query.filter(ScheduleSlot.date <= end_date)
        if statuses:
            query = query.filter(ScheduleSlot.status.in_(list(statuses)))
        if not include_seats:
            query = query.filter(ScheduleSlot.parent_slot_id.is_(None))
        query = query.order_by(ScheduleSlot.date, ScheduleSlot.start_time, ScheduleSlot.id)
        return cast(List[ScheduleSlot], self._execute_query(query))

    def list_on_dates(
        self,
        teacher_id: str,
        dates: Iterable[date],
        statuses: Sequence[str] = (SlotStatus.AVAILABLE.value, SlotStatus.BOOKED.value),
    ) -> List[ScheduleSlot]:
        date_list = sorted(set(dates))
        if not date_list:
            return []
        query = (
            self.db.query(ScheduleSlot)
            .filter(
                ScheduleSlot.teacher_id == teacher_id,
                ScheduleSlot.date.in_(date_list),
                ScheduleSlot.status.in_(list(statuses)),
                ScheduleSlot.parent_slot_id.is_(None),
            )
            .order_by(ScheduleSlot.date, ScheduleSlot.start_time, ScheduleSlot.id)
        )
        return cast(List[ScheduleSlot], self._execute_query(query))

    def find_exact(
        self, teacher_id: str, on_date: date, start_time: time, end_time: time
    ) -> Optional[ScheduleSlot]:
        """A live top-level slot occupying exactly this window, if any."""
        query = self.db.query(ScheduleSlot).filter(
            ScheduleSlot.teacher_id == teacher_id,
            ScheduleSlot.date == on_date,
            ScheduleSlot.start_time == start_time,
            ScheduleSlot.end_time == end_time,
            ScheduleSlot.parent_slot_id.is_(None),
            ScheduleSlot.status != SlotStatus.CANCELLED.value,
        )
        return cast(Optional[ScheduleSlot], query.first())

    def count_occupied_seats(self, parent_slot_id: str) -> int:
        return (
            self.db.query(ScheduleSlot)
            .filter(
                ScheduleSlot.parent_slot_id == parent_slot_id,
                ScheduleSlot.status.in_(OCCUPIED_STATUSES),
            )
            .count()
        )

    def seats_for(self, parent_slot_id: str) -> List[ScheduleSlot]:
        query = (
            self.db.query(ScheduleSlot)
            .filter(ScheduleSlot.parent_slot_id == parent_slot_id)
            .order_by(ScheduleSlot.created_at, ScheduleSlot.id)
        )
        return cast(List[ScheduleSlot], self._execute_query(query))

    def claim(self, slot_id: str, expected_version: int, student_id: str) -> bool:
        """available -> booked, only if nobody else claimed the slot first."""
        return self.compare_and_swap(
            slot_id,
            {"status": SlotStatus.AVAILABLE.value, "version": expected_version},
            {
                "status": SlotStatus.BOOKED.value,
                "booked_by": student_id,
                "version": expected_version + 1,
            },
        )

    def reserve_seat(self, parent_slot_id: str, expected_version: int) -> bool:
        """Serialize seat allocation on a group slot by bumping the parent's version."""
        return self.compare_and_swap(
            parent_slot_id,
            {"status": SlotStatus.AVAILABLE.value, "version": expected_version},
            {"version": expected_version + 1},
        )

    def transition(
        self,
        slot_id: str,
        expected_version: int,
        from_status: str,
        to_status: str,
        booked_by: object = _UNSET,
    ) -> bool:
        values = {"status": to_status, "version": expected_version + 1}
        if booked_by is not _UNSET:
            values["booked_by"] = booked_by
        return self.compare_and_swap(
            slot_id, {"status": from_status, "version": expected_version}, values
        )

    def booked_on_or_before(self, cutoff: date) -> List[ScheduleSlot]:
        """Booked slots and seats dated on or before ``cutoff``; callers refine by end time."""
        query = (
            self.db.query(ScheduleSlot)
            .filter(
                ScheduleSlot.status == SlotStatus.BOOKED.value,
                ScheduleSlot.date <= cutoff,
            )
            .order_by(ScheduleSlot.date, ScheduleSlot.end_time, ScheduleSlot.id)
        )
        return cast(List[ScheduleSlot], self._execute_query(query))

    def open_for_window(
        self,
        teacher_id: str,
        start_time: time,
        end_time: time,
        from_date: date,
        on_date: Optional[date] = None,
    ) -> List[ScheduleSlot]:
        """Available top-level slots matching a wall-clock window."""
        query = self.db.query(ScheduleSlot).filter(
            ScheduleSlot.teacher_id == teacher_id,
            ScheduleSlot.start_time == start_time,
            ScheduleSlot.end_time == end_time,
            ScheduleSlot.status == SlotStatus.AVAILABLE.value,
            ScheduleSlot.parent_slot_id.is_(None),
        )
        if on_date is not None:
            query = query.filter(ScheduleSlot.date == on_date)
        else:
            query = query.filter(ScheduleSlot.date >= from_date)
        query = query.order_by(ScheduleSlot.date, ScheduleSlot.id)
        return cast(List[ScheduleSlot], self._execute_query(query))

    def unbooked_future_for_template(self, template_id: str, from_date: date) -> List[ScheduleSlot]:
        query = self.db.query(ScheduleSlot).filter(
            and_(
                ScheduleSlot.parent_template_id == template_id,
                ScheduleSlot.date >= from_date,
                ScheduleSlot.status == SlotStatus.AVAILABLE.value,
                ScheduleSlot.parent_slot_id.is_(None),
            )
        )
        return cast(List[ScheduleSlot], self._execute_query(query))


class TimeSlotTemplateRepository(BaseRepository[TimeSlotTemplate]):
    def __init__(self, db: Session):
        super().__init__(db, TimeSlotTemplate)

    def list_for_teacher(self, teacher_id: str, active_only: bool = True) -> List[TimeSlotTemplate]:
        query = self.db.query(TimeSlotTemplate).filter(TimeSlotTemplate.teacher_id == teacher_id)
        if active_only:
            query = query.filter(TimeSlotTemplate.is_active.is_(True))
        query = query.order_by(
            TimeSlotTemplate.day_of_week, TimeSlotTemplate.start_time, TimeSlotTemplate.id
        )
        return cast(List[TimeSlotTemplate], self._execute_query(query))

    def list_active_recurring(self) -> List[TimeSlotTemplate]:
        query = (
            self.db.query(TimeSlotTemplate)
            .filter(
                TimeSlotTemplate.is_active.is_(True),
                TimeSlotTemplate.is_recurring.is_(True),
            )
            .order_by(TimeSlotTemplate.teacher_id, TimeSlotTemplate.id)
        )
        return cast(List[TimeSlotTemplate], self._execute_query(query))


class BlockedTimeRepository(BaseRepository[BlockedTime]):
    def __init__(self, db: Session):
        super().__init__(db, BlockedTime)

    def list_on_dates(self, teacher_id: str, dates: Iterable[date]) -> List[BlockedTime]:
        date_list = sorted(set(dates))
        if not date_list:
            return []
        query = (
            self.db.query(BlockedTime)
            .filter(BlockedTime.teacher_id == teacher_id, BlockedTime.date.in_(date_list))
            .order_by(BlockedTime.date, BlockedTime.start_time, BlockedTime.id)
        )
        return cast(List[BlockedTime], self._execute_query(query))
