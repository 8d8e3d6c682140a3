# backend/lessonbook/repositories/waitlist_repository.py
"""Waitlist Repository."""

from __future__ import annotations

from datetime import date, datetime, time
import logging
from typing import List, Optional, Sequence, cast

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.waitlist import ACTIVE_WAITLIST_STATUSES, WaitlistEntry, WaitlistStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WaitlistRepository(BaseRepository[WaitlistEntry]):
    def __init__(self, db: Session):
        super().__init__(db, WaitlistEntry)

    def _pattern_query(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
    ):
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.teacher_id == teacher_id,
            WaitlistEntry.day_of_week == day_of_week,
            WaitlistEntry.start_time == start_time,
            WaitlistEntry.end_time == end_time,
        )

    def in_pattern(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        statuses: Sequence[str] = (WaitlistStatus.WAITING.value,),
    ) -> List[WaitlistEntry]:
        """Entries for a pattern in queue order: priority desc, joined_at asc."""
        query = (
            self._pattern_query(teacher_id, day_of_week, start_time, end_time)
            .filter(WaitlistEntry.status.in_(list(statuses)))
            .order_by(
                WaitlistEntry.priority.desc(),
                WaitlistEntry.joined_at.asc(),
                WaitlistEntry.id.asc(),
            )
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def candidates_for_date(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        on_date: date,
        exclude_ids: Sequence[str] = (),
    ) -> List[WaitlistEntry]:
        """Waiting entries that accept a slot on ``on_date``, in queue order."""
        query = self._pattern_query(teacher_id, day_of_week, start_time, end_time).filter(
            WaitlistEntry.status == WaitlistStatus.WAITING.value,
            or_(WaitlistEntry.preferred_date.is_(None), WaitlistEntry.preferred_date == on_date),
        )
        if exclude_ids:
            query = query.filter(WaitlistEntry.id.notin_(list(exclude_ids)))
        query = query.order_by(
            WaitlistEntry.priority.desc(),
            WaitlistEntry.joined_at.asc(),
            WaitlistEntry.id.asc(),
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def active_for_student(
        self,
        student_id: str,
        teacher_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        preferred_date: Optional[date] = None,
    ) -> Optional[WaitlistEntry]:
        query = self._pattern_query(teacher_id, day_of_week, start_time, end_time).filter(
            WaitlistEntry.student_id == student_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
        if preferred_date is None:
            query = query.filter(WaitlistEntry.preferred_date.is_(None))
        else:
            query = query.filter(
                or_(
                    WaitlistEntry.preferred_date.is_(None),
                    WaitlistEntry.preferred_date == preferred_date,
                )
            )
        return cast(Optional[WaitlistEntry], query.first())

    def notifications_expired_before(self, now: datetime) -> List[WaitlistEntry]:
        query = (
            self.db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
                WaitlistEntry.notification_expires_at.isnot(None),
                WaitlistEntry.notification_expires_at < now,
            )
            .order_by(WaitlistEntry.notification_expires_at, WaitlistEntry.id)
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def waiting_expired_before(self, now: datetime) -> List[WaitlistEntry]:
        query = self.db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.WAITING.value,
            WaitlistEntry.expires_at.isnot(None),
            WaitlistEntry.expires_at < now,
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def list_for_teacher(self, teacher_id: str, statuses: Optional[Sequence[str]] = None):
        query = self.db.query(WaitlistEntry).filter(WaitlistEntry.teacher_id == teacher_id)
        if statuses:
            query = query.filter(WaitlistEntry.status.in_(list(statuses)))
        query = query.order_by(
            WaitlistEntry.day_of_week,
            WaitlistEntry.start_time,
            WaitlistEntry.priority.desc(),
            WaitlistEntry.joined_at.asc(),
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def list_for_student(self, student_id: str) -> List[WaitlistEntry]:
        query = (
            self.db.query(WaitlistEntry)
            .filter(WaitlistEntry.student_id == student_id)
            .order_by(WaitlistEntry.joined_at.desc())
        )
        return cast(List[WaitlistEntry], self._execute_query(query))

    def offers_on_slots(
        self, slot_ids: Sequence[str], unexpired_at: Optional[datetime] = None
    ) -> List[WaitlistEntry]:
        """
        Notified entries offered one of ``slot_ids``.

        With ``unexpired_at`` only offers still open at that instant are returned.
        """
        if not slot_ids:
            return []
        query = self.db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
            WaitlistEntry.notified_slot_id.in_(list(slot_ids)),
        )
        if unexpired_at is not None:
            query = query.filter(
                or_(
                    WaitlistEntry.notification_expires_at.is_(None),
                    WaitlistEntry.notification_expires_at >= unexpired_at,
                )
            )
        query = query.order_by(WaitlistEntry.notified_at, WaitlistEntry.id)
        return cast(List[WaitlistEntry], self._execute_query(query))
