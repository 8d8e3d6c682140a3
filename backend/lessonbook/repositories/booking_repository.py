# backend/lessonbook/repositories/booking_repository.py
"""Booking Repository."""

from __future__ import annotations

import logging
from typing import List, Optional, cast

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_with_slot(self, booking_id: str) -> Optional[Booking]:
        return cast(
            Optional[Booking],
            self.db.query(Booking)
            .options(joinedload(Booking.slot), joinedload(Booking.seat))
            .filter(Booking.id == booking_id)
            .first(),
        )

    def confirmed_for_slot(self, slot_id: str) -> Optional[Booking]:
        """The live booking occupying a single-seat slot or a group seat."""
        return cast(
            Optional[Booking],
            self.db.query(Booking)
            .filter(
                or_(Booking.schedule_slot_id == slot_id, Booking.seat_slot_id == slot_id),
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .order_by(Booking.booked_at.desc())
            .first(),
        )

    def list_for_student(
        self, student_id: str, teacher_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[Booking]:
        query = self.db.query(Booking).filter(Booking.student_id == student_id)
        if teacher_id:
            query = query.filter(Booking.teacher_id == teacher_id)
        if status:
            query = query.filter(Booking.status == status)
        return cast(
            List[Booking], self._execute_query(query.order_by(Booking.booked_at.desc()))
        )

    def list_for_teacher(self, teacher_id: str, status: Optional[str] = None) -> List[Booking]:
        query = self.db.query(Booking).filter(Booking.teacher_id == teacher_id)
        if status:
            query = query.filter(Booking.status == status)
        return cast(
            List[Booking], self._execute_query(query.order_by(Booking.booked_at.desc()))
        )
