# backend/lessonbook/tasks/booking_tasks.py
"""
Housekeeping jobs: the no-show sweep, waitlist expiry and template
materialization.

Each task opens its own session; the services commit per unit of work.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from lessonbook.database import SessionLocal
from lessonbook.services.booking_engine import BookingTransactionEngine
from lessonbook.services.slot_registry_service import SlotRegistryService
from lessonbook.tasks.celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="lessonbook.tasks.booking_tasks.sweep_no_shows", max_retries=0)
def sweep_no_shows() -> int:
    """Mark lessons nobody completed as no_show. Returns how many were swept."""
    with _session_scope() as session:
        swept = BookingTransactionEngine(session).sweep_no_shows()
    if swept:
        logger.info("Swept %s bookings to no_show", swept)
    return swept


@celery_app.task(
    name="lessonbook.tasks.booking_tasks.expire_waitlist_notifications", max_retries=0
)
def expire_waitlist_notifications() -> Dict[str, int]:
    with _session_scope() as session:
        result = BookingTransactionEngine(session).waitlist.expire_notifications()
    if any(result.values()):
        logger.info("Waitlist housekeeping: %s", result)
    return result


@celery_app.task(name="lessonbook.tasks.booking_tasks.materialize_templates", max_retries=0)
def materialize_templates() -> int:
    with _session_scope() as session:
        created = SlotRegistryService(session).materialize_rolling_window()
    logger.info("Materialized %s slots from recurring templates", created)
    return created
