# backend/lessonbook/tasks/celery_app.py
"""
Celery application for lessonbook background work.

Redis is both broker and result backend. Housekeeping jobs (no-show sweep,
waitlist expiry, template materialization) run on the ``maintenance``
queue; webhook deliveries run on ``notifications`` so a slow receiver
never delays the sweeps.

Worker:  celery -A lessonbook.tasks.celery_app worker -Q maintenance,notifications
Beat:    celery -A lessonbook.tasks.celery_app beat
"""

from datetime import datetime, timezone
import logging
import os
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from lessonbook.core.config import settings
from lessonbook.core.logging_config import setup_logging as configure_app_logging

logger = logging.getLogger(__name__)

TASK_MODULES = (
    "lessonbook.tasks.booking_tasks",
    "lessonbook.tasks.notification_tasks",
)

TASK_ROUTES = {
    "lessonbook.tasks.booking_tasks.*": {"queue": "maintenance"},
    "lessonbook.tasks.notification_tasks.*": {"queue": "notifications"},
}


def create_celery_app() -> Celery:
    # CELERY_BROKER_URL wins over settings.redis_url so a worker can point elsewhere
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.redis_url
    app = Celery(
        "lessonbook",
        broker=broker_url,
        backend=os.getenv("CELERY_RESULT_BACKEND") or broker_url,
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=settings.slot_timezone,
        enable_utc=True,
        # Housekeeping jobs are idempotent, so redelivery after a crash is safe
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        task_soft_time_limit=240,
        task_time_limit=300,
        worker_hijack_root_logger=False,
        imports=TASK_MODULES,
        task_routes=TASK_ROUTES,
    )

    from lessonbook.tasks.beat_schedule import get_beat_schedule

    app.conf.beat_schedule = get_beat_schedule(settings.environment)
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Use the application's logging setup instead of Celery's."""
    configure_app_logging()


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Logs failures and retries with the task id attached."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.error(
            "Task %s[%s] failed: %s",
            self.name,
            task_id,
            exc,
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger.warning(
            "Task %s[%s] retry %s: %s",
            self.name,
            task_id,
            self.request.retries,
            exc,
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "retry_count": self.request.retries,
            },
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)


@celery_app.task(name="lessonbook.tasks.health_check")  # type: ignore[misc]
def health_check() -> Dict[str, str]:
    """Liveness check for workers: ``celery call lessonbook.tasks.health_check``."""
    current = celery_app.current_task
    return {
        "status": "healthy",
        "worker": (current.request.hostname if current else None) or "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
