# backend/lessonbook/tasks/notification_tasks.py
"""
Webhook delivery for domain events queued by CeleryNotificationSender.

Transient failures (timeouts, connection errors, 5xx) retry with backoff;
4xx responses are dropped since resending the same payload cannot succeed.
"""

from __future__ import annotations

from typing import Any, Dict

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
import httpx

from lessonbook.core.config import settings
from lessonbook.services.notification_service import WebhookNotificationSender
from lessonbook.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@celery_app.task(
    name="lessonbook.tasks.notification_tasks.deliver_notification",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    queue="notifications",
)
def deliver_notification(
    self: "Task[Any, Any]", event_type: str, payload: Dict[str, Any]
) -> bool:
    """Returns whether the event was delivered."""
    url = settings.notification_webhook_url
    if not url:
        logger.info("No notification webhook configured; dropping %s", event_type)
        return False

    try:
        WebhookNotificationSender(url).send(event_type, payload)
    except httpx.HTTPStatusError as exc:
        if exc.response.status_code < 500:
            logger.warning(
                "Notification %s rejected with %s", event_type, exc.response.status_code
            )
            return False
        raise self.retry(exc=exc, countdown=_next_backoff(self.request.retries + 1))
    except httpx.HTTPError as exc:
        raise self.retry(exc=exc, countdown=_next_backoff(self.request.retries + 1))
    return True
