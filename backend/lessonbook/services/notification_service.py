# backend/lessonbook/services/notification_service.py
"""
Notification senders.

Delivery itself belongs to an external service. These senders hand an
event to it: by logging (development), by posting to a webhook, or by
queueing the webhook post on Celery so request handlers never wait on it.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


class LoggingNotificationSender:
    """Records events in the application log only."""

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notification event %s",
            event_type,
            extra={"event_type": event_type, "payload": payload},
        )


class WebhookNotificationSender:
    """POSTs the event to the external notification service."""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = timeout or settings.notification_timeout_seconds

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        response = httpx.post(
            self.url,
            json={"event_type": event_type, "payload": payload},
            timeout=self.timeout,
        )
        response.raise_for_status()


class CeleryNotificationSender:
    """Queues webhook delivery on the notifications queue."""

    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        from ..tasks.notification_tasks import deliver_notification

        deliver_notification.delay(event_type, payload)


def default_sender():
    url = settings.notification_webhook_url
    if not url:
        return LoggingNotificationSender()
    if settings.notification_dispatch == "celery":
        return CeleryNotificationSender()
    return WebhookNotificationSender(url)
