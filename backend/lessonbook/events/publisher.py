"""Event publisher - hands domain events to the notification sender."""
from datetime import date, datetime, time
import logging
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


class NotificationSender(Protocol):
    def send(self, event_type: str, payload: Dict[str, Any]) -> None:
        ...


def serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Convert date/time values to ISO strings for JSON transport."""
    result = {}
    for key, value in payload.items():
        if isinstance(value, (datetime, date, time)):
            result[key] = value.isoformat()
        else:
            result[key] = value
    return result


class EventPublisher:
    """
    Publishes domain events after their unit of work has committed.

    Delivery is fire-and-forget: a failing sender is logged and never
    propagates into the booking flow that produced the event.
    """

    def __init__(self, sender: Optional[NotificationSender] = None):
        if sender is None:
            from ..services.notification_service import default_sender

            sender = default_sender()
        self.sender = sender

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = serialize_payload(event.to_dict())
        try:
            self.sender.send(event_type, payload)
        except Exception as exc:
            logger.warning(
                "Notification dispatch failed",
                extra={"event_type": event_type, "error": str(exc)},
            )
