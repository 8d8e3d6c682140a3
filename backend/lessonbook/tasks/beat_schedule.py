# backend/lessonbook/tasks/beat_schedule.py
"""
Celery Beat schedule for housekeeping.

Every job here is idempotent, so overlapping or repeated runs are harmless.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Booked slots whose lesson ended past the grace period become no_show
    "sweep-no-shows": {
        "task": "lessonbook.tasks.booking_tasks.sweep_no_shows",
        "schedule": timedelta(minutes=15),
        "options": {"queue": "maintenance", "expires": 600},
    },
    # Lapsed waitlist offers go to the next student; stale entries expire
    "expire-waitlist-notifications": {
        "task": "lessonbook.tasks.booking_tasks.expire_waitlist_notifications",
        "schedule": timedelta(minutes=10),
        "options": {"queue": "maintenance", "expires": 300},
    },
    # Keep the rolling window of template slots filled
    "materialize-templates": {
        "task": "lessonbook.tasks.booking_tasks.materialize_templates",
        "schedule": crontab(hour=3, minute=15),
        "options": {"queue": "maintenance"},
    },
}

# Development runs the sweeps more often so they are easy to observe
DEVELOPMENT_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "sweep-no-shows": {"schedule": timedelta(minutes=5)},
    "expire-waitlist-notifications": {"schedule": timedelta(minutes=5)},
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """Return the beat schedule for ``environment``."""
    schedule = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    if environment == "development":
        for name, override in DEVELOPMENT_OVERRIDES.items():
            schedule[name].update(override)
    return schedule
