# backend/tests/helpers.py
"""Constants and small helpers shared by the test suites."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List
from unittest.mock import Mock

import pytz

from lessonbook.auth import create_identity_token

TEACHER_ID = "teacher-1"
OTHER_TEACHER_ID = "teacher-2"
STUDENT_ID = "student-1"
OTHER_STUDENT_ID = "student-2"

# Monday 2030-01-07 09:00 UTC
FROZEN_NOW = datetime(2030, 1, 7, 9, 0, tzinfo=pytz.UTC)
TUESDAY = date(2030, 1, 8)
WEDNESDAY = date(2030, 1, 9)
LESSON_START = time(14, 0)
LESSON_END = time(15, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def published_types(sender: Mock) -> List[str]:
    return [call.args[0] for call in sender.send.call_args_list]


def auth_headers(subject: str, role: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_identity_token(subject, role)}"}


def upcoming(days: int = 7) -> date:
    """A date ``days`` ahead of today on the real clock."""
    return datetime.now(timezone.utc).date() + timedelta(days=days)
