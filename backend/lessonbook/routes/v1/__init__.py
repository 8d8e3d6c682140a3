# backend/lessonbook/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, bookings, credits, health, share_tokens, slots, templates, waitlist

__all__ = [
    "availability",
    "bookings",
    "credits",
    "health",
    "share_tokens",
    "slots",
    "templates",
    "waitlist",
]
