# backend/lessonbook/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import (
    Credentials,
    acting_teacher_id,
    get_client_info,
    get_credentials,
    get_current_principal,
    get_optional_principal,
    principal_from_token,
    require_teacher,
    resolve_caller,
)
from .database import get_db
from .services import (
    get_booking_engine,
    get_credit_ledger_service,
    get_event_publisher,
    get_permission_service,
    get_share_token_service,
    get_slot_registry_service,
    get_waitlist_service,
)

__all__ = [
    # Auth
    "Credentials",
    "acting_teacher_id",
    "get_client_info",
    "get_credentials",
    "get_current_principal",
    "get_optional_principal",
    "principal_from_token",
    "require_teacher",
    "resolve_caller",
    # Database
    "get_db",
    # Services
    "get_booking_engine",
    "get_credit_ledger_service",
    "get_event_publisher",
    "get_permission_service",
    "get_share_token_service",
    "get_slot_registry_service",
    "get_waitlist_service",
]
