# backend/lessonbook/routes/v1/waitlist.py
"""
Waitlist routes - API v1

Endpoints:
    POST / - Join the queue for a weekly slot pattern
    GET / - Teacher view of their queue
    GET /me - The caller's own entries
    POST /{entry_id}/promote - Raise an entry's priority (teacher)
    DELETE /{entry_id} - Leave the queue or remove an entry
    POST /{entry_id}/extend - Extend an entry's expiry (teacher)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies import (
    Credentials,
    acting_teacher_id,
    get_client_info,
    get_credentials,
    get_current_principal,
    get_permission_service,
    get_share_token_service,
    get_waitlist_service,
    require_teacher,
    resolve_caller,
)
from ...core.exceptions import ForbiddenException, ValidationException
from ...schemas.waitlist import (
    WaitlistEntryResponse,
    WaitlistExtend,
    WaitlistJoin,
    WaitlistJoinResponse,
    WaitlistPromote,
)
from ...services.permission_service import Capability, PermissionService, Principal, Role
from ...services.share_token_service import ClientInfo, ShareTokenService
from ...services.waitlist_service import WaitlistService

router = APIRouter(tags=["waitlist-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=WaitlistJoinResponse, status_code=status.HTTP_201_CREATED)
def join_waitlist(
    payload: WaitlistJoin,
    credentials: Credentials = Depends(get_credentials),
    client_info: ClientInfo = Depends(get_client_info),
    tokens: ShareTokenService = Depends(get_share_token_service),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistJoinResponse:
    """
    Queue for a slot pattern that is currently full.

    Fails with SLOT_CURRENTLY_AVAILABLE when a matching slot can be booked
    right now.
    """
    principal, _ = resolve_caller(payload.token, credentials, tokens, client_info)
    if not principal.acts_as_student:
        raise ForbiddenException("Only students can join a waitlist", code="STUDENT_REQUIRED")

    teacher_id = principal.teacher_id if principal.role == Role.SHARE_TOKEN else payload.teacher_id
    if not teacher_id:
        raise ValidationException("teacher_id is required", code="TEACHER_ID_REQUIRED")

    result = waitlist.join(
        teacher_id,
        principal.subject_id,
        payload.day_of_week,
        payload.start_time,
        payload.end_time,
        preferred_date=payload.preferred_date,
        auto_book=payload.auto_book,
        notes=payload.notes,
    )
    return WaitlistJoinResponse(**result.to_dict())


@router.get("", response_model=List[WaitlistEntryResponse])
def list_waitlist(
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> List[WaitlistEntryResponse]:
    entries = waitlist.list_for_teacher(acting_teacher_id(principal, teacher_id), status_filter)
    return [WaitlistEntryResponse.model_validate(entry) for entry in entries]


@router.get("/me", response_model=List[WaitlistEntryResponse])
def my_waitlist(
    principal: Principal = Depends(get_current_principal),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> List[WaitlistEntryResponse]:
    entries = waitlist.list_for_student(principal.subject_id)
    if principal.role == Role.SHARE_TOKEN:
        entries = [entry for entry in entries if entry.teacher_id == principal.teacher_id]
    return [WaitlistEntryResponse.model_validate(entry) for entry in entries]


@router.post("/{entry_id}/promote", response_model=WaitlistEntryResponse)
def promote_entry(
    payload: WaitlistPromote,
    entry_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistEntryResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_WAITLIST_ENTRY, entry_id)
    entry = waitlist.promote(entry_id, payload.priority)
    return WaitlistEntryResponse.model_validate(entry)


@router.delete("/{entry_id}", response_model=WaitlistEntryResponse)
def remove_entry(
    entry_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    permissions: PermissionService = Depends(get_permission_service),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistEntryResponse:
    permissions.require_any(
        principal,
        (Capability.TEACHER_OWNS_WAITLIST_ENTRY, Capability.STUDENT_OWNS_WAITLIST_ENTRY),
        entry_id,
    )
    return WaitlistEntryResponse.model_validate(waitlist.remove(entry_id))


@router.post("/{entry_id}/extend", response_model=WaitlistEntryResponse)
def extend_entry(
    payload: WaitlistExtend,
    entry_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> WaitlistEntryResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_WAITLIST_ENTRY, entry_id)
    return WaitlistEntryResponse.model_validate(waitlist.extend(entry_id, payload.hours))
