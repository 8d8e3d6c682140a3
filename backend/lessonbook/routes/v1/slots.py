# backend/lessonbook/routes/v1/slots.py
"""
Schedule slot routes - API v1

Endpoints:
    GET / - List slots (teacher: own slots; share link: the teacher's open slots)
    POST / - Create a single dated slot
    DELETE /{slot_id} - Remove an unbooked future slot
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ...api.dependencies import (
    acting_teacher_id,
    get_current_principal,
    get_permission_service,
    get_slot_registry_service,
    require_teacher,
)
from ...models.schedule import ScheduleSlot, SlotStatus
from ...schemas.availability import SlotCreate, SlotResponse
from ...services.permission_service import Capability, PermissionService, Principal, Role
from ...services.slot_registry_service import SlotRegistryService

router = APIRouter(tags=["slots-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def _to_response(registry: SlotRegistryService, slot: ScheduleSlot) -> SlotResponse:
    return SlotResponse.model_validate(slot).model_copy(
        update={"seats_taken": registry.seats_taken(slot)}
    )


@router.get("", response_model=List[SlotResponse])
def list_slots(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> List[SlotResponse]:
    if principal.role == Role.SHARE_TOKEN:
        # Share-link visitors only ever see bookable slots, minus those held for the waitlist
        slots = registry.list_slots(
            principal.teacher_id, start_date, end_date, [SlotStatus.AVAILABLE.value]
        )
        held = registry.held_slot_ids(slots)
        slots = [slot for slot in slots if slot.id not in held]
    else:
        owner = acting_teacher_id(principal, teacher_id)
        slots = registry.list_slots(owner, start_date, end_date, status_filter)
    return [_to_response(registry, slot) for slot in slots]


@router.post("", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    payload: SlotCreate,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> SlotResponse:
    slot = registry.create_slot(
        acting_teacher_id(principal, teacher_id),
        payload.date,
        payload.start_time,
        payload.end_time,
        subject=payload.subject,
        max_students=payload.max_students,
        override=payload.override,
    )
    return _to_response(registry, slot)


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> Response:
    permissions.require(principal, Capability.TEACHER_OWNS_SLOT, slot_id)
    registry.delete_slot(slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
