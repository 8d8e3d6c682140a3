# backend/lessonbook/routes/v1/templates.py
"""
Recurring template routes - API v1

Endpoints:
    GET / - List the teacher's templates
    POST / - Create a weekly template and materialize it
    PATCH /{template_id} - Edit a template, optionally regenerating open slots
    DELETE /{template_id} - Delete a template, optionally with its open slots
    POST /{template_id}/materialize - Materialize (or preview) more weeks
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies import (
    acting_teacher_id,
    get_permission_service,
    get_slot_registry_service,
    require_teacher,
)
from ...schemas.availability import (
    MaterializationResponse,
    MaterializeRequest,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from ...services.permission_service import Capability, PermissionService, Principal
from ...services.slot_registry_service import MaterializationResult, SlotRegistryService

router = APIRouter(tags=["templates-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def _materialization(result: MaterializationResult) -> MaterializationResponse:
    return MaterializationResponse(
        template_id=result.template_id,
        preview_only=result.preview_only,
        planned_dates=result.planned,
        created_slot_ids=[slot.id for slot in result.created],
        skipped=result.skipped,
    )


@router.get("", response_model=List[TemplateResponse])
def list_templates(
    include_inactive: bool = Query(False),
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> List[TemplateResponse]:
    templates = registry.list_templates(
        acting_teacher_id(principal, teacher_id), active_only=not include_inactive
    )
    return [TemplateResponse.model_validate(template) for template in templates]


@router.post("", response_model=MaterializationResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreate,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> MaterializationResponse:
    """With ``preview_only`` nothing is stored and the planned dates are returned."""
    result = registry.create_template(
        acting_teacher_id(principal, teacher_id),
        payload.day_of_week,
        payload.start_time,
        payload.end_time,
        subject=payload.subject,
        max_students=payload.max_students,
        is_recurring=payload.is_recurring,
        recurrence_end_date=payload.recurrence_end_date,
        weeks=payload.weeks,
        exception_dates=payload.exception_dates,
        preview_only=payload.preview_only,
        override=payload.override,
    )
    return _materialization(result)


@router.patch("/{template_id}", response_model=TemplateResponse)
def update_template(
    payload: TemplateUpdate,
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> TemplateResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_TEMPLATE, template_id)
    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True, exclude={"cascade"})
    template = registry.update_template(template_id, cascade=payload.cascade, **changes)
    return TemplateResponse.model_validate(template)


@router.delete("/{template_id}")
def delete_template(
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    cascade: bool = Query(False, description="Also remove unbooked future slots"),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> Dict[str, Any]:
    permissions.require(principal, Capability.TEACHER_OWNS_TEMPLATE, template_id)
    removed = registry.delete_template(template_id, cascade=cascade)
    return {"template_id": template_id, "removed_slots": removed}


@router.post("/{template_id}/materialize", response_model=MaterializationResponse)
def materialize_template(
    payload: MaterializeRequest,
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_teacher),
    permissions: PermissionService = Depends(get_permission_service),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> MaterializationResponse:
    permissions.require(principal, Capability.TEACHER_OWNS_TEMPLATE, template_id)
    result = registry.materialize(
        template_id,
        payload.weeks,
        exception_dates=payload.exception_dates,
        preview_only=payload.preview_only,
    )
    return _materialization(result)
