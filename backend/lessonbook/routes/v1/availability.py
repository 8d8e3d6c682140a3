# backend/lessonbook/routes/v1/availability.py
"""
Availability routes - API v1

Endpoints:
    POST / - Create dated and weekly availability in one batch
    POST /check - Dry-run conflict detection with suggestions
    POST /blocked - Mark time as unavailable
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import acting_teacher_id, get_slot_registry_service, require_teacher
from ...schemas.availability import (
    AvailabilityCreate,
    AvailabilityCreateResponse,
    BlockedTimeCreate,
    BlockedTimeResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    SlotResponse,
    TemplateResponse,
)
from ...services.permission_service import Principal
from ...services.slot_registry_service import SlotRegistryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


@router.post(
    "", response_model=AvailabilityCreateResponse, status_code=status.HTTP_201_CREATED
)
def create_availability(
    payload: AvailabilityCreate,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> AvailabilityCreateResponse:
    """
    Create availability windows.

    Windows with a ``date`` become slots; windows with only a
    ``day_of_week`` become weekly templates that are materialized for
    ``weeks`` weeks. Nothing is written when any window conflicts, unless
    ``override`` is set or ``auto_adjust`` found a free alternative.
    """
    result = registry.create_availability(
        acting_teacher_id(principal, teacher_id),
        [window.to_window() for window in payload.windows],
        strategy=payload.strategy,
        override=payload.override,
        max_adjustment_minutes=payload.max_adjustment_minutes,
        direction=payload.direction,
        allow_day_change=payload.allow_day_change,
        subject=payload.subject,
        max_students=payload.max_students,
        weeks=payload.weeks,
    )
    return AvailabilityCreateResponse(
        created=[
            SlotResponse.model_validate(slot).model_copy(
                update={"seats_taken": registry.seats_taken(slot)}
            )
            for slot in result.slots
        ],
        templates=[TemplateResponse.model_validate(template) for template in result.templates],
        cancelled_slot_ids=result.cancelled_slot_ids,
        conflicts=result.conflicts,
    )


@router.post("/check", response_model=ConflictCheckResponse)
def check_conflicts(
    payload: ConflictCheckRequest,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> ConflictCheckResponse:
    reports = registry.conflict_detector.check(
        acting_teacher_id(principal, teacher_id),
        [window.to_window() for window in payload.windows],
        strategy=payload.strategy,
        max_adjustment_minutes=payload.max_adjustment_minutes,
        direction=payload.direction,
        allow_day_change=payload.allow_day_change,
    )
    return ConflictCheckResponse(
        has_conflicts=any(report.has_conflicts for report in reports),
        reports=[report.to_dict() for report in reports],
    )


@router.post("/blocked", response_model=BlockedTimeResponse, status_code=status.HTTP_201_CREATED)
def block_time(
    payload: BlockedTimeCreate,
    teacher_id: Optional[str] = Query(None),
    principal: Principal = Depends(require_teacher),
    registry: SlotRegistryService = Depends(get_slot_registry_service),
) -> BlockedTimeResponse:
    blocked = registry.block_time(
        acting_teacher_id(principal, teacher_id),
        payload.date,
        payload.start_time,
        payload.end_time,
        reason=payload.reason,
    )
    return BlockedTimeResponse.model_validate(blocked)
