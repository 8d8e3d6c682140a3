"""Share token schemas."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from .base import StandardizedModel, StrictModel


class ShareTokenCreate(StrictModel):
    student_id: str = Field(..., min_length=1, max_length=64)


class ShareTokenResponse(StandardizedModel):
    token: str
    share_url: str
    expires_at: datetime
    created: bool


class ShareTokenValidationResponse(StandardizedModel):
    student_id: str
    teacher_id: str
    needs_rotation: bool
    expires_at: datetime


class TokenAuditEntryResponse(StandardizedModel):
    id: str
    action: str
    success: bool
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime
