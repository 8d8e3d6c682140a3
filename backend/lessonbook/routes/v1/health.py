# backend/lessonbook/routes/v1/health.py
"""
Health and metrics endpoints for load balancer checks and Prometheus.

Both are public and mounted outside /api/v1.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...api.dependencies import get_db
from ...core.config import settings
from ...monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(response: Response, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Reports ``degraded`` with a 503 when the database cannot be reached."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database query failed: %s", exc)
        database = "unavailable"
        response.status_code = 503
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@router.get("/metrics")
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
