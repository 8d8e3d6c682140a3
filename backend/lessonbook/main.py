# backend/lessonbook/main.py
"""
FastAPI application for the lesson booking and credit ledger engine.

Run with ``uvicorn lessonbook.main:app``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import is_running_tests, settings
from .core.logging_config import setup_logging
from .database import init_db
from .errors import register_error_handlers
from .routes.v1 import (
    availability as availability_v1,
    bookings as bookings_v1,
    credits as credits_v1,
    health as health_v1,
    share_tokens as share_tokens_v1,
    slots as slots_v1,
    templates as templates_v1,
    waitlist as waitlist_v1,
)

logger = logging.getLogger(__name__)

API_TITLE = "Lessonbook API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    setup_logging()
    logger.info("%s starting up (environment=%s)", API_TITLE, settings.environment)
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")
    else:
        init_db()
    yield
    logger.info("%s shutting down", API_TITLE)


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


def create_app() -> FastAPI:
    application = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
        generate_unique_id_function=_unique_operation_id,
    )
    register_error_handlers(application)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(availability_v1.router, prefix="/availability")
    api_v1.include_router(slots_v1.router, prefix="/slots")
    api_v1.include_router(templates_v1.router, prefix="/templates")
    api_v1.include_router(waitlist_v1.router, prefix="/waitlist")
    api_v1.include_router(share_tokens_v1.router, prefix="/share-tokens")
    api_v1.include_router(credits_v1.router, prefix="/credits")

    application.include_router(health_v1.router)
    application.include_router(api_v1)
    return application


app = create_app()
