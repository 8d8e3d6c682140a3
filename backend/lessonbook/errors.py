"""
RFC 7807 error responses.

Every error leaves the API as ``application/problem+json`` with a stable
machine ``code`` next to the human-readable ``detail``. Domain exceptions
carry their own status and code; framework errors are normalized here.
"""
from http import HTTPStatus
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException, is_db_pool_exhaustion

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


def _title(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def problem_response(
    request: Request,
    status: int,
    *,
    detail: Optional[str] = None,
    code: Optional[str] = None,
    details: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    problem: Dict[str, Any] = {
        "type": "about:blank",
        "title": _title(status),
        "status": status,
        "detail": detail or "",
        "instance": request.url.path,
    }
    if code:
        problem["code"] = code
    if details:
        problem["details"] = jsonable_encoder(details)
    return JSONResponse(problem, status_code=status, media_type=PROBLEM_MEDIA_TYPE, headers=headers)


def _split_detail(detail: Any) -> Tuple[Optional[str], Optional[str], Optional[Any]]:
    """HTTPException.detail may be plain text or a {message, code, details} dict."""
    if isinstance(detail, dict):
        code = detail.get("code")
        message = detail.get("message") or detail.get("detail")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details"),
        )
    if detail is None:
        return None, None, None
    return str(detail), None, None


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code < 500:
            return problem_response(
                request, exc.status_code, detail=exc.message, code=exc.code, details=exc.details
            )
        if exc.__cause__ is not None and is_db_pool_exhaustion(exc.__cause__):
            return problem_response(
                request,
                503,
                detail="Service temporarily overloaded. Please retry.",
                code="SERVICE_UNAVAILABLE",
                headers={"Retry-After": "2"},
            )
        logger.error("Service failure on %s: %s", request.url.path, exc.message)
        return problem_response(
            request,
            exc.status_code,
            detail="An error occurred processing your request",
            code=exc.code,
        )

    # Also receives fastapi.HTTPException, which subclasses Starlette's
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        detail, code, details = _split_detail(exc.detail)
        return problem_response(
            request,
            exc.status_code,
            detail=detail,
            code=code,
            details=details,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return problem_response(
            request,
            422,
            detail="Request validation failed",
            code="VALIDATION_ERROR",
            details={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return problem_response(
            request, 500, detail="Internal Server Error", code="INTERNAL_SERVER_ERROR"
        )
