"""Error handling middleware."""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from medical_appointments.core.exceptions import AppException, InfrastructureError

logger = structlog.get_logger(__name__)


def _error_body(
    status_code: int,
    code: str,
    message: Any,
    request: Request,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "code": code,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
        "path": request.url.path,
        **extra,
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response carrying the exception's own fields
    """
    log = logger.error if isinstance(exc, InfrastructureError) else logger.warning
    log("request_rejected", path=request.url.path, **exc.to_dict())
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "path": request.url.path},
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions raised by routing (404, 405, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, "HTTP_ERROR", exc.detail, request),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request validation errors.

    Malformed bodies are reported like any other validation failure, with the
    first offending field and every failed constraint.
    """
    errors = exc.errors()
    first_location = errors[0].get("loc", ()) if errors else ()
    field = str(first_location[-1]) if first_location else None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            status.HTTP_400_BAD_REQUEST,
            "VALIDATION_ERROR",
            "Request validation failed",
            request,
            field=field,
            constraints=[error.get("type", "invalid") for error in errors],
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            request,
        ),
    )
