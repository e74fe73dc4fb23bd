"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 403, 404, 413, 429, 500, 503)
- Request validation errors → 400 invalid_request
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    BackendAppError,
    BadRequestAppError,
    ForbiddenAppError,
    NotFoundAppError,
    PayloadTooLargeAppError,
    RateLimitAppError,
    StoreUnavailableError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (BadRequestAppError, 400),
    (ForbiddenAppError, 403),
    (NotFoundAppError, 404),
    (PayloadTooLargeAppError, 413),
    (RateLimitAppError, 429),
    (BackendAppError, 500),
    (StoreUnavailableError, 503),
)

# Detail keys that describe backend internals and never leave the process.
_INTERNAL_DETAIL_KEYS = {"backend", "operation", "context"}


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status code (default 400)."""

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def build_error_response(
    exc: AppError,
    *,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render an AppError into the gateway's JSON error envelope.

    Shared by the exception handlers and the request pipeline, which returns
    terminal responses directly instead of raising.

    Args:
        exc: Domain error to render.
        headers: Optional extra response headers (e.g. rate limit hints).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = status_code_for(exc)

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    public_details = {
        key: value
        for key, value in (exc.details or {}).items()
        if key not in _INTERNAL_DETAIL_KEYS
    }
    if public_details and status_code < 500:
        error_content["details"] = public_details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context (client errors only)

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "error_details": exc.details,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    return build_error_response(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as 400 in the gateway envelope."""

    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
    return await app_error_handler(
        request,
        BadRequestAppError(
            code="invalid_request",
            message="Request validation failed",
            details={"fields": fields},
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Catches any exception not handled by specific handlers.
    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Order matters: specific handlers registered before general fallback.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
