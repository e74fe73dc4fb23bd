"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    key: str
    kind: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    backend: str
    operation: str
    request_id: str
    fields: list[str]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class BadRequestAppError(AppError):
    """Raised when the request is malformed (e.g. empty object key)."""


class ForbiddenAppError(AppError):
    """Raised when admission control or admin authentication rejects a request."""


class NotFoundAppError(AppError):
    """Raised when the requested object does not exist."""


class RateLimitAppError(AppError):
    """Raised when a client exhausted its burst or sustained budget."""


class BackendAppError(AppError):
    """Raised when the object storage backend fails.

    The message is safe to return to clients; backend detail lives in
    ``details`` and the logs only.
    """


class StoreUnavailableError(AppError):
    """Raised when the counter store cannot be reached or cannot commit."""


class PayloadTooLargeAppError(AppError):
    """Raised when an upload exceeds the configured size limit."""
