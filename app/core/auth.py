"""Admin API key authentication.

Operational routes (object listing, on-demand cleanup) are guarded by a
static key list read from ``APP_ADMIN_API_KEYS``. Public object routes are
not authenticated; they are protected by admission control and rate limits.

Design principles:
- Single Responsibility: Only handles admin key validation
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: Keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, Request

from app.core.config import AppSettings
from app.core.errors import ForbiddenAppError
from app.core.logging import hash_identifier
from app.core.services import get_services

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ") == {"key1", "key2", "key3"}
        True
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_admin_key(provided_key: str | None, app_settings: AppSettings) -> None:
    """Validate a provided key against the configured admin keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Raises:
        ForbiddenAppError: If the key is missing or invalid, or no keys are configured.
    """
    if not app_settings.admin_api_key_required:
        return

    valid_keys = parse_api_keys(app_settings.admin_api_keys)
    if not valid_keys:
        logger.error(
            "auth.failed",
            extra={"reason": "admin_api_keys_not_configured"},
        )
        raise ForbiddenAppError(
            code="admin_api_keys_not_configured",
            message="Admin authentication is enabled but no keys are configured",
        )

    if not provided_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise ForbiddenAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.failed",
            extra={"reason": "invalid_api_key", "api_key_hash": hash_identifier(provided_key)},
        )
        raise ForbiddenAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_admin_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin routes.

    Usage:
        @router.get("/debug/list", dependencies=[Depends(verify_admin_api_key)])
    """
    app_settings = get_services(request).settings.app
    if not app_settings.admin_api_key_required:
        logger.debug("auth.skipped", extra={"reason": "admin_api_key_required_false"})
        return

    validate_admin_key(x_api_key, app_settings)
    logger.info(
        "auth.success",
        extra={"api_key_hash": hash_identifier(x_api_key or "")},
    )
