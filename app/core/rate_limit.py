"""Rate limiting stage of the request pipeline.

This module wires the two-tier limiter into the HTTP layer.

Design goals:
- Minimal coupling: the pipeline depends on the limiter service only.
- Swap-friendly: the counter backend is replaced behind CounterStore.
- Quota hints: every limited response carries RateLimit-* headers
  (IETF draft convention) plus the legacy X-RateLimit-* set.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request, Response

from app.core.config import split_csv
from app.core.errors import AppError, RateLimitAppError, StoreUnavailableError
from app.core.exception_handlers import build_error_response
from app.core.logging import audit, hash_identifier
from app.core.pipeline import RequestInterceptor
from app.core.services import get_services
from app.services.fingerprint import Fingerprint, extract_fingerprint
from app.services.rate_limiter import DenyKind, RateLimitResult

logger = logging.getLogger(__name__)


def fingerprint_for(request: Request) -> Fingerprint:
    """Fingerprint the request once and cache it on ``request.state``."""

    cached = getattr(request.state, "fingerprint", None)
    if cached is not None:
        return cached

    services = get_services(request)
    fingerprint = extract_fingerprint(
        request.headers,
        client_host=request.client.host if request.client else None,
        address_headers=split_csv(services.settings.app.client_ip_headers),
    )
    request.state.fingerprint = fingerprint
    return fingerprint


def rate_limit_headers(result: RateLimitResult, *, now: float | None = None) -> dict[str, str]:
    """Build quota headers for a limiter result.

    ``RateLimit-Reset`` carries delta-seconds per the draft header convention;
    ``X-RateLimit-Reset`` carries the absolute epoch.
    """

    now = time.time() if now is None else now
    reset_in = max(0, int(result.reset_at - now))
    headers = {
        "RateLimit-Limit": str(result.limit),
        "RateLimit-Remaining": str(result.remaining),
        "RateLimit-Reset": str(reset_in),
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


def _denial_error(result: RateLimitResult) -> AppError:
    if result.deny_kind == DenyKind.STORE_UNAVAILABLE:
        return StoreUnavailableError(
            code="service_unavailable",
            message="Service temporarily unavailable. Try again later.",
        )
    message = (
        "Too many requests in a short burst. Slow down."
        if result.deny_kind == DenyKind.BURST_EXCEEDED
        else "Rate limit exceeded. Try again later."
    )
    return RateLimitAppError(
        code=result.deny_kind.value if result.deny_kind else DenyKind.RATE_EXCEEDED.value,
        message=message,
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
            "retry_after": result.retry_after_seconds or 0,
        },
    )


class RateLimitInterceptor(RequestInterceptor):
    """Charges burst and sustained budgets; denies with 429 (or 503 when closed)."""

    name = "rate_limit"

    async def intercept(self, request: Request) -> Response | None:
        services = get_services(request)
        if not services.settings.rate_limit.enabled:
            return None

        fingerprint = fingerprint_for(request)
        result = await services.rate_limiter.admit(fingerprint)
        request.state.rate_limit = result

        if result.allowed:
            return None

        audit(
            "rate_limit.denied",
            kind=result.deny_kind.value if result.deny_kind else None,
            client_address=fingerprint.address,
            user_agent=fingerprint.agent,
            fingerprint_hash=hash_identifier(fingerprint.key),
            path=request.url.path,
            limit=result.limit,
            retry_after_s=result.retry_after_seconds,
        )
        headers = (
            rate_limit_headers(result, now=services.rate_limiter.now())
            if services.settings.rate_limit.include_headers
            else None
        )
        return build_error_response(_denial_error(result), headers=headers)

    async def on_response(self, request: Request, response: Response) -> None:
        result: RateLimitResult | None = getattr(request.state, "rate_limit", None)
        if result is None:
            return

        services = get_services(request)
        if services.settings.rate_limit.include_headers:
            response.headers.update(rate_limit_headers(result, now=services.rate_limiter.now()))

        # A request that failed validation downstream gets its sustained charge back.
        if response.status_code == 400 and not result.degraded:
            await services.rate_limiter.refund(fingerprint_for(request))
            logger.info(
                "rate_limit.refunded",
                extra={"key_hash": hash_identifier(fingerprint_for(request).key), "path": request.url.path},
            )
