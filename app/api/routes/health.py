from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from app.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint.

    Bypasses admission and rate limiting so load balancers and uptime
    monitors are never throttled.
    """

    return HealthResponse(
        status="ok",
        message="Gateway is running",
        timestamp=datetime.now(timezone.utc),
    )
