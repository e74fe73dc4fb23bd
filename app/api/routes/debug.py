from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.core.auth import verify_admin_api_key
from app.core.errors import NotFoundAppError
from app.core.services import GatewayServices, get_services
from app.schemas.objects import ObjectListResponse

router = APIRouter(tags=["Admin"])


@router.get(
    "/debug/list",
    response_model=ObjectListResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def list_objects(
    prefix: str = Query(default="", description="Key prefix relative to the served prefix."),
    limit: int | None = Query(default=None, ge=1, le=10000),
    services: GatewayServices = Depends(get_services),
) -> ObjectListResponse:
    """List stored objects. Disabled unless APP_DEBUG_ROUTES_ENABLED is set."""
    if not services.settings.app.debug_routes_enabled:
        raise NotFoundAppError(code="not_found", message="Not found")

    result = await services.object_proxy.list_objects(
        prefix, limit=limit or services.settings.storage.list_limit
    )
    return ObjectListResponse.from_result(result)
