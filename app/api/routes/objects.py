"""Public object routes: stream objects out of the bucket and accept uploads.

Both routes are catch-alls registered last, so every path not claimed by an
operational route is treated as an object path under the served prefix.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import StreamingResponse

from app.core.body_limit import read_body_limited
from app.core.errors import NotFoundAppError
from app.core.services import GatewayServices, get_services
from app.schemas.objects import StoreObjectResponse
from app.services.object_proxy import resolve_content_type

router = APIRouter(tags=["Objects"])

# First path segments owned by operational routes; never object paths.
RESERVED_SEGMENTS: frozenset[str] = frozenset({"health", "debug", "_scheduled"})


def _raw_path(request: Request) -> str:
    """The path exactly as sent by the client, before percent-decoding."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return quote(request.url.path)


def reject_reserved_path(request: Request) -> None:
    """Keep operational paths (and methods they do not serve) out of the bucket."""
    first_segment = request.url.path.lstrip("/").split("/", 1)[0]
    if first_segment in RESERVED_SEGMENTS:
        raise NotFoundAppError(code="not_found", message="Not found", details={"path": request.url.path})


@router.get(
    "/{object_path:path}",
    response_class=StreamingResponse,
    dependencies=[Depends(reject_reserved_path)],
)
async def get_object(
    object_path: str,
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> StreamingResponse:
    """Stream an object from the bucket.

    Returns 400 for an empty key before any backend call, 404 when the object
    does not exist, and 500 with a generic message on backend failure.
    """
    proxy = services.object_proxy
    key = proxy.key_for_path(_raw_path(request))
    proxied = await proxy.fetch(key)
    return StreamingResponse(
        proxied.chunks,
        media_type=proxied.media_type,
        headers=proxied.headers,
    )


@router.post(
    "/{object_path:path}",
    response_model=StoreObjectResponse,
    dependencies=[Depends(reject_reserved_path)],
)
async def store_object(
    object_path: str,
    request: Request,
    expires_in: int | None = Query(
        default=None,
        description="Optional lifetime in seconds; the janitor keeps the object at least this long.",
    ),
    content_type: str | None = Header(default=None, alias="Content-Type"),
    services: GatewayServices = Depends(get_services),
) -> StoreObjectResponse:
    """Write the raw request body to the bucket under the derived key."""
    proxy = services.object_proxy
    key = proxy.key_for_path(_raw_path(request))
    max_bytes = services.settings.app.max_upload_size_mb * 1024 * 1024
    body = await read_body_limited(request, max_bytes)
    meta = await proxy.store_object(key, body, content_type, expires_in=expires_in)
    return StoreObjectResponse(
        key=meta.key,
        content_type=meta.content_type or resolve_content_type(key, content_type),
    )
