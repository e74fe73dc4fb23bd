"""Object proxy: maps HTTP paths to bucket keys and streams objects back.

The proxy does not cache bytes. It forwards backend metadata as cache hints
with a fixed public caching policy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime
from typing import AsyncIterator, Awaitable, Callable, TypeVar
from urllib.parse import quote, unquote

from app.adapters.expiry.base import ExpiryIndex
from app.adapters.storage.base import ListResult, ObjectMeta, ObjectStore
from app.core.errors import BackendAppError, BadRequestAppError, NotFoundAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXTENSION_CONTENT_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "avif": "image/avif",
    "ico": "image/x-icon",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"
CACHE_CONTROL = "public, max-age=86400"


def file_extension(path: str) -> str:
    """Lower-cased extension of the last path segment, '' when there is none."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def derive_object_key(raw_path: str, prefix: str) -> str:
    """Translate a request path into a bucket key under ``prefix``.

    Percent-escapes are decoded once. The route prefix is stripped when
    present and always re-applied, so every key lives under ``prefix/``.

    Raises:
        BadRequestAppError: If nothing remains after the prefix.

    Examples:
        >>> derive_object_key("/uploads/photos/a%20b.png", "uploads")
        'uploads/photos/a b.png'
        >>> derive_object_key("/photos/a.png", "uploads")
        'uploads/photos/a.png'
    """
    prefix = prefix.strip("/")
    path = unquote(raw_path).lstrip("/")

    if path == prefix:
        rest = ""
    elif path.startswith(f"{prefix}/"):
        rest = path[len(prefix) + 1 :]
    else:
        rest = path

    if not rest.strip("/"):
        raise BadRequestAppError(
            code="invalid_path",
            message="Invalid path",
            details={"hint": f"Request /{prefix}/<key> with a non-empty key"},
        )
    return f"{prefix}/{rest}"


def resolve_content_type(key: str, reported: str | None = None) -> str:
    """Backend/declared type first, then the extension table, then binary."""
    if reported and reported.strip():
        return reported.strip()
    return EXTENSION_CONTENT_TYPES.get(file_extension(key), DEFAULT_CONTENT_TYPE)


def content_disposition(key: str) -> str:
    filename = key.rsplit("/", 1)[-1] or "download"
    ascii_name = filename.encode("ascii", "ignore").decode().replace('"', "").replace("\\", "")
    if ascii_name == filename:
        return f'inline; filename="{filename}"'
    return f"inline; filename=\"{ascii_name or 'download'}\"; filename*=UTF-8''{quote(filename)}"


def _http_date(value: datetime) -> str:
    return format_datetime(value, usegmt=True) if value.tzinfo else format_datetime(value)


@dataclass
class ProxiedObject:
    meta: ObjectMeta
    chunks: AsyncIterator[bytes]
    headers: dict[str, str]
    media_type: str


class ObjectProxy:
    """Thin I/O wrapper around the object store and the expiry side table."""

    def __init__(
        self,
        *,
        store: ObjectStore,
        expiry_index: ExpiryIndex,
        route_prefix: str = "uploads",
        timeout_seconds: float = 15.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.expiry_index = expiry_index
        self.route_prefix = route_prefix.strip("/")
        self._timeout = timeout_seconds
        self._clock = clock

    def key_for_path(self, raw_path: str) -> str:
        return derive_object_key(raw_path, self.route_prefix)

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (asyncio.TimeoutError, OSError) as exc:
            logger.error(
                "object_proxy.backend_failed",
                extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise BackendAppError(
                code="storage_backend_error",
                message="Storage backend request failed",
                details={"operation": operation},
            ) from exc

    async def fetch(self, key: str) -> ProxiedObject:
        """Fetch an object stream and the response headers derived from it.

        Raises:
            NotFoundAppError: If the key does not exist.
            BackendAppError: If the storage backend fails.
        """
        logger.info("object_proxy.fetch", extra={"key": key})
        stored = await self._guard("get", self.store.get(key))
        if stored is None:
            raise NotFoundAppError(code="not_found", message="File not found", details={"key": key})

        meta = stored.meta
        media_type = resolve_content_type(key, meta.content_type)
        headers = {
            "Cache-Control": CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
            "Content-Disposition": content_disposition(key),
            "Last-Modified": _http_date(meta.uploaded_at),
        }
        if meta.etag:
            headers["ETag"] = f'"{meta.etag}"'
        if meta.size:
            headers["Content-Length"] = str(meta.size)
        return ProxiedObject(meta=meta, chunks=stored.chunks, headers=headers, media_type=media_type)

    async def store_object(
        self,
        key: str,
        body: bytes,
        declared_content_type: str | None = None,
        *,
        expires_in: int | None = None,
    ) -> ObjectMeta:
        """Write ``body`` under ``key``; optionally record an explicit expiry.

        Raises:
            BadRequestAppError: If ``expires_in`` is not positive.
            BackendAppError: If the storage backend fails.
        """
        if expires_in is not None and expires_in <= 0:
            raise BadRequestAppError(code="invalid_expiry", message="expires_in must be a positive number of seconds")

        content_type = resolve_content_type(key, declared_content_type)
        meta = await self._guard("put", self.store.put(key, body, content_type))
        if expires_in is not None:
            await self._guard("set_expiry", self.expiry_index.set_expiry(key, self._clock() + expires_in))

        logger.info(
            "object_proxy.stored",
            extra={"key": key, "size": len(body), "content_type": content_type, "expires_in": expires_in},
        )
        return meta

    async def list_objects(self, prefix: str = "", *, limit: int | None = None) -> ListResult:
        """List objects under the served prefix (``prefix`` is relative to it)."""
        relative = prefix.lstrip("/")
        if relative.startswith(f"{self.route_prefix}/"):
            full_prefix = relative
        elif relative == self.route_prefix:
            full_prefix = f"{relative}/"
        else:
            full_prefix = f"{self.route_prefix}/{relative}"
        return await self._guard("list", self.store.list(full_prefix, limit=limit))
