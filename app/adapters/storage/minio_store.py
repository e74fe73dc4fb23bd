"""S3-compatible object store backed by the MinIO client.

The MinIO SDK is synchronous; every call runs in a worker thread and is
bounded by the configured timeout so a slow bucket cannot pin the event loop.
"""

from __future__ import annotations

import asyncio
import io
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from functools import partial
from typing import Any, AsyncIterator, Callable, TypeVar
from urllib.parse import urlparse

from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError

from app.adapters.storage.base import ListResult, ObjectMeta, ObjectStore, StoredObject
from app.core.errors import BackendAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CHUNK_SIZE = 64 * 1024
_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


def _parse_last_modified(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return parsedate_to_datetime(value)


class MinioObjectStore(ObjectStore):
    """Object store over a single MinIO/S3 bucket."""

    def __init__(self, *, client: Minio, bucket: str, timeout_seconds: float = 15.0) -> None:
        self._client = client
        self._bucket = bucket
        self._timeout = timeout_seconds

    @classmethod
    def from_endpoint(
        cls,
        endpoint: str,
        *,
        bucket: str,
        access_key: str | None,
        secret_key: str | None,
        region: str | None = None,
        timeout_seconds: float = 15.0,
    ) -> "MinioObjectStore":
        parsed = urlparse(endpoint if "://" in endpoint else f"http://{endpoint}")
        client = Minio(
            parsed.netloc,
            access_key=access_key,
            secret_key=secret_key,
            secure=parsed.scheme == "https",
            region=region,
        )
        return cls(client=client, bucket=bucket, timeout_seconds=timeout_seconds)

    @property
    def bucket(self) -> str:
        return self._bucket

    async def _run(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking SDK call in a thread with a timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(partial(func, *args, **kwargs)),
                timeout=self._timeout,
            )
        except S3Error:
            raise
        except (OSError, TransportError, asyncio.TimeoutError, ValueError) as exc:
            raise self._backend_error(operation, exc) from exc

    def _backend_error(self, operation: str, exc: BaseException) -> BackendAppError:
        logger.error(
            "storage.minio_failed",
            extra={
                "operation": operation,
                "bucket": self._bucket,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return BackendAppError(
            code="storage_backend_error",
            message="Storage backend request failed",
            details={"backend": "minio", "operation": operation},
        )

    async def get(self, key: str) -> StoredObject | None:
        try:
            response = await self._run("get", self._client.get_object, self._bucket, key)
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                return None
            raise self._backend_error("get", exc) from exc

        headers = response.headers
        meta = ObjectMeta(
            key=key,
            size=int(headers.get("Content-Length") or 0),
            etag=(headers.get("ETag") or "").strip('"'),
            uploaded_at=_parse_last_modified(headers.get("Last-Modified")),
            content_type=headers.get("Content-Type"),
        )
        return StoredObject(meta=meta, chunks=self._stream(response))

    async def _stream(self, response: Any) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(response.read, _CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            response.close()
            response.release_conn()

    async def put(self, key: str, data: bytes, content_type: str) -> ObjectMeta:
        try:
            result = await self._run(
                "put",
                self._client.put_object,
                self._bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            raise self._backend_error("put", exc) from exc
        return ObjectMeta(
            key=key,
            size=len(data),
            etag=(result.etag or "").strip('"'),
            uploaded_at=datetime.now(timezone.utc),
            content_type=content_type,
        )

    async def list(self, prefix: str, *, limit: int | None = None) -> ListResult:
        def _collect() -> ListResult:
            objects: list[ObjectMeta] = []
            for item in self._client.list_objects(self._bucket, prefix=prefix, recursive=True):
                if limit is not None and len(objects) >= limit:
                    return ListResult(objects=objects, truncated=True)
                objects.append(
                    ObjectMeta(
                        key=item.object_name,
                        size=item.size or 0,
                        etag=(item.etag or "").strip('"'),
                        uploaded_at=item.last_modified or datetime.now(timezone.utc),
                        content_type=item.content_type,
                    )
                )
            return ListResult(objects=objects)

        try:
            return await self._run("list", _collect)
        except S3Error as exc:
            raise self._backend_error("list", exc) from exc

    async def delete(self, keys: list[str]) -> None:
        if not keys:
            return

        def _remove() -> list[str]:
            errors = self._client.remove_objects(self._bucket, [DeleteObject(key) for key in keys])
            # remove_objects is lazy; iterating performs the request.
            return [f"{error.name}: {error.code}" for error in errors]

        try:
            failures = await self._run("delete", _remove)
        except S3Error as exc:
            raise self._backend_error("delete", exc) from exc
        if failures:
            logger.warning("storage.delete_partial_failure", extra={"failures": failures[:20]})
