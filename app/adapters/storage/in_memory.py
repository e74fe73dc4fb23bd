"""In-memory object store for development and tests."""

from __future__ import annotations

import hashlib
import threading
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from app.adapters.storage.base import ListResult, ObjectMeta, ObjectStore, StoredObject

_CHUNK_SIZE = 64 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _iter_chunks(data: bytes) -> AsyncIterator[bytes]:
    for offset in range(0, len(data), _CHUNK_SIZE):
        yield data[offset : offset + _CHUNK_SIZE]


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store.

    Attributes:
        delete_calls: Batches passed to ``delete``, in call order.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._objects: dict[str, tuple[bytes, ObjectMeta]] = {}
        self.delete_calls: list[list[str]] = []

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)

    async def get(self, key: str) -> StoredObject | None:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            return None
        data, meta = entry
        return StoredObject(meta=meta, chunks=_iter_chunks(data))

    async def put(self, key: str, data: bytes, content_type: str) -> ObjectMeta:
        meta = ObjectMeta(
            key=key,
            size=len(data),
            etag=hashlib.md5(data).hexdigest(),
            uploaded_at=self._clock(),
            content_type=content_type,
        )
        with self._lock:
            self._objects[key] = (bytes(data), meta)
        return meta

    async def list(self, prefix: str, *, limit: int | None = None) -> ListResult:
        with self._lock:
            metas = [meta for key, (_, meta) in sorted(self._objects.items()) if key.startswith(prefix)]
        if limit is not None and len(metas) > limit:
            return ListResult(objects=metas[:limit], truncated=True)
        return ListResult(objects=metas)

    async def delete(self, keys: list[str]) -> None:
        with self._lock:
            self.delete_calls.append(list(keys))
            for key in keys:
                self._objects.pop(key, None)
