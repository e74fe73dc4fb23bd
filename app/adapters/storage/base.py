"""Object storage interface.

The gateway treats the bucket as an external collaborator: the proxy and the
janitor depend on this abstraction only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator


@dataclass(frozen=True)
class ObjectMeta:
    """Backend-owned metadata for a stored object."""

    key: str
    size: int
    etag: str
    uploaded_at: datetime
    content_type: str | None = None


@dataclass
class StoredObject:
    """An object body stream plus its metadata."""

    meta: ObjectMeta
    chunks: AsyncIterator[bytes]

    async def read(self) -> bytes:
        """Drain the stream into memory (tests and small objects)."""
        return b"".join([chunk async for chunk in self.chunks])


@dataclass
class ListResult:
    objects: list[ObjectMeta] = field(default_factory=list)
    truncated: bool = False


class ObjectStore(ABC):
    """Key/value blob storage.

    Implementations raise ``BackendAppError`` on backend failures.
    """

    @abstractmethod
    async def get(self, key: str) -> StoredObject | None:
        """Return the object stream, or None when the key does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> ObjectMeta:
        """Store ``data`` under ``key`` with the given content type."""
        raise NotImplementedError

    @abstractmethod
    async def list(self, prefix: str, *, limit: int | None = None) -> ListResult:
        """List objects under ``prefix``, at most ``limit`` when given."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, keys: list[str]) -> None:
        """Delete a batch of keys in a single backend call."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
