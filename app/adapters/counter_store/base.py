"""Counter store interface.

The rate limiter depends on this abstraction only, so the persistent backend
(process memory, Redis, a relational database) is chosen at process start
without touching the limiter or the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterRecord:
    """Snapshot of a fixed-window counter.

    Attributes:
        key: Counter key (tier prefix + fingerprint).
        count: Hits recorded in the current window.
        expires_at: UNIX epoch seconds at which the window closes. A record
            whose ``expires_at`` is not in the future is logically absent.
    """

    key: str
    count: int
    expires_at: float

    def is_live(self, now: float) -> bool:
        return self.expires_at > now


class CounterStore(ABC):
    """Persistent fixed-window counters with per-key atomic updates.

    Implementations raise ``StoreUnavailableError`` for any backend failure.
    """

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        """Charge one hit against ``key``.

        Starts a fresh window (count 1, ``expires_at = now + ttl_seconds``)
        when no live record exists. Otherwise increments in place and leaves
        ``expires_at`` untouched. Concurrent increments never lose updates.

        Args:
            key: Counter key.
            ttl_seconds: Window length used when a new window starts.

        Returns:
            The post-increment record.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Refund one hit on a live record with a positive count; otherwise no-op."""
        raise NotImplementedError

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Delete the record for ``key``. Idempotent."""
        raise NotImplementedError

    @abstractmethod
    async def purge_expired(self, cutoff: float) -> list[str]:
        """Bulk-delete records whose ``expires_at`` is older than ``cutoff``.

        Used by the janitor only. A record recreated by a concurrent
        ``increment`` after the purge started carries a fresh ``expires_at``
        and survives.

        Returns:
            Keys that were removed.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (connections, pools)."""
        return None
