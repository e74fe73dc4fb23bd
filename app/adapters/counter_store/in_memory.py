"""In-memory counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from app.adapters.counter_store.base import CounterRecord, CounterStore


class InMemoryCounterStore(CounterStore):
    """Counter store keeping fixed-window records in a process-local dict.

    Suitable for development, tests and single-process deployments. Every
    operation runs under one lock, which makes each read-modify-write atomic
    with respect to other callers in the same process.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, CounterRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, key: str) -> CounterRecord | None:
        """Return the raw record for ``key`` (live or not), for inspection."""
        with self._lock:
            return self._records.get(key)

    async def increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        if not key:
            raise ValueError("key must be a non-empty string")
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        now = self._clock()
        with self._lock:
            current = self._records.get(key)
            if current is None or not current.is_live(now):
                record = CounterRecord(key=key, count=1, expires_at=now + ttl_seconds)
            else:
                record = CounterRecord(
                    key=key,
                    count=current.count + 1,
                    expires_at=current.expires_at,
                )
            self._records[key] = record
            return record

    async def decrement(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            current = self._records.get(key)
            if current is None or not current.is_live(now) or current.count <= 0:
                return
            self._records[key] = CounterRecord(
                key=key,
                count=current.count - 1,
                expires_at=current.expires_at,
            )

    async def reset_key(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    async def purge_expired(self, cutoff: float) -> list[str]:
        with self._lock:
            stale = [key for key, record in self._records.items() if record.expires_at < cutoff]
            for key in stale:
                del self._records[key]
        return stale
