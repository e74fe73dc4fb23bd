from __future__ import annotations

import threading

from app.adapters.expiry.base import ExpiryIndex


class InMemoryExpiryIndex(ExpiryIndex):
    """Process-local expiry side table."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._expiries: dict[str, float] = {}

    async def set_expiry(self, key: str, expires_at: float) -> None:
        with self._lock:
            self._expiries[key] = expires_at

    async def expiries_for(self, keys: list[str]) -> dict[str, float]:
        with self._lock:
            return {key: self._expiries[key] for key in keys if key in self._expiries}

    async def remove(self, keys: list[str]) -> None:
        with self._lock:
            for key in keys:
                self._expiries.pop(key, None)
