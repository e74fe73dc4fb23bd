"""Object expiry side table.

Uploads may register an explicit expiry; the janitor keeps an object past
the retention threshold for as long as its recorded expiry is in the future.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ExpiryIndex(ABC):
    """Maps object keys to explicit expiry timestamps (UNIX epoch seconds)."""

    @abstractmethod
    async def set_expiry(self, key: str, expires_at: float) -> None:
        raise NotImplementedError

    @abstractmethod
    async def expiries_for(self, keys: list[str]) -> dict[str, float]:
        """Return recorded expiries for the subset of ``keys`` that have one."""
        raise NotImplementedError

    @abstractmethod
    async def remove(self, keys: list[str]) -> None:
        raise NotImplementedError
