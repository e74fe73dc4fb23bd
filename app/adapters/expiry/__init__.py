"""Object expiry side-table adapters."""

from app.adapters.expiry.base import ExpiryIndex
from app.adapters.expiry.in_memory import InMemoryExpiryIndex

__all__ = ["ExpiryIndex", "InMemoryExpiryIndex"]
