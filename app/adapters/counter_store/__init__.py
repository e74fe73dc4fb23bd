"""Counter store adapters.

This package provides the persistent counter abstraction used by the rate
limiter, with process-local, Redis and relational implementations that are
interchangeable behind one interface.
"""

from app.adapters.counter_store.base import CounterRecord, CounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore

__all__ = ["CounterRecord", "CounterStore", "InMemoryCounterStore"]
