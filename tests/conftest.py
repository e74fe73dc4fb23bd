"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment so settings never come from a developer's .env file
and every test runs against in-memory backends.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("COUNTER_STORE_BACKEND", "memory")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("JANITOR_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from app.adapters.counter_store.base import CounterRecord, CounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.expiry.in_memory import InMemoryExpiryIndex
from app.adapters.storage.in_memory import InMemoryObjectStore
from app.core.app_factory import create_app
from app.core.config import Settings
from app.core.errors import StoreUnavailableError
from app.core.services import GatewayServices, build_services

ADMIN_KEY = "test-admin-key-123"
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/128.0"
START = 1_700_000_000.0


@dataclass
class FakeClock:
    """Manually advanced time source shared by stores, limiter and janitor."""

    now: float = START

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)


class UnavailableStore(CounterStore):
    """Counter store whose backend is always down."""

    def __init__(self) -> None:
        self.calls = 0

    def _down(self) -> StoreUnavailableError:
        self.calls += 1
        return StoreUnavailableError(code="counter_store_unavailable", message="down")

    async def increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        raise self._down()

    async def decrement(self, key: str) -> None:
        raise self._down()

    async def reset_key(self, key: str) -> None:
        raise self._down()

    async def purge_expired(self, cutoff: float) -> list[str]:
        raise self._down()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Fresh settings per test; mutate fields freely."""
    return Settings()


@pytest.fixture
def counter_store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def object_store(clock: FakeClock) -> InMemoryObjectStore:
    return InMemoryObjectStore(clock=clock.utcnow)


@pytest.fixture
def expiry_index() -> InMemoryExpiryIndex:
    return InMemoryExpiryIndex()


@pytest.fixture
def make_services(
    settings: Settings,
    clock: FakeClock,
    counter_store: InMemoryCounterStore,
    object_store: InMemoryObjectStore,
    expiry_index: InMemoryExpiryIndex,
) -> Callable[..., GatewayServices]:
    def _make(**overrides) -> GatewayServices:
        kwargs = {
            "counter_store": counter_store,
            "object_store": object_store,
            "expiry_index": expiry_index,
            "clock": clock,
        }
        kwargs.update(overrides)
        return build_services(settings, **kwargs)

    return _make


@pytest.fixture
def services(make_services: Callable[..., GatewayServices]) -> GatewayServices:
    return make_services()


@pytest.fixture
def client(services: GatewayServices):
    with gateway_client(services) as test_client:
        yield test_client


def gateway_client(services: GatewayServices) -> TestClient:
    """TestClient for an app wired to ``services``; use as a context manager."""
    return TestClient(create_app(services=services), headers={"user-agent": BROWSER_UA})
