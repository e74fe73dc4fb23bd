"""Unit tests for the two-tier rate limiter."""

from __future__ import annotations

import logging

import pytest

from app.adapters.counter_store.base import CounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.core.config import FailureMode
from app.core.logging import AUDIT_LOGGER_NAME
from app.services.fingerprint import Fingerprint
from app.services.rate_limiter import BURST_PREFIX, SUSTAINED_PREFIX, DenyKind, TwoTierRateLimiter
from conftest import UnavailableStore

FP = Fingerprint(address="203.0.113.7", agent="Mozilla/5.0")


def _limiter(store: CounterStore, clock, **kwargs) -> TwoTierRateLimiter:
    options = {
        "burst_limit": 5,
        "burst_window_seconds": 10,
        "sustained_limit": 8,
        "sustained_window_seconds": 65,
    }
    options.update(kwargs)
    return TwoTierRateLimiter(store=store, clock=clock, **options)


@pytest.mark.asyncio
async def test_allows_and_reports_sustained_hints(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)

    result = await limiter.admit(FP)

    assert result.allowed is True
    assert result.limit == 8
    assert result.remaining == 7
    assert result.reset_at == int(clock.now + 65)


@pytest.mark.asyncio
async def test_burst_limit_plus_one_is_denied(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)

    results = [await limiter.admit(FP) for _ in range(6)]

    assert all(r.allowed for r in results[:5])
    denied = results[5]
    assert denied.allowed is False
    assert denied.deny_kind == DenyKind.BURST_EXCEEDED
    assert denied.limit == 5
    assert denied.remaining == 0
    assert denied.retry_after_seconds == 10


@pytest.mark.asyncio
async def test_burst_denial_does_not_charge_sustained_tier(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)

    for _ in range(7):
        await limiter.admit(FP)

    assert counter_store.get(BURST_PREFIX + FP.key).count == 7
    assert counter_store.get(SUSTAINED_PREFIX + FP.key).count == 5


@pytest.mark.asyncio
async def test_sustained_limit_plus_one_is_denied(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)

    outcomes = []
    for _ in range(9):
        outcomes.append(await limiter.admit(FP))
        # Space requests so the burst window never fills.
        clock.advance(3)

    assert all(r.allowed for r in outcomes[:8])
    denied = outcomes[8]
    assert denied.allowed is False
    assert denied.deny_kind == DenyKind.RATE_EXCEEDED
    assert denied.limit == 8
    assert 0 < denied.retry_after_seconds <= 65


@pytest.mark.asyncio
async def test_windows_reset_after_expiry(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)
    for _ in range(6):
        await limiter.admit(FP)
    assert (await limiter.admit(FP)).allowed is False

    clock.advance(10)

    assert (await limiter.admit(FP)).allowed is True


@pytest.mark.asyncio
async def test_fingerprints_are_isolated(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock, burst_limit=1)
    other = Fingerprint(address="203.0.113.7", agent="Other/1.0")

    assert (await limiter.admit(FP)).allowed is True
    assert (await limiter.admit(FP)).allowed is False
    assert (await limiter.admit(other)).allowed is True


@pytest.mark.asyncio
async def test_fail_open_admits_and_audits(clock, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger=AUDIT_LOGGER_NAME)
    limiter = _limiter(UnavailableStore(), clock, failure_mode=FailureMode.OPEN)

    result = await limiter.admit(FP)

    assert result.allowed is True
    assert result.degraded is True
    assert any(r.getMessage() == "rate_limit.store_unavailable" for r in caplog.records)


@pytest.mark.asyncio
async def test_fail_closed_denies_without_raising(clock) -> None:
    store = UnavailableStore()
    limiter = _limiter(store, clock, failure_mode=FailureMode.CLOSED)

    result = await limiter.admit(FP)

    assert result.allowed is False
    assert result.deny_kind == DenyKind.STORE_UNAVAILABLE
    assert result.retry_after_seconds == 10
    assert store.calls == 1


@pytest.mark.asyncio
async def test_refund_gives_back_sustained_charge(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock)
    await limiter.admit(FP)
    await limiter.admit(FP)

    await limiter.refund(FP)

    assert counter_store.get(SUSTAINED_PREFIX + FP.key).count == 1
    assert counter_store.get(BURST_PREFIX + FP.key).count == 2


@pytest.mark.asyncio
async def test_refund_swallows_store_failure(clock) -> None:
    limiter = _limiter(UnavailableStore(), clock)

    await limiter.refund(FP)


@pytest.mark.asyncio
async def test_reset_forgets_both_tiers(counter_store: InMemoryCounterStore, clock) -> None:
    limiter = _limiter(counter_store, clock, burst_limit=1)
    await limiter.admit(FP)

    await limiter.reset(FP)

    assert (await limiter.admit(FP)).allowed is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"burst_limit": 0},
        {"sustained_limit": 0},
        {"burst_window_seconds": 0},
        {"sustained_window_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        _limiter(InMemoryCounterStore(), lambda: 0.0, **kwargs)
