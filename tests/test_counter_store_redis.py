"""Tests for the Redis counter store against fakeredis (Lua scripting enabled)."""

from __future__ import annotations

import asyncio

import fakeredis
import pytest
import pytest_asyncio

from app.adapters.counter_store.redis_store import RedisCounterStore
from app.core.errors import StoreUnavailableError

NAMESPACE = "test:counter:"


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def store(redis_client, clock) -> RedisCounterStore:
    return RedisCounterStore(
        redis_client=redis_client,
        namespace=NAMESPACE,
        expiry_grace_seconds=60,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_increment_opens_and_extends_window(store: RedisCounterStore, clock) -> None:
    first = await store.increment("burst:1.2.3.4::ua", 10)
    clock.advance(3)
    second = await store.increment("burst:1.2.3.4::ua", 10)

    assert first.count == 1
    assert first.expires_at == pytest.approx(clock.now - 3 + 10)
    assert second.count == 2
    assert second.expires_at == pytest.approx(first.expires_at)


@pytest.mark.asyncio
async def test_expired_window_restarts_at_one(store: RedisCounterStore, clock) -> None:
    await store.increment("k", 10)
    await store.increment("k", 10)
    clock.advance(10)

    record = await store.increment("k", 10)

    assert record.count == 1
    assert record.expires_at == pytest.approx(clock.now + 10)


@pytest.mark.asyncio
async def test_keys_are_namespaced_and_carry_native_ttl(store: RedisCounterStore, redis_client) -> None:
    await store.increment("k", 10)

    assert await redis_client.exists(f"{NAMESPACE}k") == 1
    ttl_ms = await redis_client.pttl(f"{NAMESPACE}k")
    assert 0 < ttl_ms <= (10 + 60) * 1000


@pytest.mark.asyncio
async def test_concurrent_increments_do_not_lose_updates(store: RedisCounterStore) -> None:
    records = await asyncio.gather(*(store.increment("k", 60) for _ in range(25)))

    assert sorted(r.count for r in records) == list(range(1, 26))


@pytest.mark.asyncio
async def test_decrement_and_reset(store: RedisCounterStore, redis_client, clock) -> None:
    await store.increment("k", 10)
    await store.increment("k", 10)

    await store.decrement("k")
    assert await redis_client.hget(f"{NAMESPACE}k", "count") == "1"

    await store.reset_key("k")
    await store.reset_key("k")
    assert await redis_client.exists(f"{NAMESPACE}k") == 0

    await store.decrement("missing")
    assert await redis_client.exists(f"{NAMESPACE}missing") == 0


@pytest.mark.asyncio
async def test_purge_expired_leaves_live_records(store: RedisCounterStore, clock) -> None:
    await store.increment("old", 10)
    clock.advance(100)
    await store.increment("fresh", 10)

    removed = await store.purge_expired(clock.now - 50)

    assert removed == ["old"]
    assert (await store.increment("fresh", 10)).count == 2


@pytest.mark.asyncio
async def test_unreachable_server_raises_store_unavailable(clock) -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    store = RedisCounterStore(redis_client=client, namespace=NAMESPACE, clock=clock)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.increment("k", 10)

    assert exc_info.value.code == "counter_store_unavailable"
    assert exc_info.value.details["backend"] == "redis"

    with pytest.raises(StoreUnavailableError):
        await store.purge_expired(clock.now)
