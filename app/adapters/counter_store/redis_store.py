"""Redis-backed counter store using atomic Lua scripts.

Each counter is a hash with ``count`` and ``expires_at`` fields. The
read-modify-write for increment/decrement runs inside a Lua script so Redis
executes it atomically; concurrent gateway processes sharing the same Redis
never lose updates.

The hash itself carries a Redis TTL of window + grace, so abandoned records
are evicted natively; ``purge_expired`` is the janitor's backstop.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, TypeVar

from redis.exceptions import RedisError

from app.adapters.counter_store.base import CounterRecord, CounterStore
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS[1] = counter key; ARGV = now, ttl_seconds, grace_seconds
_INCREMENT_LUA = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
local expires_at = tonumber(redis.call('HGET', KEYS[1], 'expires_at'))
local now = tonumber(ARGV[1])
if (not count) or (not expires_at) or expires_at <= now then
    expires_at = now + tonumber(ARGV[2])
    redis.call('HSET', KEYS[1], 'count', 1, 'expires_at', tostring(expires_at))
    redis.call('PEXPIRE', KEYS[1], math.ceil((tonumber(ARGV[2]) + tonumber(ARGV[3])) * 1000))
    return {1, tostring(expires_at)}
end
count = redis.call('HINCRBY', KEYS[1], 'count', 1)
return {count, tostring(expires_at)}
"""

# KEYS[1] = counter key; ARGV = now
_DECREMENT_LUA = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
local expires_at = tonumber(redis.call('HGET', KEYS[1], 'expires_at'))
if count and expires_at and expires_at > tonumber(ARGV[1]) and count > 0 then
    return redis.call('HINCRBY', KEYS[1], 'count', -1)
end
return -1
"""

# KEYS[1] = counter key; ARGV = cutoff
_PURGE_IF_STALE_LUA = """
local expires_at = tonumber(redis.call('HGET', KEYS[1], 'expires_at'))
if expires_at and expires_at < tonumber(ARGV[1]) then
    redis.call('DEL', KEYS[1])
    return 1
end
return 0
"""


def _as_str(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisCounterStore(CounterStore):
    """Counter store over an async Redis client.

    Args:
        redis_client: An async Redis client (``redis.asyncio.Redis`` compatible).
        namespace: Prefix applied to every key written to Redis.
        expiry_grace_seconds: Extra Redis TTL kept after a window closes.
        timeout_seconds: Upper bound for a single store operation.
        clock: Time source function returning UNIX time in seconds.
    """

    def __init__(
        self,
        *,
        redis_client: Any,
        namespace: str = "gateway:counter:",
        expiry_grace_seconds: int = 1800,
        timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.redis = redis_client
        self._namespace = namespace
        self._grace = expiry_grace_seconds
        self._timeout = timeout_seconds
        self._clock = clock
        self._increment_script = redis_client.register_script(_INCREMENT_LUA)
        self._decrement_script = redis_client.register_script(_DECREMENT_LUA)
        self._purge_script = redis_client.register_script(_PURGE_IF_STALE_LUA)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCounterStore":
        from redis.asyncio import Redis

        return cls(redis_client=Redis.from_url(url, decode_responses=True), **kwargs)

    def _redis_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        """Await a Redis call, mapping failures to StoreUnavailableError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "counter_store.redis_failed",
                extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise StoreUnavailableError(
                code="counter_store_unavailable",
                message="Counter store is unavailable",
                details={"backend": "redis", "operation": operation, "key": key},
            ) from exc

    async def increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        if not key:
            raise ValueError("key must be a non-empty string")
        now = self._clock()
        count, expires_at = await self._call(
            "increment",
            key,
            self._increment_script(
                keys=[self._redis_key(key)],
                args=[repr(now), ttl_seconds, self._grace],
            ),
        )
        return CounterRecord(key=key, count=int(count), expires_at=float(_as_str(expires_at)))

    async def decrement(self, key: str) -> None:
        await self._call(
            "decrement",
            key,
            self._decrement_script(keys=[self._redis_key(key)], args=[repr(self._clock())]),
        )

    async def reset_key(self, key: str) -> None:
        await self._call("reset_key", key, self.redis.delete(self._redis_key(key)))

    async def purge_expired(self, cutoff: float) -> list[str]:
        removed: list[str] = []
        prefix_len = len(self._namespace)
        try:
            async for raw_key in self.redis.scan_iter(match=f"{self._namespace}*"):
                redis_key = _as_str(raw_key)
                deleted = await self._purge_script(keys=[redis_key], args=[repr(cutoff)])
                if int(deleted):
                    removed.append(redis_key[prefix_len:])
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(
                code="counter_store_unavailable",
                message="Counter store is unavailable",
                details={"backend": "redis", "operation": "purge_expired"},
            ) from exc
        return removed

    async def close(self) -> None:
        await self.redis.aclose()
