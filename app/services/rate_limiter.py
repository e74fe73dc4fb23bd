"""Two-tier fixed-window rate limiter.

Rate limiting strategy:
- Burst tier: short window (5-60 s) with a small budget, keyed ``burst:<fp>``.
- Sustained tier: ~65 s window with a larger budget, keyed ``rate:<fp>``,
  charged only when the burst tier passed.

Both windows are fixed, anchored at the hit that created the counter, so a
client can spend up to twice a tier's limit across a window boundary. That
imprecision is accepted.

Store failures follow one policy chosen at process start: fail open (admit
and log) or fail closed (deny with 503). The limiter never raises
StoreUnavailableError to its caller.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.adapters.counter_store.base import CounterRecord, CounterStore
from app.core.config import FailureMode
from app.core.errors import StoreUnavailableError
from app.core.logging import audit, hash_identifier
from app.services.fingerprint import Fingerprint

logger = logging.getLogger(__name__)

BURST_PREFIX = "burst:"
SUSTAINED_PREFIX = "rate:"


class DenyKind(str, Enum):
    BURST_EXCEEDED = "burst_exceeded"
    RATE_EXCEEDED = "rate_exceeded"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Budget of the tier that produced the hints.
        remaining: Remaining requests in that tier's window (0 when blocked).
        reset_at: UNIX epoch seconds when that window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        deny_kind: Why the request was denied, None when allowed.
        degraded: True when admitted without consulting the counter store.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None
    deny_kind: DenyKind | None = None
    degraded: bool = False


class TwoTierRateLimiter:
    """Burst + sustained admission limiter over a CounterStore."""

    def __init__(
        self,
        *,
        store: CounterStore,
        burst_limit: int = 10,
        burst_window_seconds: int = 10,
        sustained_limit: int = 100,
        sustained_window_seconds: int = 65,
        failure_mode: FailureMode = FailureMode.OPEN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Raises:
            ValueError: If a limit or window is invalid.
        """
        if burst_limit < 1 or sustained_limit < 1:
            raise ValueError("limits must be >= 1")
        if burst_window_seconds < 1 or sustained_window_seconds < 1:
            raise ValueError("windows must be >= 1 second")

        self.store = store
        self.burst_limit = burst_limit
        self.burst_window_seconds = burst_window_seconds
        self.sustained_limit = sustained_limit
        self.sustained_window_seconds = sustained_window_seconds
        self.failure_mode = failure_mode
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def _denied(self, kind: DenyKind, limit: int, record: CounterRecord) -> RateLimitResult:
        reset_at = math.ceil(record.expires_at)
        return RateLimitResult(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(0, math.ceil(record.expires_at - self._clock())),
            deny_kind=kind,
        )

    def _on_store_failure(self, fingerprint: Fingerprint, tier: str, exc: StoreUnavailableError) -> RateLimitResult:
        now = self._clock()
        audit(
            "rate_limit.store_unavailable",
            tier=tier,
            failure_mode=self.failure_mode.value,
            fingerprint_hash=hash_identifier(fingerprint.key),
            error_code=exc.code,
            error_details=exc.details,
        )
        if self.failure_mode == FailureMode.CLOSED:
            return RateLimitResult(
                allowed=False,
                limit=self.sustained_limit,
                remaining=0,
                reset_at=math.ceil(now + self.burst_window_seconds),
                retry_after_seconds=self.burst_window_seconds,
                deny_kind=DenyKind.STORE_UNAVAILABLE,
            )
        return RateLimitResult(
            allowed=True,
            limit=self.sustained_limit,
            remaining=self.sustained_limit,
            reset_at=math.ceil(now + self.sustained_window_seconds),
            degraded=True,
        )

    async def admit(self, fingerprint: Fingerprint) -> RateLimitResult:
        """Charge one request for ``fingerprint`` against both tiers.

        Args:
            fingerprint: Client identity.

        Returns:
            RateLimitResult; quota hints on success come from the sustained tier.
        """
        key_hash = hash_identifier(fingerprint.key)

        try:
            burst = await self.store.increment(BURST_PREFIX + fingerprint.key, self.burst_window_seconds)
        except StoreUnavailableError as exc:
            return self._on_store_failure(fingerprint, "burst", exc)

        if burst.count > self.burst_limit:
            result = self._denied(DenyKind.BURST_EXCEEDED, self.burst_limit, burst)
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "tier": "burst",
                    "key_hash": key_hash,
                    "count": burst.count,
                    "limit": self.burst_limit,
                    "window_s": self.burst_window_seconds,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
            return result

        try:
            sustained = await self.store.increment(
                SUSTAINED_PREFIX + fingerprint.key, self.sustained_window_seconds
            )
        except StoreUnavailableError as exc:
            return self._on_store_failure(fingerprint, "sustained", exc)

        if sustained.count > self.sustained_limit:
            result = self._denied(DenyKind.RATE_EXCEEDED, self.sustained_limit, sustained)
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "tier": "sustained",
                    "key_hash": key_hash,
                    "count": sustained.count,
                    "limit": self.sustained_limit,
                    "window_s": self.sustained_window_seconds,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
            return result

        remaining = max(0, self.sustained_limit - sustained.count)
        logger.debug(
            "rate_limit.allowed",
            extra={"key_hash": key_hash, "limit": self.sustained_limit, "remaining": remaining},
        )
        return RateLimitResult(
            allowed=True,
            limit=self.sustained_limit,
            remaining=remaining,
            reset_at=math.ceil(sustained.expires_at),
        )

    async def refund(self, fingerprint: Fingerprint) -> None:
        """Give back the sustained-tier charge of a request that failed validation."""
        try:
            await self.store.decrement(SUSTAINED_PREFIX + fingerprint.key)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.refund_failed",
                extra={"key_hash": hash_identifier(fingerprint.key), "error_code": exc.code},
            )

    async def reset(self, fingerprint: Fingerprint) -> None:
        """Forget both tiers' counters for ``fingerprint``."""
        await self.store.reset_key(BURST_PREFIX + fingerprint.key)
        await self.store.reset_key(SUSTAINED_PREFIX + fingerprint.key)
