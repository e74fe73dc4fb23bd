"""Cleanup sweeps for stale objects and expired limiter records.

Two independent procedures share nothing but the backends:

- Object sweep: deletes objects older than the retention threshold unless the
  expiry side table still protects them.
- Counter sweep: bulk-deletes rate counters whose window closed more than a
  grace period ago.

Sweeps interleave with live traffic. A counter recreated by a fresh
increment while a sweep runs carries a new ``expires_at`` and is left alone;
consistency is eventual, not atomic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from app.adapters.counter_store.base import CounterStore
from app.adapters.expiry.base import ExpiryIndex
from app.adapters.storage.base import ObjectMeta, ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaleCandidate:
    """An object considered for deletion and its side-table expiry, if any."""

    meta: ObjectMeta
    expires_at: float | None = None

    def is_eligible(self, *, now: float, retention_seconds: int) -> bool:
        uploaded = self.meta.uploaded_at
        if uploaded.tzinfo is None:
            uploaded = uploaded.replace(tzinfo=timezone.utc)
        if uploaded.timestamp() >= now - retention_seconds:
            return False
        return self.expires_at is None or self.expires_at <= now


@dataclass
class SweepSummary:
    name: str
    ok: bool = True
    removed: int = 0
    keys: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class JanitorReport:
    started_at: datetime
    duration_ms: float
    sweeps: list[SweepSummary]

    @property
    def ok(self) -> bool:
        return all(sweep.ok for sweep in self.sweeps)


class JanitorJob:
    """Object and counter sweeps, runnable together or separately."""

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        expiry_index: ExpiryIndex,
        counter_store: CounterStore,
        object_prefix: str = "uploads/",
        object_retention_seconds: int = 1800,
        counter_grace_seconds: int = 1800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.object_store = object_store
        self.expiry_index = expiry_index
        self.counter_store = counter_store
        self.object_prefix = object_prefix
        self.object_retention_seconds = object_retention_seconds
        self.counter_grace_seconds = counter_grace_seconds
        self._clock = clock

    async def find_stale_objects(self) -> list[StaleCandidate]:
        """List objects under the served prefix that may be deleted now."""
        now = self._clock()
        listing = await self.object_store.list(self.object_prefix)
        aged = [
            StaleCandidate(meta=meta)
            for meta in listing.objects
            if StaleCandidate(meta=meta).is_eligible(now=now, retention_seconds=self.object_retention_seconds)
        ]
        if not aged:
            return []

        expiries = await self.expiry_index.expiries_for([candidate.meta.key for candidate in aged])
        candidates = [StaleCandidate(meta=c.meta, expires_at=expiries.get(c.meta.key)) for c in aged]
        return [c for c in candidates if c.is_eligible(now=now, retention_seconds=self.object_retention_seconds)]

    async def sweep_objects(self) -> SweepSummary:
        """Delete stale objects in one batch and drop their side records."""
        summary = SweepSummary(name="objects")
        try:
            stale = await self.find_stale_objects()
            keys = [candidate.meta.key for candidate in stale]
            if keys:
                await self.object_store.delete(keys)
                await self.expiry_index.remove(keys)
            summary.removed = len(keys)
            summary.keys = keys
        except Exception as exc:  # reported in the summary, retried on the next tick
            summary.ok = False
            summary.error = type(exc).__name__
            logger.exception("janitor.sweep_failed", extra={"sweep": summary.name})
            return summary

        logger.info("janitor.objects_swept", extra={"removed": summary.removed, "prefix": self.object_prefix})
        return summary

    async def sweep_counters(self) -> SweepSummary:
        """Purge rate counters expired for longer than the grace period."""
        summary = SweepSummary(name="counters")
        cutoff = self._clock() - self.counter_grace_seconds
        try:
            keys = await self.counter_store.purge_expired(cutoff)
            summary.removed = len(keys)
            summary.keys = keys
        except Exception as exc:  # reported in the summary, retried on the next tick
            summary.ok = False
            summary.error = type(exc).__name__
            logger.exception("janitor.sweep_failed", extra={"sweep": summary.name})
            return summary

        logger.info("janitor.counters_swept", extra={"removed": summary.removed, "cutoff": cutoff})
        return summary

    async def run(self, *, objects: bool = True, counters: bool = True) -> JanitorReport:
        """Run the selected sweeps (both by default); a failing sweep never aborts the other."""
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        sweeps: list[SweepSummary] = []
        if objects:
            sweeps.append(await self.sweep_objects())
        if counters:
            sweeps.append(await self.sweep_counters())
        report = JanitorReport(
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000,
            sweeps=sweeps,
        )
        logger.info(
            "janitor.run_completed",
            extra={
                "ok": report.ok,
                "duration_ms": round(report.duration_ms, 2),
                "removed": {sweep.name: sweep.removed for sweep in sweeps},
            },
        )
        return report


class PeriodicJanitor:
    """Runs a JanitorJob on a fixed interval as a background asyncio task."""

    def __init__(self, job: JanitorJob, *, interval_seconds: float) -> None:
        self.job = job
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="periodic-janitor")
        logger.info("janitor.scheduler_started", extra={"interval_s": self.interval_seconds})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("janitor.scheduler_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.job.run()
