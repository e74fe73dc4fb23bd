"""Process-wide service container.

Backends are selected once at process start and shared by the request path
and the janitor. The two entry points communicate only through these
backends, never through other in-process state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from app.adapters.counter_store.base import CounterStore
from app.adapters.counter_store.factory import create_counter_store
from app.adapters.expiry.base import ExpiryIndex
from app.adapters.expiry.in_memory import InMemoryExpiryIndex
from app.adapters.sql.database import Database
from app.adapters.storage.base import ObjectStore
from app.adapters.storage.factory import create_object_store
from app.core.config import CounterBackend, Settings, split_csv
from app.services.admission import AdmissionFilter
from app.services.janitor import JanitorJob, PeriodicJanitor
from app.services.object_proxy import ObjectProxy
from app.services.rate_limiter import TwoTierRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    settings: Settings
    counter_store: CounterStore
    object_store: ObjectStore
    expiry_index: ExpiryIndex
    admission_filter: AdmissionFilter
    rate_limiter: TwoTierRateLimiter
    object_proxy: ObjectProxy
    janitor: JanitorJob
    periodic_janitor: PeriodicJanitor | None = None
    database: Database | None = None

    async def start(self) -> None:
        """Prepare backends and start background work."""
        if self.database is not None:
            await self.database.create_all()
        if self.periodic_janitor is not None:
            self.periodic_janitor.start()
        logger.info(
            "gateway.started",
            extra={
                "counter_backend": self.settings.counter_store.backend.value,
                "storage_backend": self.settings.storage.backend.value,
                "failure_mode": self.settings.rate_limit.failure_mode.value,
                "janitor_enabled": self.periodic_janitor is not None,
            },
        )

    async def close(self) -> None:
        if self.periodic_janitor is not None:
            await self.periodic_janitor.stop()
        await self.counter_store.close()
        await self.object_store.close()
        if self.database is not None:
            await self.database.close()


def build_services(
    settings: Settings,
    *,
    counter_store: CounterStore | None = None,
    object_store: ObjectStore | None = None,
    expiry_index: ExpiryIndex | None = None,
    clock: Callable[[], float] = time.time,
) -> GatewayServices:
    """Wire the gateway from settings; explicit arguments override backends.

    Args:
        settings: Resolved settings.
        counter_store: Counter store to use instead of the configured one.
        object_store: Object store to use instead of the configured one.
        expiry_index: Expiry side table to use instead of the configured one.
        clock: Time source shared by the limiter, proxy and janitor.

    Returns:
        GatewayServices ready to be attached to the application.
    """
    needs_database = (
        (counter_store is None and settings.counter_store.backend == CounterBackend.SQL)
        or (expiry_index is None and settings.storage.expiry_backend == "sql")
    )
    database = Database(settings.counter_store.database_url) if needs_database else None

    if counter_store is None:
        counter_store = create_counter_store(settings, database=database)
    if object_store is None:
        object_store = create_object_store(settings)
    if expiry_index is None:
        if settings.storage.expiry_backend == "sql":
            from app.adapters.expiry.sql_index import SqlExpiryIndex

            expiry_index = SqlExpiryIndex(database=database)
        else:
            expiry_index = InMemoryExpiryIndex()

    app_cfg = settings.app
    limit_cfg = settings.rate_limit
    janitor_cfg = settings.janitor
    route_prefix = app_cfg.object_route_prefix.strip("/")

    rate_limiter = TwoTierRateLimiter(
        store=counter_store,
        burst_limit=limit_cfg.burst_limit,
        burst_window_seconds=limit_cfg.burst_window_seconds,
        sustained_limit=limit_cfg.sustained_limit,
        sustained_window_seconds=limit_cfg.sustained_window_seconds,
        failure_mode=limit_cfg.failure_mode,
        clock=clock,
    )
    janitor = JanitorJob(
        object_store=object_store,
        expiry_index=expiry_index,
        counter_store=counter_store,
        object_prefix=f"{route_prefix}/",
        object_retention_seconds=janitor_cfg.object_retention_seconds,
        counter_grace_seconds=janitor_cfg.counter_grace_seconds,
        clock=clock,
    )

    return GatewayServices(
        settings=settings,
        counter_store=counter_store,
        object_store=object_store,
        expiry_index=expiry_index,
        admission_filter=AdmissionFilter(
            object_route_prefix=route_prefix,
            trusted_agent_prefixes=split_csv(app_cfg.trusted_agent_prefixes),
        ),
        rate_limiter=rate_limiter,
        object_proxy=ObjectProxy(
            store=object_store,
            expiry_index=expiry_index,
            route_prefix=route_prefix,
            timeout_seconds=settings.storage.timeout_seconds,
            clock=clock,
        ),
        janitor=janitor,
        periodic_janitor=(
            PeriodicJanitor(janitor, interval_seconds=janitor_cfg.interval_seconds)
            if janitor_cfg.enabled
            else None
        ),
        database=database,
    )


def get_services(request: Request) -> GatewayServices:
    """FastAPI dependency returning the container attached to the app."""
    return request.app.state.services
