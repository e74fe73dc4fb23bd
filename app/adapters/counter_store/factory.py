"""Factory for the configured counter store backend."""

from __future__ import annotations

from app.adapters.counter_store.base import CounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.sql.database import Database
from app.core.config import CounterBackend, Settings, settings as default_settings


def create_counter_store(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
) -> CounterStore:
    """Instantiate the counter store selected by ``COUNTER_STORE_BACKEND``.

    Args:
        settings: Settings to read; defaults to the global settings.
        database: Shared Database, required for the sql backend.

    Returns:
        CounterStore: Configured counter store.

    Raises:
        ValueError: If the sql backend is selected without a database.
    """
    cfg = settings or default_settings
    store_cfg = cfg.counter_store

    if store_cfg.backend == CounterBackend.REDIS:
        from app.adapters.counter_store.redis_store import RedisCounterStore

        return RedisCounterStore.from_url(
            store_cfg.redis_url,
            namespace=store_cfg.redis_namespace,
            expiry_grace_seconds=cfg.janitor.counter_grace_seconds,
            timeout_seconds=store_cfg.timeout_seconds,
        )

    if store_cfg.backend == CounterBackend.SQL:
        from app.adapters.counter_store.sql_store import SqlCounterStore

        if database is None:
            raise ValueError("sql counter backend requires a Database")
        return SqlCounterStore(
            database=database,
            max_attempts=store_cfg.sql_max_attempts,
            timeout_seconds=store_cfg.timeout_seconds,
        )

    return InMemoryCounterStore()
