"""Relational counter store (SQLAlchemy async).

Atomicity strategy, per increment:

1. Live record: a single conditional ``UPDATE ... SET count = count + 1
   WHERE key = :key AND expires_at > :now RETURNING``. The database applies it
   atomically, so concurrent increments serialize on the row.
2. Expired record: compare-and-swap reset ``UPDATE ... SET count = 1,
   expires_at = :new WHERE key = :key AND expires_at <= :now``. Only one
   concurrent caller can win; the others see zero rows and loop back to (1).
3. Absent record: ``INSERT``. A concurrent insert of the same key raises
   ``IntegrityError`` and the loser retries from (1).

The loop is bounded; exhausting it reports the store as unavailable.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.adapters.counter_store.base import CounterRecord, CounterStore
from app.adapters.sql.database import Database
from app.adapters.sql.models import RateCounterModel
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class SqlCounterStore(CounterStore):
    """Counter store persisting records to the ``rate_counters`` table."""

    def __init__(
        self,
        *,
        database: Database,
        max_attempts: int = 5,
        timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._database = database
        self._max_attempts = max_attempts
        self._timeout = timeout_seconds
        self._clock = clock

    def _unavailable(self, operation: str, key: str | None, exc: BaseException | None = None) -> StoreUnavailableError:
        logger.error(
            "counter_store.sql_failed",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__ if exc else None,
                "error_msg": str(exc) if exc else "retries exhausted",
            },
        )
        details = {"backend": "sql", "operation": operation}
        if key is not None:
            details["key"] = key
        return StoreUnavailableError(
            code="counter_store_unavailable",
            message="Counter store is unavailable",
            details=details,
        )

    async def increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        if not key:
            raise ValueError("key must be a non-empty string")
        try:
            return await asyncio.wait_for(self._increment(key, ttl_seconds), timeout=self._timeout)
        except StoreUnavailableError:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            raise self._unavailable("increment", key, exc) from exc

    async def _increment(self, key: str, ttl_seconds: int) -> CounterRecord:
        table = RateCounterModel
        for attempt in range(1, self._max_attempts + 1):
            now = self._clock()

            async with self._database.session() as session:
                row = (
                    await session.execute(
                        update(table)
                        .where(table.key == key, table.expires_at > now)
                        .values(count=table.count + 1)
                        .returning(table.count, table.expires_at)
                        .execution_options(synchronize_session=False)
                    )
                ).first()
                if row is None:
                    row = (
                        await session.execute(
                            update(table)
                            .where(table.key == key, table.expires_at <= now)
                            .values(count=1, expires_at=now + ttl_seconds)
                            .returning(table.count, table.expires_at)
                            .execution_options(synchronize_session=False)
                        )
                    ).first()
            if row is not None:
                count, expires_at = row
                return CounterRecord(key=key, count=count, expires_at=expires_at)

            expires_at = now + ttl_seconds
            try:
                async with self._database.session() as session:
                    await session.execute(
                        insert(table).values(key=key, count=1, expires_at=expires_at)
                    )
            except IntegrityError:
                logger.debug(
                    "counter_store.sql_insert_conflict",
                    extra={"attempt": attempt, "max_attempts": self._max_attempts},
                )
                continue
            return CounterRecord(key=key, count=1, expires_at=expires_at)

        raise self._unavailable("increment", key)

    async def decrement(self, key: str) -> None:
        table = RateCounterModel
        now = self._clock()
        try:
            async with self._database.session() as session:
                await session.execute(
                    update(table)
                    .where(table.key == key, table.expires_at > now, table.count > 0)
                    .values(count=table.count - 1)
                    .execution_options(synchronize_session=False)
                )
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("decrement", key, exc) from exc

    async def reset_key(self, key: str) -> None:
        try:
            async with self._database.session() as session:
                await session.execute(delete(RateCounterModel).where(RateCounterModel.key == key))
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("reset_key", key, exc) from exc

    async def purge_expired(self, cutoff: float) -> list[str]:
        table = RateCounterModel
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    delete(table)
                    .where(table.expires_at < cutoff)
                    .returning(table.key)
                    .execution_options(synchronize_session=False)
                )
                return list(result.scalars())
        except (SQLAlchemyError, OSError) as exc:
            raise self._unavailable("purge_expired", None, exc) from exc
