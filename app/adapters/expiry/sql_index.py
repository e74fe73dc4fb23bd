"""Expiry side table stored in the ``object_expiries`` relational table."""

from __future__ import annotations

from sqlalchemy import delete, select

from app.adapters.expiry.base import ExpiryIndex
from app.adapters.sql.database import Database
from app.adapters.sql.models import ObjectExpiryModel

# Keep IN (...) lists well below driver parameter limits.
_BATCH_SIZE = 500


def _batches(keys: list[str]) -> list[list[str]]:
    return [keys[i : i + _BATCH_SIZE] for i in range(0, len(keys), _BATCH_SIZE)]


class SqlExpiryIndex(ExpiryIndex):
    def __init__(self, *, database: Database) -> None:
        self._database = database

    async def set_expiry(self, key: str, expires_at: float) -> None:
        async with self._database.session() as session:
            await session.merge(ObjectExpiryModel(key=key, expires_at=expires_at))

    async def expiries_for(self, keys: list[str]) -> dict[str, float]:
        found: dict[str, float] = {}
        async with self._database.session() as session:
            for batch in _batches(keys):
                result = await session.execute(
                    select(ObjectExpiryModel.key, ObjectExpiryModel.expires_at).where(
                        ObjectExpiryModel.key.in_(batch)
                    )
                )
                found.update({key: expires_at for key, expires_at in result})
        return found

    async def remove(self, keys: list[str]) -> None:
        if not keys:
            return
        async with self._database.session() as session:
            for batch in _batches(keys):
                await session.execute(
                    delete(ObjectExpiryModel).where(ObjectExpiryModel.key.in_(batch))
                )
