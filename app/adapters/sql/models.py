"""Relational tables owned by the gateway."""

from __future__ import annotations

from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RateCounterModel(Base):
    """One fixed-window counter per (tier, fingerprint) key."""

    __tablename__ = "rate_counters"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # UNIX epoch seconds; indexed for the janitor's predicate delete.
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)


class ObjectExpiryModel(Base):
    """Explicit expiry recorded for a stored object."""

    __tablename__ = "object_expiries"

    key: Mapped[str] = mapped_column(String(1024), primary_key=True)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)
