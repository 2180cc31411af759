"""
Database layer — async SQLAlchemy 2.0 (asyncpg in production, aiosqlite
in tests).

Provides:
    • Async engine and session factory built from settings
    • Base model for ORM entities (zones, contacts)

Stores receive the session factory rather than a request-scoped session:
a zone transition is its own short transaction (conditional UPDATE), and
notification listeners read recipients outside the route's session.

Usage:
    from backend.app.core.database import Base, async_session_factory

    store = SqlZoneStore(async_session_factory)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy.types import TypeDecorator

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamps on every backend.

    SQLite stores DateTime values without an offset; values are written as
    UTC and read back with tzinfo=UTC.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        return _as_utc(value)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        return _as_utc(value)


# ── Engine ──
def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for *url*.

    SQLite connections are not pooled: aiosqlite connections belong to the
    event loop that opened them, and tests drive several loops.
    """
    kwargs: Dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
async_session_factory = build_session_factory(engine)


# ── Lifecycle ──
async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables (dev/test only — use migrations in production)."""
    # Register ORM tables on Base.metadata
    from backend.app.contacts import directory  # noqa: F401
    from backend.app.zones import store  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def reset_db(bind: AsyncEngine = engine) -> None:
    """Drop and recreate all tables (tests only)."""
    from backend.app.contacts import directory  # noqa: F401
    from backend.app.zones import store  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def ping_db(bind: AsyncEngine = engine) -> None:
    """Round-trip a trivial query; raises on connection failure."""
    async with bind.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db(bind: AsyncEngine = engine) -> None:
    """Dispose engine connections."""
    await bind.dispose()
    logger.info("Database connections closed")
