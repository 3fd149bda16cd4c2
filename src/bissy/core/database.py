"""Async SQLAlchemy engine and declarative base for the metadata store.

Provides:
- Base: Declarative base for datasources, queries and api keys
- UTCDateTime: DateTime column that always round-trips timezone-aware UTC
- get_session(): Session generator used as the stores' session factory
- init_db() / close_db(): create tables on startup, dispose on shutdown

Column types are kept portable so the same models run on PostgreSQL
(asyncpg) in production and SQLite (aiosqlite) in tests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.bissy.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict[str, Any] = {"echo": False}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
            kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        _engine = create_async_engine(settings.DATABASE_URL, **kwargs)
    return _engine


# ── Declarative Base ───────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for all persisted models."""


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo on read, so values are normalised to UTC on the way
    in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the module engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


def session_factory_for(engine: AsyncEngine):
    """Build a session factory bound to a specific engine (tests, scripts)."""

    async def _factory() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return _factory


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables if they don't exist."""
    # Model modules register their tables on Base.metadata at import time
    import src.bissy.apikeys.models  # noqa: F401
    import src.bissy.querycache.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
