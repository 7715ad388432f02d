"""Async SQLAlchemy engine and session factory construction.

Provides:
- Base: Declarative base for all pipeline tables
- create_engine_from_settings(): Engine built from Settings.DATABASE_URL
- make_session_factory(): Session factory callable consumed by repositories
- init_db() / close_db(): Schema creation and engine disposal

The engine is owned by the process bootstrap (see src.meetcoach.main) and
passed explicitly to whoever needs it; nothing here holds module state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.meetcoach.config import Settings

SessionFactory = Callable[[], AsyncGenerator[AsyncSession, None]]

# ── Declarative Base ────────────────────────────────────────────────────────

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """Base class for pipeline models."""

    metadata = metadata


# ── Engine & Session Factory ────────────────────────────────────────────────


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
    )


def make_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Build a session factory bound to ``engine``.

    The returned callable yields exactly one AsyncSession per call, matching
    the ``async for session in self._session_factory()`` pattern used by the
    repositories.
    """

    async def _session_factory() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return _session_factory


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db(engine: AsyncEngine) -> None:
    """Create pipeline tables if they don't exist (development convenience)."""
    # Import models so they register on Base.metadata
    from src.meetcoach.meetings import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine and close all connections."""
    await engine.dispose()
