"""Async engine and session helpers for the persistence layer."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from .monitoring import instrument_engine

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

_ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
}


def to_async_url(database_url: str) -> str:
    """Swap a sync driver prefix for its asyncio counterpart."""
    scheme, sep, rest = database_url.partition("://")
    if not sep:
        return database_url
    return f"{_ASYNC_DRIVERS.get(scheme, scheme)}://{rest}"


def _build_engine(settings: Settings) -> AsyncEngine:
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("CADENCE_DATABASE_URL must be configured before using the database.")

    url = to_async_url(database_url)
    kwargs: dict[str, object] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.rstrip("/").endswith(":memory:") or url.endswith("://"):
            # One shared connection so every session sees the same in-memory database.
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow

    return create_async_engine(url, **kwargs)


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        _engine = _build_engine(settings)
        instrument_engine(_engine.sync_engine)
        _session_factory = async_sessionmaker(
            bind=_engine,
            autoflush=False,
            expire_on_commit=False,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@asynccontextmanager
async def session_scope(*, commit: bool = True) -> AsyncIterator[AsyncSession]:
    session = get_session_factory()()
    try:
        yield session
        if commit:
            await session.commit()
    except Exception:  # noqa: BLE001
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_session_dependency() -> AsyncGenerator[AsyncSession, None]:
    async with session_scope() as session:
        yield session


async def create_all() -> None:
    """Create tables directly from metadata (memory databases and tests)."""
    from .base import Base
    from . import models  # noqa: F401

    async with get_engine().begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "create_all",
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "get_session_factory",
    "session_scope",
    "to_async_url",
]
