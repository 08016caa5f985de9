"""
Async engine and session lifecycle.

The engine is built lazily from ``DATABASE_URL`` on first use and shared by
every request. PostgreSQL connections are pinned to the UTC time zone so
that ``date_trunc`` day and month buckets are UTC buckets regardless of the
server default.

CHANGELOG:
- 2026-10-06: Pin PostgreSQL session time zone to UTC (STORY-109)
- 2026-10-04: Add session_scope for non-request callers (STORY-107)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from energyshare.config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str | None = None) -> AsyncEngine:
    """Build an async engine.

    Args:
        url: Database URL; ``DATABASE_URL`` from settings when omitted.

    Returns:
        AsyncEngine: Engine with pre-ping enabled. asyncpg connections get
        ``timezone=UTC`` as a server setting.
    """
    url = url or get_settings().DATABASE_URL
    connect_args: dict = {}
    if make_url(url).get_backend_name() == "postgresql":
        connect_args["server_settings"] = {"timezone": "UTC"}
    return create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose sessions keep loaded values after commit.

    Turn-on and turn-off commit before their result is serialized, so
    expiring on commit would force a reload of every attribute.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory, creating the engine on first call."""
    global _engine, _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _engine = create_engine()
        _session_factory = create_session_factory(_engine)
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections and forget the shared engine."""
    global _engine, _session_factory  # noqa: PLW0603
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Open a session outside of a request, e.g. for health probes."""
    async with get_session_factory()() as session:
        yield session


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with session_scope() as session:
        yield session
