"""PostgreSQL access for the SQL-backed stores.

One async engine per process, created on first use. Stores open a
session per operation through :func:`get_db_session`; the session
commits when the block exits cleanly and rolls back otherwise.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it if needed."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.api_debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return _engine


def _session_maker() -> async_sessionmaker[AsyncSession]:
    global _sessions
    if _sessions is None:
        _sessions = async_sessionmaker(get_engine(), expire_on_commit=False, autoflush=False)
    return _sessions


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session scope.

    Usage:
        async with get_db_session() as db:
            await db.execute(text("SELECT 1"))
    """
    async with _session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    """True if PostgreSQL answers a trivial query."""
    async with get_db_session() as db:
        result = await db.execute(text("SELECT 1"))
        return result.scalar() == 1


async def close_all_connections() -> None:
    """Dispose of the engine.

    Called on API shutdown and at the end of every CLI/Celery run, since
    pooled asyncpg connections are bound to the event loop that opened
    them.
    """
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessions = None
