"""
Async engine and session factory for the ledger database.

SQLite via aiosqlite by default, PostgreSQL via asyncpg when DATABASE_URL
points there. Both are created lazily on first use so tests can swap the
URL before anything connects.
"""
import logging
from typing import AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool
from sqlmodel import SQLModel

from arbiter.config import get_settings

logger = logging.getLogger("arbiter.database")

ASYNC_DRIVERS: Dict[str, str] = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url() -> str:
    """DATABASE_URL with its driver swapped for the async one."""
    url = get_settings().DATABASE_URL
    for prefix, async_prefix in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is not None:
        return _engine

    url = get_database_url()
    echo = get_settings().DEBUG
    if url.startswith("sqlite"):
        # One connection per checkout; aiosqlite runs each on its own thread.
        _engine = create_async_engine(
            url, echo=echo, poolclass=NullPool, connect_args={"check_same_thread": False},
        )
    else:
        _engine = create_async_engine(
            url,
            echo=echo,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=5,
            max_overflow=10,
            pool_recycle=1800,
        )
    logger.info("Database engine created (%s)", url.split("://", 1)[0])
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False, autoflush=False,
        )
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one request, one transaction.

    Commits when the handler returns and rolls back if it raises. Services
    that must keep a write despite the error (a deactivated combat session)
    commit it themselves before re-raising.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back request transaction", exc_info=True)
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the ledger, combat session and action log tables."""
    from arbiter.database import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables ready")


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
