"""Async engines and sessions, one engine per database URL.

The ledger store and the decision sink may point at the same URL; they share
the cached engine so SQLite sees a single connection pool.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

DEFAULT_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///./data/pacer.db"

_engines: dict[str, AsyncEngine] = {}
_factories: dict[str, async_sessionmaker[AsyncSession]] = {}


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def get_async_engine(database_url: str = DEFAULT_ASYNC_DATABASE_URL) -> AsyncEngine:
    engine = _engines.get(database_url)
    if engine is None:
        _ensure_sqlite_dir(database_url)
        engine = create_async_engine(database_url, echo=False, pool_pre_ping=True)
        _engines[database_url] = engine
    return engine


def get_async_session_factory(
    database_url: str = DEFAULT_ASYNC_DATABASE_URL,
) -> async_sessionmaker[AsyncSession]:
    factory = _factories.get(database_url)
    if factory is None:
        factory = async_sessionmaker(
            get_async_engine(database_url),
            autoflush=False,
            expire_on_commit=False,
        )
        _factories[database_url] = factory
    return factory


@asynccontextmanager
async def get_session(
    database_url: str = DEFAULT_ASYNC_DATABASE_URL,
) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit if the block finishes, roll back if it raises."""
    async with get_async_session_factory(database_url)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db_async(database_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
    """Create any missing tables."""
    async with get_async_engine(database_url).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_async(database_url: Optional[str] = None) -> None:
    """Dispose one engine, or every cached engine when no URL is given."""
    urls = [database_url] if database_url else list(_engines)
    for url in urls:
        _factories.pop(url, None)
        engine = _engines.pop(url, None)
        if engine is not None:
            await engine.dispose()
