"""Async engine and session management for the local SQLite store.

There is no module-level engine: the CLI builds one per command and
repositories receive a session factory.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tracklinker.config import get_logger, settings

from .db_models import TrackLinkerDBBase

logger = get_logger(__name__).bind(service="persistence")


def _is_memory_url(db_url: str) -> bool:
    return ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite+aiosqlite:")


def create_db_engine(connection_string: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine with SQLite pragmas applied on connect."""
    db_url = connection_string or settings.database.url
    echo = settings.database.echo if echo is None else echo

    if _is_memory_url(db_url):
        # Every connection must see the same in-memory database
        engine = create_async_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    else:
        if db_url.startswith("sqlite") and ":///" in db_url:
            Path(db_url.split(":///", 1)[1].split("?", 1)[0]).parent.mkdir(
                parents=True, exist_ok=True
            )
        engine = create_async_engine(
            db_url,
            pool_size=1,
            max_overflow=2,
            pool_timeout=60,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30.0}
            if db_url.startswith("sqlite")
            else {},
            echo=echo,
        )

    if db_url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout = 30000")
            cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

    logger.debug("Created database engine", url=db_url)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=True)


async def init_db(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(TrackLinkerDBBase.metadata.create_all)


@asynccontextmanager
async def get_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session that commits on success and rolls back on exception."""
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
