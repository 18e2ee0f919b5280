"""Engine creation and schema setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# Register every table on SQLModel.metadata
import skusync.models  # noqa: F401

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_DRIVER_REWRITES: tuple[tuple[str, str], ...] = (
    ("postgresql://", "postgresql+asyncpg://"),
    ("postgres://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)


def normalize_database_url(url: str) -> str:
    """Point plain ``postgresql://`` and ``sqlite://`` URLs at async drivers."""
    url = url.strip()
    for prefix, replacement in _DRIVER_REWRITES:
        if url.startswith(prefix):
            return replacement + url[len(prefix) :]
    return url


def create_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine; SQLite connections get WAL and a busy timeout."""
    engine = create_async_engine(normalize_database_url(url), echo=False, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: object, connection_record: object) -> None:
            cursor = dbapi_connection.cursor()  # type: ignore[union-attr]
            cursor.execute("PRAGMA journal_mode=WAL")
            result = cursor.fetchone()
            if result is not None and str(result[0]).lower() != "wal":
                logger.warning(
                    "SQLite WAL mode not available (got %s); concurrency may be limited",
                    result[0],
                )
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


async def init_schema(engine: AsyncEngine) -> None:
    """Create every skusync table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
