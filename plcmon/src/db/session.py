"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine with the aiosqlite driver. Every pooled
connection is switched to WAL journal mode with a busy timeout so several
processes can share one database file: readers never block the poll loop's
writes, and a writer waits instead of failing on a locked file.

Engines are created explicitly by the caller (the API lifespan, tests) and
passed around; there is no module-level engine.

CHANGELOG:
- 2026-10-07: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from plcmon.src.db.models import Base

BUSY_TIMEOUT_MS = 5000


def database_url(path: str | Path) -> str:
    """Build the sqlite+aiosqlite URL for a database file path."""
    return f"sqlite+aiosqlite:///{Path(path)}"


def create_engine(path: str | Path) -> AsyncEngine:
    """Create an async engine for the SQLite file at *path*.

    Creates the parent directory if needed and installs a connect hook that
    applies the WAL and busy-timeout pragmas.

    Args:
        path: Filesystem path of the database file.

    Returns:
        AsyncEngine: Configured async engine.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(database_url(path), echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS};")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create any missing tables.

    Safe on an existing database; Alembic revisions describe the same schema
    for managed upgrades.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
