"""
Shared test fixtures for PLC monitor tests.

All monitor env vars are cleaned before each test and the working directory
is moved to tmp_path, so no developer .env file leaks into MonitorSettings.
Database fixtures use a fresh SQLite file per test.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

import random
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from plcmon.src.config import MonitorSettings
from plcmon.src.db.session import create_engine, create_session_factory, init_schema

# All MonitorSettings environment variable names, used for cleanup.
_ALL_MONITOR_ENV_VARS = (
    "DATABASE_PATH",
    "DEFAULT_PROTOCOL",
    "DEFAULT_MODE",
    "MODBUS_SLAVE_ID",
    "REGISTER_KIND",
    "D_ADDRESS_BASE",
    "MODBUS_OFFSET",
    "WORD_SIGNED",
    "CONNECT_TIMEOUT_S",
    "REQUEST_TIMEOUT_S",
    "MEMORY_CACHE_SIZE",
    "DEFAULT_INTERVAL_MS",
    "ACCUMULATOR_ADDRESS",
    "TIMEZONE",
    "ALLOW_TEST_DATA",
    "API_HOST",
    "API_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_monitor_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all monitor env vars and isolate from .env files before each test."""
    for var in _ALL_MONITOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite file for this test."""
    return tmp_path / "plcmon.db"


@pytest.fixture()
def settings(db_path: Path) -> MonitorSettings:
    """Settings pointing at the per-test database, demo protocol, UTC."""
    return MonitorSettings(database_path=str(db_path), timezone="UTC")


@pytest_asyncio.fixture()
async def engine(db_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Async engine with the schema created; disposed after the test."""
    eng = create_engine(db_path)
    await init_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture()
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1234)
