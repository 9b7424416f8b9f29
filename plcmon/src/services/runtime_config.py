"""
Durable runtime flags shared across processes.

Currently holds one flag, the sample mode (``memory`` or ``durable``). It is
written when realtime polling is started and read once when a process starts,
so every worker serves recent-sample reads the same way.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging

from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plcmon.src.clock import now_ms
from plcmon.src.config import VALID_MODES
from plcmon.src.db.models import RuntimeConfigRow
from plcmon.src.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

MODE_KEY = "sample_mode"


class RuntimeConfig:
    """Key/value access to the ``runtime_config`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_mode(self, default: str = "durable") -> str:
        try:
            async with self._sessions() as session:
                row = await session.get(RuntimeConfigRow, MODE_KEY)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read runtime config: {exc}") from exc
        return row.value if row is not None else default

    async def set_mode(self, mode: str) -> None:
        """Persist the sample mode.

        Raises:
            ValidationError: If *mode* is not ``memory`` or ``durable``.
        """
        if mode not in VALID_MODES:
            raise ValidationError(f"mode must be one of {sorted(VALID_MODES)}")
        ts = now_ms()
        stmt = insert(RuntimeConfigRow).values(key=MODE_KEY, value=mode, updated_at=ts)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"], set_={"value": mode, "updated_at": ts}
        )
        try:
            async with self._sessions() as session, session.begin():
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write runtime config: {exc}") from exc
        logger.info("Sample mode set to %s", mode)
