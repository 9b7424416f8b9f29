"""
Durable, cross-process registry of polling service state.

One ``polling_state`` row per service (``realtime``, ``hourly``). Every
process reads status from here, so an HTTP worker that does not run the loop
still reports what the polling process is doing. Each write is a single
``INSERT ... ON CONFLICT DO UPDATE`` so readers never see a half-written row.

Ownership is recorded as ``"<hostname>:<pid>"``. At startup a process calls
:meth:`PollingStateRegistry.release_orphaned` to clear rows left polling by a
local process that no longer exists.

CHANGELOG:
- 2026-10-19: Conditional claim on start; stop refuses a live foreign owner
- 2026-10-12: Add ownership and orphan release
- 2026-10-08: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import os
import socket
from typing import Any

from sqlalchemy import ColumnElement, or_, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plcmon.src.clock import now_ms
from plcmon.src.db.models import PollingStateRow
from plcmon.src.errors import ServiceBusyError, StorageError
from plcmon.src.models import PollState

logger = logging.getLogger(__name__)

SERVICES: tuple[str, ...] = ("realtime", "hourly")


def process_owner() -> str:
    """Owner tag of the current process."""
    return f"{socket.gethostname()}:{os.getpid()}"


def _owner_alive(owner: str | None) -> bool:
    """Whether *owner* names a live process on this host.

    Owners on other hosts cannot be checked and are assumed alive.
    """
    if not owner:
        return False
    host, _, pid_text = owner.rpartition(":")
    if host != socket.gethostname():
        return True
    try:
        pid = int(pid_text)
    except ValueError:
        return False
    if pid == os.getpid():
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _to_state(row: PollingStateRow) -> PollState:
    return PollState(
        service_name=row.service_name,
        is_polling=row.is_polling,
        started_at=row.started_at,
        updated_at=row.updated_at,
        config=json.loads(row.config_json) if row.config_json else None,
        owner=row.owner,
        last_error=row.last_error,
        consecutive_failures=row.consecutive_failures,
        last_cycle_at=row.last_cycle_at,
    )


class PollingStateRegistry:
    """Read and write ``polling_state`` rows.

    Args:
        session_factory: Factory bound to the monitor's engine.
        owner: Owner tag written on start; defaults to this process.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        owner: str | None = None,
    ) -> None:
        self._sessions = session_factory
        self.owner = owner or process_owner()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, service: str) -> PollState:
        """Return the state of *service*, a stopped default when absent."""
        try:
            async with self._sessions() as session:
                row = await session.get(PollingStateRow, service)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read polling state: {exc}") from exc
        return _to_state(row) if row is not None else PollState(service_name=service)

    async def get_all(self) -> dict[str, PollState]:
        """State of every known service, including ones never started."""
        try:
            async with self._sessions() as session:
                rows = (await session.execute(select(PollingStateRow))).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read polling state: {exc}") from exc
        states = {name: PollState(service_name=name) for name in SERVICES}
        for row in rows:
            states[row.service_name] = _to_state(row)
        return states

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def ensure_available(self, service: str) -> None:
        """Refuse to take over a service owned by another live process.

        Raises:
            ServiceBusyError: If the service is polling under a live owner
                other than this process.
        """
        self._check_free(service, await self.get(service))

    async def mark_started(self, service: str, config: dict[str, Any]) -> None:
        """Claim *service* for this process.

        The write is conditional: it lands only while the row is stopped, is
        already ours, or is still held by the dead owner read just before.
        A claim by another process in between makes this one fail.

        Raises:
            ServiceBusyError: If another live process owns the service.
        """
        state = await self.get(service)
        self._check_free(service, state)
        ts = now_ms()
        claimed = await self._upsert(
            service,
            where=self._claimable(state),
            is_polling=True,
            started_at=ts,
            updated_at=ts,
            config_json=json.dumps(config),
            owner=self.owner,
            last_error=None,
            consecutive_failures=0,
        )
        if not claimed:
            raise ServiceBusyError(f"Service '{service}' was claimed by another process")
        logger.info("Service '%s' marked polling by %s", service, self.owner)

    async def mark_stopped(self, service: str) -> None:
        await self._upsert(service, is_polling=False, updated_at=now_ms())
        logger.info("Service '%s' marked stopped", service)

    async def release(self, service: str) -> None:
        """Mark *service* stopped unless another live process owns it.

        Raises:
            ServiceBusyError: If the service is polling under a live owner
                other than this process.
        """
        state = await self.get(service)
        self._check_free(service, state)
        released = await self._upsert(
            service, where=self._claimable(state), is_polling=False, updated_at=now_ms()
        )
        if not released:
            raise ServiceBusyError(f"Service '{service}' was claimed by another process")
        logger.info("Service '%s' marked stopped", service)

    async def record_failure(self, service: str, error: str, consecutive: int) -> None:
        await self._upsert(
            service,
            updated_at=now_ms(),
            last_error=error,
            consecutive_failures=consecutive,
        )

    async def record_success(self, service: str, cycle_at: int) -> None:
        await self._upsert(
            service,
            updated_at=now_ms(),
            last_error=None,
            consecutive_failures=0,
            last_cycle_at=cycle_at,
        )

    async def release_orphaned(self) -> list[str]:
        """Mark stopped every polling row whose local owner process is gone.

        Returns:
            Names of the services that were released.
        """
        released: list[str] = []
        for name, state in (await self.get_all()).items():
            if state.is_polling and not _owner_alive(state.owner):
                await self.mark_stopped(name)
                released.append(name)
                logger.warning(
                    "Released orphaned polling state for '%s' (owner %s)", name, state.owner
                )
        return released

    def _check_free(self, service: str, state: PollState) -> None:
        if state.is_polling and state.owner != self.owner and _owner_alive(state.owner):
            raise ServiceBusyError(
                f"Service '{service}' is already polling in process {state.owner}"
            )

    def _claimable(self, state: PollState) -> ColumnElement[bool]:
        """Rows this process may overwrite, given the *state* it last read."""
        clauses = [
            PollingStateRow.is_polling.is_(False),
            PollingStateRow.owner.is_(None),
            PollingStateRow.owner == self.owner,
        ]
        if state.is_polling and state.owner:
            clauses.append(PollingStateRow.owner == state.owner)
        return or_(*clauses)

    async def _upsert(
        self, service: str, where: ColumnElement[bool] | None = None, **values: Any
    ) -> bool:
        """Insert or update one row; False when *where* rejected the update."""
        insert_values = {"service_name": service, "updated_at": now_ms(), **values}
        stmt = insert(PollingStateRow).values(**insert_values)
        stmt = stmt.on_conflict_do_update(index_elements=["service_name"], set_=values, where=where)
        try:
            async with self._sessions() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write polling state: {exc}") from exc
        return result.rowcount > 0
