"""
Tests for the durable polling state registry.

CHANGELOG:
- 2026-10-19: Add conditional claim and release tests
- 2026-10-12: Add ownership and orphan release tests
- 2026-10-08: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import os
import socket
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from plcmon.src.db.session import create_engine, create_session_factory
from plcmon.src.errors import ServiceBusyError
from plcmon.src.models import PollState
from plcmon.src.services.registry import PollingStateRegistry, process_owner
from plcmon.src.services.runtime_config import RuntimeConfig

DEAD_PID = 999_999_999


class TestStateRows:
    """Single-row-per-service upserts."""

    @pytest.mark.asyncio
    async def test_defaults_when_never_started(self, sessions) -> None:
        states = await PollingStateRegistry(sessions).get_all()

        assert set(states) == {"realtime", "hourly"}
        assert not any(s.is_polling for s in states.values())

    @pytest.mark.asyncio
    async def test_start_then_stop(self, sessions) -> None:
        registry = PollingStateRegistry(sessions)
        await registry.mark_started("realtime", {"addresses": ["D400"]})

        state = await registry.get("realtime")
        assert state.is_polling is True
        assert state.owner == process_owner()
        assert state.config == {"addresses": ["D400"]}
        assert state.started_at is not None

        await registry.mark_stopped("realtime")
        stopped = await registry.get("realtime")
        assert stopped.is_polling is False
        assert stopped.config == {"addresses": ["D400"]}

    @pytest.mark.asyncio
    async def test_failure_then_success(self, sessions) -> None:
        registry = PollingStateRegistry(sessions)
        await registry.mark_started("hourly", {})
        await registry.record_failure("hourly", "timeout", 3)

        failed = await registry.get("hourly")
        assert failed.last_error == "timeout"
        assert failed.consecutive_failures == 3

        await registry.record_success("hourly", 12345)
        ok = await registry.get("hourly")
        assert ok.last_error is None
        assert ok.consecutive_failures == 0
        assert ok.last_cycle_at == 12345
        assert ok.is_polling is True

    @pytest.mark.asyncio
    async def test_visible_from_another_engine(self, sessions, db_path: Path) -> None:
        await PollingStateRegistry(sessions).mark_started("realtime", {})

        other = create_engine(db_path)
        try:
            state = await PollingStateRegistry(create_session_factory(other)).get("realtime")
        finally:
            await other.dispose()

        assert state.is_polling is True


class TestOwnership:
    @pytest.mark.asyncio
    async def test_busy_for_live_foreign_owner(self, sessions) -> None:
        parent = f"{socket.gethostname()}:{os.getppid()}"
        await PollingStateRegistry(sessions, owner=parent).mark_started("realtime", {})

        with pytest.raises(ServiceBusyError):
            await PollingStateRegistry(sessions).ensure_available("realtime")

    @pytest.mark.asyncio
    async def test_own_service_is_available(self, sessions) -> None:
        registry = PollingStateRegistry(sessions)
        await registry.mark_started("realtime", {})
        await registry.ensure_available("realtime")

    @pytest.mark.asyncio
    async def test_dead_owner_is_available(self, sessions) -> None:
        dead = f"{socket.gethostname()}:{DEAD_PID}"
        await PollingStateRegistry(sessions, owner=dead).mark_started("realtime", {})
        await PollingStateRegistry(sessions).ensure_available("realtime")

    @pytest.mark.asyncio
    async def test_dead_owner_can_be_claimed(self, sessions) -> None:
        dead = f"{socket.gethostname()}:{DEAD_PID}"
        await PollingStateRegistry(sessions, owner=dead).mark_started("realtime", {})

        await PollingStateRegistry(sessions).mark_started("realtime", {"addresses": ["D400"]})

        state = await PollingStateRegistry(sessions).get("realtime")
        assert state.owner == process_owner()
        assert state.config == {"addresses": ["D400"]}

    @pytest.mark.asyncio
    async def test_concurrent_claim_loses(self, sessions) -> None:
        """A claim based on a stale 'stopped' read does not overwrite the winner."""
        parent = f"{socket.gethostname()}:{os.getppid()}"
        late = PollingStateRegistry(sessions)
        stale = AsyncMock(return_value=PollState(service_name="realtime"))
        await PollingStateRegistry(sessions, owner=parent).mark_started("realtime", {"n": 1})

        with patch.object(late, "get", stale), pytest.raises(ServiceBusyError):
            await late.mark_started("realtime", {"n": 2})

        state = await PollingStateRegistry(sessions).get("realtime")
        assert state.owner == parent
        assert state.config == {"n": 1}

    @pytest.mark.asyncio
    async def test_release_refuses_live_foreign_owner(self, sessions) -> None:
        parent = f"{socket.gethostname()}:{os.getppid()}"
        await PollingStateRegistry(sessions, owner=parent).mark_started("realtime", {})

        with pytest.raises(ServiceBusyError):
            await PollingStateRegistry(sessions).release("realtime")

        state = await PollingStateRegistry(sessions).get("realtime")
        assert state.is_polling is True
        assert state.owner == parent

    @pytest.mark.asyncio
    async def test_release_own_or_idle(self, sessions) -> None:
        registry = PollingStateRegistry(sessions)
        await registry.mark_started("realtime", {})

        await registry.release("realtime")
        await registry.release("hourly")

        states = await registry.get_all()
        assert states["realtime"].is_polling is False
        assert states["hourly"].is_polling is False

    @pytest.mark.asyncio
    async def test_release_orphaned(self, sessions) -> None:
        dead = f"{socket.gethostname()}:{DEAD_PID}"
        parent = f"{socket.gethostname()}:{os.getppid()}"
        await PollingStateRegistry(sessions, owner=dead).mark_started("realtime", {})
        await PollingStateRegistry(sessions, owner=parent).mark_started("hourly", {})

        released = await PollingStateRegistry(sessions).release_orphaned()

        assert released == ["realtime"]
        states = await PollingStateRegistry(sessions).get_all()
        assert states["realtime"].is_polling is False
        assert states["hourly"].is_polling is True


class TestRuntimeConfig:
    """Persisted sample mode."""

    @pytest.mark.asyncio
    async def test_default_then_set(self, sessions) -> None:
        config = RuntimeConfig(sessions)
        assert await config.get_mode("durable") == "durable"

        await config.set_mode("memory")
        assert await RuntimeConfig(sessions).get_mode("durable") == "memory"
