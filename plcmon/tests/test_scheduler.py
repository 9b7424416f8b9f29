"""
Tests for the polling scheduler against the demo controller.

Tests verify:
- The first cycle runs immediately after start.
- Overlapping ticks are skipped and counted, never queued.
- A dropped transport is reconnected on the next cycle.
- Connect and read failures are counted and written to the registry.
- A restart that cannot connect leaves the running loop alone.
- Two starts leave exactly one runner and close the first adapter.
- Stop disconnects and marks the service stopped, unless another live
  process owns it.
- A counted cycle is already idle, so an immediate tick runs.

CHANGELOG:
- 2026-10-19: Add ownership and idle-after-count tests
- 2026-10-12: Add registry failure tests
- 2026-10-10: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import os
import socket
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest

from plcmon.src.errors import PlcConnectionError, ServiceBusyError, StorageError
from plcmon.src.models import Endpoint, PollConfig, Sample
from plcmon.src.protocols.demo import DemoAdapter
from plcmon.src.services.registry import PollingStateRegistry
from plcmon.src.services.scheduler import FixedInterval, HourAligned, PollingScheduler

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RefusingDemoAdapter(DemoAdapter):
    """Demo controller whose connect can be switched to fail."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.refuse = False

    async def _open(self) -> None:
        if self.refuse:
            raise ConnectionRefusedError("refused")
        await super()._open()


class DroppingDemoAdapter(DemoAdapter):
    """Demo controller that loses the transport mid-batch."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.drop_next = False

    async def _read_one(self, address: str):
        if self.drop_next:
            self.drop_next = False
            self.drop_connection()
        return await super()._read_one(address)


class RecordingSink:
    def __init__(self) -> None:
        self.batches: list[list[Sample]] = []

    async def __call__(self, samples: list[Sample]) -> None:
        self.batches.append(samples)


def _config(*addresses: str) -> PollConfig:
    return PollConfig(
        channels=list(addresses) or ["D400"],
        endpoint=Endpoint(host="demo", port=502, protocol_kind="demo"),
        interval_ms=1000,
    )


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture()
def registry(sessions) -> PollingStateRegistry:
    return PollingStateRegistry(sessions)


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def scheduler(registry: PollingStateRegistry, sink: RecordingSink) -> PollingScheduler:
    return PollingScheduler(
        "realtime", registry, sink, lambda cfg: FixedInterval(cfg.interval_ms / 1000)
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestCadence:
    def test_fixed_interval(self) -> None:
        assert FixedInterval(2.0).next_delay(0) == 2.0

    def test_hour_aligned(self) -> None:
        now = int(datetime(2026, 10, 15, 13, 59, 30, tzinfo=UTC).timestamp() * 1000)
        assert HourAligned(ZoneInfo("UTC")).next_delay(now) == 30.0


class TestLifecycle:
    """Start, restart and stop."""

    @pytest.mark.asyncio
    async def test_first_cycle_is_immediate(
        self, scheduler: PollingScheduler, sink: RecordingSink, registry
    ) -> None:
        await scheduler.start(_config("D400", "D430"), DemoAdapter(seed=1), FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            assert [s.address for s in sink.batches[0]] == ["D400", "D430"]
            state = await registry.get("realtime")
            assert state.is_polling is True
            assert state.config["channels"][0]["address"] == "D400"
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_disconnects_and_marks_stopped(
        self, scheduler: PollingScheduler, registry
    ) -> None:
        adapter = DemoAdapter(seed=1)
        await scheduler.start(_config(), adapter, FixedInterval(3600))
        await scheduler.stop()

        assert scheduler.is_running is False
        assert adapter.connected is False
        assert (await registry.get("realtime")).is_polling is False

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_safe(self, scheduler: PollingScheduler) -> None:
        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_two_starts_leave_one_runner(self, scheduler: PollingScheduler) -> None:
        first = DemoAdapter(seed=1)
        second = DemoAdapter(seed=2)
        await scheduler.start(_config("D400"), first, FixedInterval(3600))
        await scheduler.start(_config("D410"), second, FixedInterval(3600))
        try:
            assert scheduler.is_running
            assert first.connected is False
            assert second.connected is True
            assert scheduler.addresses == ["D410"]
            tasks = [t for t in asyncio.all_tasks() if t.get_name() == "poll-realtime"]
            assert len(tasks) == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_restart_keeps_running_loop(self, scheduler: PollingScheduler) -> None:
        running = DemoAdapter(seed=1)
        await scheduler.start(_config("D400"), running, FixedInterval(3600))
        refusing = RefusingDemoAdapter(seed=2)
        refusing.refuse = True
        try:
            with pytest.raises(PlcConnectionError):
                await scheduler.start(_config("D410"), refusing, FixedInterval(3600))

            assert scheduler.is_running
            assert scheduler.addresses == ["D400"]
            assert running.connected is True
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_refused_for_live_foreign_owner(
        self, scheduler: PollingScheduler, sessions
    ) -> None:
        parent = f"{socket.gethostname()}:{os.getppid()}"
        await PollingStateRegistry(sessions, owner=parent).mark_started("realtime", {})

        with pytest.raises(ServiceBusyError):
            await scheduler.stop()

        state = await PollingStateRegistry(sessions).get("realtime")
        assert state.is_polling is True
        assert state.owner == parent

    @pytest.mark.asyncio
    async def test_lost_claim_disconnects_new_adapter(
        self, scheduler: PollingScheduler, registry: PollingStateRegistry
    ) -> None:
        adapter = DemoAdapter(seed=1)
        lost = AsyncMock(side_effect=ServiceBusyError("claimed by another process"))

        with patch.object(registry, "mark_started", lost), pytest.raises(ServiceBusyError):
            await scheduler.start(_config(), adapter, FixedInterval(3600))

        assert scheduler.is_running is False
        assert adapter.connected is False


class TestResilience:
    """Cycles survive transport and sink failures."""

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(
        self, registry: PollingStateRegistry
    ) -> None:
        release = asyncio.Event()

        async def slow_sink(samples: list[Sample]) -> None:
            await release.wait()

        scheduler = PollingScheduler("realtime", registry, slow_sink, lambda cfg: FixedInterval(0.02))
        await scheduler.start(_config(), DemoAdapter(seed=1))
        try:
            await _wait_for(lambda: scheduler.stats.skipped_ticks >= 2)
            assert scheduler.stats.cycle_count == 0
            assert await scheduler.tick() is False
        finally:
            release.set()
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_counted_cycle_is_idle(
        self, scheduler: PollingScheduler, registry: PollingStateRegistry
    ) -> None:
        record_success = registry.record_success

        async def slow_record(service: str, cycle_at: int) -> None:
            await asyncio.sleep(0.05)
            await record_success(service, cycle_at)

        with patch.object(registry, "record_success", slow_record):
            await scheduler.start(_config(), DemoAdapter(seed=1), FixedInterval(3600))
            try:
                await _wait_for(lambda: scheduler.stats.cycle_count == 1)
                assert scheduler.idle
                assert await scheduler.tick() is True
                assert scheduler.stats.cycle_count == 2
                assert scheduler.stats.skipped_ticks == 0
            finally:
                await scheduler.stop()

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(self, scheduler: PollingScheduler) -> None:
        adapter = DemoAdapter(seed=1)
        await scheduler.start(_config(), adapter, FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            adapter.drop_connection()

            assert await scheduler.tick() is True

            assert adapter.connected is True
            assert scheduler.stats.cycle_count == 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_connect_failures_are_recorded(
        self, scheduler: PollingScheduler, registry: PollingStateRegistry
    ) -> None:
        adapter = RefusingDemoAdapter(seed=1)
        await scheduler.start(_config(), adapter, FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            adapter.drop_connection()
            adapter.refuse = True

            await scheduler.tick()
            await scheduler.tick()

            assert scheduler.stats.consecutive_failures == 2
            state = await registry.get("realtime")
            assert state.consecutive_failures == 2
            assert "refused" in state.last_error

            adapter.refuse = False
            await scheduler.tick()

            assert scheduler.stats.consecutive_failures == 0
            recovered = await registry.get("realtime")
            assert recovered.consecutive_failures == 0
            assert recovered.last_error is None
            assert recovered.last_cycle_at is not None
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_drop_during_batch_disconnects(
        self, scheduler: PollingScheduler, sink: RecordingSink
    ) -> None:
        adapter = DroppingDemoAdapter(seed=1)
        await scheduler.start(_config(), adapter, FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            adapter.drop_next = True

            await scheduler.tick()

            assert scheduler.stats.consecutive_failures == 1
            assert len(sink.batches) == 1

            await scheduler.tick()
            assert scheduler.stats.consecutive_failures == 0
            assert len(sink.batches) == 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_sink_failure_keeps_loop(self, registry: PollingStateRegistry) -> None:
        async def broken_sink(samples: list[Sample]) -> None:
            raise StorageError("disk full")

        scheduler = PollingScheduler(
            "realtime", registry, broken_sink, lambda cfg: FixedInterval(3600)
        )
        await scheduler.start(_config(), DemoAdapter(seed=1))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            assert scheduler.stats.last_error == "disk full"
            assert scheduler.is_running
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_read_becomes_null_sample(
        self, scheduler: PollingScheduler, sink: RecordingSink
    ) -> None:
        adapter = DemoAdapter(seed=1, fail_addresses=["D430"])
        await scheduler.start(_config("D400", "D430"), adapter, FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            values = {s.address: s.value for s in sink.batches[0]}
            assert values["D400"] is not None
            assert values["D430"] is None
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_timestamps_never_go_backwards(
        self, scheduler: PollingScheduler, sink: RecordingSink
    ) -> None:
        await scheduler.start(_config(), DemoAdapter(seed=1), FixedInterval(3600))
        try:
            await _wait_for(lambda: scheduler.stats.cycle_count == 1)
            for _ in range(3):
                await scheduler.tick()
            stamps = [batch[0].timestamp for batch in sink.batches]
            assert stamps == sorted(stamps)
        finally:
            await scheduler.stop()
