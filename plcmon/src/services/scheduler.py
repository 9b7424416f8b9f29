"""
Polling scheduler: one cancellable runner per logical service.

A scheduler owns one protocol adapter and one poll configuration at a time.
Starting validates the addresses and connects before anything else changes,
so a bad restart request leaves the running loop alone. The runner fires a
tick on every cadence deadline; a tick that finds the previous cycle still
in flight is skipped and counted rather than queued.

Every cycle is resilient: a dropped transport disconnects the adapter and the
next tick reconnects; a sink failure is logged and the loop keeps going.
Failures and recoveries are written to the polling state registry so other
processes can report them.

CHANGELOG:
- 2026-10-19: Count a cycle once idle; stop releases only rows this process may clear
- 2026-10-12: Record failures and recoveries in the registry
- 2026-10-10: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from zoneinfo import ZoneInfo

from plcmon.src.clock import next_hour_ms, now_ms
from plcmon.src.errors import PlcConnectionError, ServiceBusyError, StorageError
from plcmon.src.models import PollConfig, Sample
from plcmon.src.normalizer import to_samples

if TYPE_CHECKING:
    from plcmon.src.protocols.base import ProtocolAdapter
    from plcmon.src.services.registry import PollingStateRegistry

logger = logging.getLogger(__name__)

Sink = Callable[[list[Sample]], Awaitable[None]]
"""Receives every cycle's samples (cache, store, aggregator...)."""


# ---------------------------------------------------------------------------
# Cadences
# ---------------------------------------------------------------------------


class Cadence(Protocol):
    def next_delay(self, now: int) -> float:
        """Seconds from *now* (epoch ms) until the next tick."""


@dataclass(frozen=True)
class FixedInterval:
    """Tick every ``seconds`` seconds."""

    seconds: float

    def next_delay(self, now: int) -> float:  # noqa: ARG002
        return self.seconds


@dataclass(frozen=True)
class HourAligned:
    """Tick at the top of every local hour."""

    tz: ZoneInfo

    def next_delay(self, now: int) -> float:
        return max(0.0, (next_hour_ms(now, self.tz) - now) / 1000)


@dataclass
class SchedulerStats:
    """Counters for one scheduler since its last start."""

    cycle_count: int = 0
    skipped_ticks: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    last_cycle_ms: int | None = None


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class PollingScheduler:
    """Runs one polling service.

    Args:
        name: Service name used in the registry (``"realtime"``, ``"hourly"``).
        registry: Durable polling state registry.
        sink: Coroutine receiving each cycle's samples.
        cadence_for: Builds the cadence for a given configuration.
    """

    def __init__(
        self,
        name: str,
        registry: PollingStateRegistry,
        sink: Sink,
        cadence_for: Callable[[PollConfig], Cadence],
    ) -> None:
        self.name = name
        self._registry = registry
        self._sink = sink
        self._cadence_for = cadence_for
        self._lock = asyncio.Lock()
        self._runner: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._in_flight = False
        self._adapter: ProtocolAdapter | None = None
        self._config: PollConfig | None = None
        self._addresses: list[str] = []
        self._cadence: Cadence | None = None
        self._last_ts = 0
        self.stats = SchedulerStats()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def idle(self) -> bool:
        """True when no cycle is in flight, so :meth:`tick` will run one."""
        return not self._in_flight

    @property
    def config(self) -> PollConfig | None:
        return self._config

    @property
    def addresses(self) -> list[str]:
        return list(self._addresses)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        config: PollConfig,
        adapter: ProtocolAdapter,
        cadence: Cadence | None = None,
    ) -> None:
        """Start (or restart) polling with *config* through *adapter*.

        Validation and connect happen before the running loop is touched.

        Raises:
            ConfigurationError: If an address cannot be mapped.
            ServiceBusyError: If another live process owns this service.
            PlcConnectionError: If the controller cannot be reached.
        """
        addresses = adapter.validate(config.addresses)
        await self._registry.ensure_available(self.name)
        await adapter.connect()

        async with self._lock:
            try:
                await self._registry.mark_started(self.name, config.model_dump(mode="json"))
            except (ServiceBusyError, StorageError):
                await adapter.disconnect()
                raise
            await self._teardown()
            self._adapter = adapter
            self._config = config
            self._addresses = addresses
            self._cadence = cadence or self._cadence_for(config)
            self.stats = SchedulerStats()
            self._runner = asyncio.create_task(self._run(), name=f"poll-{self.name}")

        logger.info(
            "Service '%s' polling %d address(es) via %r",
            self.name,
            len(addresses),
            adapter,
        )

    async def stop(self) -> None:
        """Stop the runner, disconnect, and mark the service stopped.

        Safe to call when nothing is running here.

        Raises:
            ServiceBusyError: If another live process owns the service; its
                registry row is left untouched.
        """
        async with self._lock:
            was_running = self.is_running
            await self._teardown()
            await self._registry.release(self.name)
        if was_running:
            logger.info("Service '%s' stopped", self.name)

    async def tick(self) -> bool:
        """Run one cycle now unless one is already in flight.

        Returns:
            False if the tick was skipped.
        """
        if self._in_flight:
            self._skip()
            return False
        self._in_flight = True
        await self._guarded_cycle()
        return True

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        assert self._cadence is not None
        while True:
            self._launch_tick()
            await asyncio.sleep(self._cadence.next_delay(now_ms()))

    def _launch_tick(self) -> None:
        if self._in_flight:
            self._skip()
            return
        self._in_flight = True
        self._tick_task = asyncio.create_task(
            self._guarded_cycle(), name=f"poll-{self.name}-cycle"
        )

    def _skip(self) -> None:
        self.stats.skipped_ticks += 1
        logger.warning(
            "Service '%s' skipped a tick, previous cycle still running (skipped=%d)",
            self.name,
            self.stats.skipped_ticks,
        )

    async def _guarded_cycle(self) -> None:
        completed = False
        try:
            completed = await self._cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unexpected error in '%s' poll cycle", self.name)
        finally:
            self._in_flight = False
            # cycle_count == n implies idle
            if completed:
                self.stats.cycle_count += 1

    async def _cycle(self) -> bool:
        adapter = self._adapter
        if adapter is None:
            return False

        if not adapter.connected:
            try:
                await adapter.connect()
            except PlcConnectionError as exc:
                await self._record_failure(exc)
                return False
            logger.info("Service '%s' reconnected to %r", self.name, adapter)

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            readings = await adapter.read_batch(self._addresses)
        except PlcConnectionError as exc:
            await adapter.disconnect()
            await self._record_failure(exc)
            return False

        ts = max(now_ms(), self._last_ts)
        self._last_ts = ts
        samples = to_samples(readings, ts)
        try:
            await self._sink(samples)
        except StorageError as exc:
            logger.error("Service '%s' failed to store samples: %s", self.name, exc)
            self.stats.last_error = str(exc)

        self.stats.last_cycle_ms = int((loop.time() - started) * 1000)
        if self.stats.consecutive_failures:
            logger.info(
                "Service '%s' recovered after %d failed cycle(s)",
                self.name,
                self.stats.consecutive_failures,
            )
        self.stats.consecutive_failures = 0
        try:
            await self._registry.record_success(self.name, ts)
        except StorageError as exc:
            logger.warning("Service '%s' could not record cycle: %s", self.name, exc)
        return True

    async def _record_failure(self, exc: Exception) -> None:
        self.stats.consecutive_failures += 1
        self.stats.last_error = str(exc)
        logger.warning(
            "Service '%s' cycle failed (consecutive=%d): %s",
            self.name,
            self.stats.consecutive_failures,
            exc,
        )
        try:
            await self._registry.record_failure(
                self.name, str(exc), self.stats.consecutive_failures
            )
        except StorageError as store_exc:
            logger.warning("Service '%s' could not record failure: %s", self.name, store_exc)

    async def _teardown(self) -> None:
        runner, self._runner = self._runner, None
        tick, self._tick_task = self._tick_task, None
        adapter, self._adapter = self._adapter, None
        try:
            for task in (runner, tick):
                if task is not None and not task.done():
                    task.cancel()
            for task in (runner, tick):
                if task is not None:
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
        finally:
            self._in_flight = False
            if adapter is not None:
                await adapter.disconnect()
