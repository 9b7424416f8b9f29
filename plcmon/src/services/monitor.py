"""
MonitorService: the per-process facade over every monitor component.

Built explicitly by the API lifespan (or a test) from MonitorSettings and
closed on shutdown; nothing here is a module-level singleton. It owns the
database engine, the sample store and memory cache, the polling state
registry, the runtime config flag, the hourly aggregator and the two polling
schedulers:

- ``realtime`` polls the configured addresses at a fixed interval and writes
  every sample to the cache and the store. When the accumulator address is
  among them its readings also feed the aggregator.
- ``hourly`` polls the accumulator address at the top of every local hour
  (and once immediately) and feeds the aggregator only.

CHANGELOG:
- 2026-10-19: Keep an explicit zero interval so it is clamped
- 2026-10-13: Add hourly service and energy passthroughs
- 2026-10-12: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncEngine

from plcmon.src.addresses import normalize_address
from plcmon.src.config import MonitorSettings
from plcmon.src.db.session import create_engine, create_session_factory, init_schema
from plcmon.src.errors import ValidationError
from plcmon.src.models import (
    Channel,
    DayEnergy,
    EnergySummary,
    Endpoint,
    PollConfig,
    PollState,
    Sample,
    StoreStats,
)
from plcmon.src.protocols import ProtocolAdapter, create_adapter
from plcmon.src.services.aggregator import HourlyAggregator
from plcmon.src.services.cache import MemoryCache
from plcmon.src.services.registry import SERVICES, PollingStateRegistry
from plcmon.src.services.runtime_config import RuntimeConfig
from plcmon.src.services.scheduler import FixedInterval, HourAligned, PollingScheduler
from plcmon.src.services.store import TimeSeriesStore

logger = logging.getLogger(__name__)

DataKind = Literal["realtime", "hourly", "daily"]
AdapterFactory = Callable[[Endpoint, MonitorSettings], ProtocolAdapter]

MAX_RECENT_LIMIT = 10_000


class MonitorService:
    """Owns and wires all monitor components for one process.

    Args:
        settings: Process settings.
        adapter_factory: Builds protocol adapters; defaults to
            :func:`~plcmon.src.protocols.create_adapter`.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        adapter_factory: AdapterFactory = create_adapter,
    ) -> None:
        self.settings = settings
        self._adapter_factory = adapter_factory
        self.tz = settings.tz
        self.engine: AsyncEngine = create_engine(settings.database_path)
        sessions = create_session_factory(self.engine)
        self.store = TimeSeriesStore(sessions, self.tz, settings.database_path)
        self.cache = MemoryCache(settings.memory_cache_size)
        self.registry = PollingStateRegistry(sessions)
        self.runtime_config = RuntimeConfig(sessions)
        self.aggregator = HourlyAggregator(
            sessions, self.tz, allow_test_data=settings.allow_test_data
        )
        self.accumulator_address = normalize_address(settings.accumulator_address)
        self.mode: str = settings.default_mode
        self.realtime = PollingScheduler(
            "realtime",
            self.registry,
            self._realtime_sink,
            lambda cfg: FixedInterval(cfg.interval_ms / 1000),
        )
        self.hourly = PollingScheduler(
            "hourly",
            self.registry,
            self._hourly_sink,
            lambda cfg: HourAligned(self.tz),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the schema, release orphaned state and load the mode flag."""
        await init_schema(self.engine)
        await self.registry.release_orphaned()
        self.mode = await self.runtime_config.get_mode(self.settings.default_mode)
        logger.info("Monitor ready (mode=%s, db=%s)", self.mode, self.settings.database_path)

    async def close(self) -> None:
        """Stop any running service and dispose of the engine.

        Services this process is not running are left alone so a worker
        shutting down does not clear another process's polling state.
        """
        try:
            for scheduler in (self.realtime, self.hourly):
                if scheduler.is_running:
                    await scheduler.stop()
        finally:
            await self.engine.dispose()

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    async def _realtime_sink(self, samples: list[Sample]) -> None:
        self.cache.append(samples)
        await self.store.append(samples)
        for sample in samples:
            if sample.address == self.accumulator_address:
                await self.aggregator.observe(sample.value, sample.timestamp)

    async def _hourly_sink(self, samples: list[Sample]) -> None:
        for sample in samples:
            await self.aggregator.observe(sample.value, sample.timestamp)

    # ------------------------------------------------------------------
    # Polling control
    # ------------------------------------------------------------------

    async def start_realtime(
        self,
        *,
        host: str,
        port: int,
        channels: list[str | Channel],
        interval_ms: int | None = None,
        protocol_kind: str | None = None,
        mode: str | None = None,
    ) -> PollConfig:
        """Start (or restart) realtime polling.

        Raises:
            ValidationError: Missing or malformed parameters.
            ServiceBusyError: Another live process owns the service.
            PlcConnectionError: The controller cannot be reached.
        """
        config = self._build_config(
            host=host,
            port=port,
            channels=channels,
            interval_ms=(
                interval_ms if interval_ms is not None else self.settings.default_interval_ms
            ),
            protocol_kind=protocol_kind,
            mode=mode or self.mode,
        )
        adapter = self._adapter_factory(config.endpoint, self.settings)
        await self.realtime.start(config, adapter)
        if config.mode != self.mode:
            await self.runtime_config.set_mode(config.mode)
        self.mode = config.mode
        return config

    async def start_hourly(
        self, *, host: str, port: int, protocol_kind: str | None = None
    ) -> PollConfig:
        """Start (or restart) hourly accumulator polling."""
        config = self._build_config(
            host=host,
            port=port,
            channels=[self.accumulator_address],
            interval_ms=3_600_000,
            protocol_kind=protocol_kind,
            mode=self.mode,
        )
        adapter = self._adapter_factory(config.endpoint, self.settings)
        await self.hourly.start(config, adapter)
        return config

    async def stop(self, service: str | None = None) -> list[str]:
        """Stop one service, or both when *service* is None.

        Returns:
            Names of the services stopped.

        Raises:
            ServiceBusyError: If a named service is polling in another live
                process; its state is left as it was.
        """
        names = [service] if service else list(SERVICES)
        for name in names:
            await self._scheduler(name).stop()
        return names

    async def status(self) -> dict[str, PollState]:
        """Registry view of every service."""
        return await self.registry.get_all()

    # ------------------------------------------------------------------
    # Sample reads
    # ------------------------------------------------------------------

    async def recent_samples(
        self,
        address: str,
        *,
        limit: int | None = None,
        hours: float | None = None,
    ) -> list[Sample]:
        """Recent samples of one address, oldest first.

        ``hours`` takes precedence over ``limit`` and is always answered from
        the store. A ``limit`` read in memory mode is answered from the cache
        when it holds the address.
        """
        address = normalize_address(address)
        if hours is not None:
            if hours <= 0:
                raise ValidationError("hours must be > 0")
            return await self.store.by_time_window(address, hours)
        if limit is not None and not 1 <= limit <= MAX_RECENT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_RECENT_LIMIT}")
        n = limit if limit is not None else self.settings.memory_cache_size
        if self.mode == "memory" and address in self.cache:
            return self.cache.snapshot(address)[-n:]
        return await self.store.recent_n(address, n)

    async def recent_with_set_point(
        self,
        address: str,
        set_address: str | None = None,
        *,
        limit: int | None = None,
        hours: float | None = None,
    ) -> list[dict[str, Any]]:
        """Recent samples with the set-point value of the same cycle merged in."""
        samples = await self.recent_samples(address, limit=limit, hours=hours)
        set_values: dict[int, float | None] = {}
        if set_address:
            for sample in await self.recent_samples(set_address, limit=limit, hours=hours):
                set_values[sample.timestamp] = sample.value
        return [
            {
                "timestamp": s.timestamp,
                "value": s.value,
                "set_value": set_values.get(s.timestamp),
            }
            for s in samples
        ]

    async def query_range(
        self,
        from_date: str,
        to_date: str,
        address: str | None = None,
        kind: DataKind = "realtime",
    ) -> list[Any]:
        """Samples, hourly buckets or daily totals between two dates."""
        if kind == "realtime":
            addr = normalize_address(address) if address else None
            return await self.store.by_date_range(from_date, to_date, addr)
        if kind == "hourly":
            days: list[DayEnergy] = await self.aggregator.get_range_data(from_date, to_date)
            return [record for day in days for _, record in sorted(day.hours.items())]
        if kind == "daily":
            return await self.aggregator.get_daily_totals(from_date, to_date)
        raise ValidationError(f"Unknown data type: {kind!r}")

    async def delete_range(
        self,
        from_date: str,
        to_date: str,
        address: str | None = None,
        kind: DataKind = "realtime",
    ) -> int:
        """Delete samples, or energy roll-ups, between two dates."""
        if kind == "realtime":
            addr = normalize_address(address) if address else None
            return await self.store.delete_by_date_range(from_date, to_date, addr)
        if kind in ("hourly", "daily"):
            return await self.aggregator.delete_range(from_date, to_date)
        raise ValidationError(f"Unknown data type: {kind!r}")

    async def addresses(self) -> list[str]:
        return await self.store.list_addresses()

    async def stats(self) -> StoreStats:
        return await self.store.stats()

    async def cleanup(self, days_to_keep: int) -> int:
        return await self.store.cleanup_older_than(days_to_keep)

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    async def energy_day(self, day: str | None = None) -> DayEnergy:
        if day:
            return await self.aggregator.get_day_data(day)
        return await self.aggregator.get_current_data()

    async def energy_summary(self) -> EnergySummary:
        return await self.aggregator.get_summary()

    async def seed_energy(self, days: int) -> list[str]:
        return await self.aggregator.seed_days(days)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scheduler(self, name: str) -> PollingScheduler:
        if name == "realtime":
            return self.realtime
        if name == "hourly":
            return self.hourly
        raise ValidationError(f"Unknown service: {name!r}")

    def _build_config(
        self,
        *,
        host: str,
        port: int,
        channels: list[str | Channel],
        interval_ms: int,
        protocol_kind: str | None,
        mode: str,
    ) -> PollConfig:
        kind = (protocol_kind or self.settings.default_protocol).lower()
        if kind not in ("modbus", "mc", "demo"):
            raise ValidationError(f"Unknown protocol kind: {kind!r}")
        if not host:
            raise ValidationError("host is required")
        if mode not in ("memory", "durable"):
            raise ValidationError(f"Unknown mode: {mode!r}")
        if not 0 < port <= 65535:
            raise ValidationError(f"port {port} is out of range")
        return PollConfig(
            channels=channels,
            endpoint=Endpoint(host=host, port=port, protocol_kind=kind),
            interval_ms=interval_ms,
            mode=mode,
        )
