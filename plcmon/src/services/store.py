"""
Durable time-series store for samples.

Samples are appended one batch per transaction and read back ordered by
``(ts, id)``, so samples with equal timestamps come back in insertion order.
Date-range operations work on whole local days in the configured time zone.

Any SQLAlchemy failure is re-raised as :class:`StorageError`; the caller
decides whether it is fatal (an HTTP request) or logged and skipped (a poll
cycle).

CHANGELOG:
- 2026-10-10: Add list_addresses, stats and cleanup_older_than
- 2026-10-07: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plcmon.src.clock import date_range_ms, now_ms
from plcmon.src.db.models import SampleRow
from plcmon.src.errors import StorageError, ValidationError
from plcmon.src.models import Sample, StoreStats

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000
MS_PER_DAY = 24 * MS_PER_HOUR


def _to_sample(row: SampleRow) -> Sample:
    return Sample(address=row.address, timestamp=row.ts, value=row.value)


class TimeSeriesStore:
    """Sample persistence over an async SQLAlchemy session factory.

    Args:
        session_factory: Factory bound to the monitor's engine.
        tz: Time zone used for date-range boundaries.
        database_path: File path, used only for size reporting.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tz: ZoneInfo,
        database_path: str | Path | None = None,
    ) -> None:
        self._sessions = session_factory
        self._tz = tz
        self._database_path = Path(database_path) if database_path else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append(self, samples: Sequence[Sample]) -> None:
        """Insert a batch of samples in one transaction.

        Raises:
            StorageError: If the insert fails; nothing from the batch is kept.
        """
        if not samples:
            return
        rows = [{"address": s.address, "ts": s.timestamp, "value": s.value} for s in samples]
        try:
            async with self._sessions() as session, session.begin():
                await session.execute(insert(SampleRow), rows)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to append {len(rows)} samples: {exc}") from exc

    async def delete_by_date_range(
        self, from_date: str, to_date: str, address: str | None = None
    ) -> int:
        """Delete samples within whole local days.

        Returns:
            Exact number of rows removed.

        Raises:
            ValidationError: If the dates are malformed or reversed.
            StorageError: If the delete fails.
        """
        start, end = date_range_ms(from_date, to_date, self._tz)
        stmt = delete(SampleRow).where(SampleRow.ts >= start, SampleRow.ts <= end)
        if address:
            stmt = stmt.where(SampleRow.address == address)
        try:
            async with self._sessions() as session, session.begin():
                result = await session.execute(stmt)
                deleted = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete samples: {exc}") from exc
        logger.info(
            "Deleted %d samples from %s to %s (address=%s)",
            deleted,
            from_date,
            to_date,
            address or "*",
        )
        return deleted

    async def cleanup_older_than(self, days: int, now: int | None = None) -> int:
        """Delete samples older than *days* days.

        Args:
            days: Days to keep, 1..365.
            now: Reference time in epoch ms (defaults to the clock).

        Returns:
            Number of rows removed.
        """
        if days < 1 or days > 365:
            raise ValidationError("daysToKeep must be between 1 and 365")
        cutoff = (now if now is not None else now_ms()) - days * MS_PER_DAY
        try:
            async with self._sessions() as session, session.begin():
                result = await session.execute(delete(SampleRow).where(SampleRow.ts < cutoff))
                deleted = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to clean up samples: {exc}") from exc
        logger.info("Cleanup removed %d samples older than %d days", deleted, days)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def recent_n(self, address: str, n: int) -> list[Sample]:
        """Return the last *n* samples of *address*, oldest first."""
        if n < 1:
            return []
        stmt = (
            select(SampleRow)
            .where(SampleRow.address == address)
            .order_by(SampleRow.ts.desc(), SampleRow.id.desc())
            .limit(n)
        )
        rows = await self._scalars(stmt)
        return [_to_sample(r) for r in reversed(rows)]

    async def by_time_window(
        self, address: str, hours: float, now: int | None = None
    ) -> list[Sample]:
        """Return samples of *address* from the last *hours* hours, oldest first."""
        since = (now if now is not None else now_ms()) - int(hours * MS_PER_HOUR)
        stmt = (
            select(SampleRow)
            .where(SampleRow.address == address, SampleRow.ts >= since)
            .order_by(SampleRow.ts, SampleRow.id)
        )
        return [_to_sample(r) for r in await self._scalars(stmt)]

    async def by_date_range(
        self, from_date: str, to_date: str, address: str | None = None
    ) -> list[Sample]:
        """Return samples within whole local days, oldest first.

        Raises:
            ValidationError: If the dates are malformed or reversed.
        """
        start, end = date_range_ms(from_date, to_date, self._tz)
        stmt = select(SampleRow).where(SampleRow.ts >= start, SampleRow.ts <= end)
        if address:
            stmt = stmt.where(SampleRow.address == address)
        stmt = stmt.order_by(SampleRow.ts, SampleRow.id)
        return [_to_sample(r) for r in await self._scalars(stmt)]

    async def list_addresses(self) -> list[str]:
        """Distinct addresses that have at least one stored sample."""
        stmt = select(SampleRow.address).distinct().order_by(SampleRow.address)
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list addresses: {exc}") from exc

    async def stats(self) -> StoreStats:
        """Row count, distinct addresses, time span and file size."""
        stmt = select(
            func.count(SampleRow.id),
            func.count(func.distinct(SampleRow.address)),
            func.min(SampleRow.ts),
            func.max(SampleRow.ts),
        )
        try:
            async with self._sessions() as session:
                row_count, address_count, oldest, newest = (await session.execute(stmt)).one()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read store stats: {exc}") from exc
        return StoreStats(
            row_count=row_count,
            address_count=address_count,
            oldest_timestamp=oldest,
            newest_timestamp=newest,
            file_size_bytes=self._file_size(),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _scalars(self, stmt) -> list[SampleRow]:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to query samples: {exc}") from exc

    def _file_size(self) -> int:
        if self._database_path is None:
            return 0
        total = 0
        # WAL mode keeps recent pages in the -wal sidecar
        for suffix in ("", "-wal"):
            path = f"{self._database_path}{suffix}"
            if os.path.exists(path):
                total += os.path.getsize(path)
        return total
