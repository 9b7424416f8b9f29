"""
Hourly and daily energy roll-ups from a monotonically increasing accumulator.

Each local (date, hour) bucket records the first accumulator reading seen in
the hour (``start_value``) and the latest one (``end_value``). When the first
reading of a new hour arrives it also closes the previous hour: the previous
bucket's ``end_value`` becomes that boundary reading, so consecutive hours
share their edge and no energy falls between buckets.

``delta = max(0, end_value - start_value)``. A counter reset or wrap makes
``end < start``; the hour then reports zero rather than a negative value.

The daily total is the sum of that date's hourly deltas and is recomputed
from the hourly rows after every change, so repeating an observation never
double-counts.

CHANGELOG:
- 2026-10-13: Add summary, range queries and synthetic data seeding
- 2026-10-11: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plcmon.src.clock import (
    DATE_FORMAT,
    local_bucket,
    local_date,
    now_ms,
    parse_date,
    previous_bucket,
)
from plcmon.src.db.models import DailyEnergyRow, HourlyEnergyRow
from plcmon.src.errors import StorageError, TestDataDisabledError, ValidationError
from plcmon.src.models import DailyRecord, DayEnergy, EnergySummary, HourlyRecord

logger = logging.getLogger(__name__)

SUMMARY_DAYS = 30
WEEK_DAYS = 7
TEST_DELTA_MIN = 500
TEST_DELTA_MAX = 1500


def _to_record(row: HourlyEnergyRow) -> HourlyRecord:
    return HourlyRecord(
        date=row.date,
        hour=row.hour,
        start_value=row.start_value,
        end_value=row.end_value,
        delta=row.delta,
        last_update=row.last_update,
    )


def _delta(start: float, end: float) -> float:
    return max(0.0, end - start)


class HourlyAggregator:
    """Maintains ``hourly_energy`` and ``daily_energy`` rows.

    Args:
        session_factory: Factory bound to the monitor's engine.
        tz: Time zone defining local dates and hours.
        allow_test_data: Permit :meth:`insert_test_data`.
        rng: Random source for synthetic data.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tz: ZoneInfo,
        *,
        allow_test_data: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self._sessions = session_factory
        self._tz = tz
        self._allow_test_data = allow_test_data
        self._rng = rng or random.Random()
        # observe() is read-modify-write; one writer per process at a time
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    async def observe(self, value: float | None, ts_ms: int) -> HourlyRecord | None:
        """Record one accumulator reading.

        Args:
            value: Accumulator value; ``None`` (failed read) is ignored.
            ts_ms: Reading time in epoch milliseconds.

        Returns:
            The updated bucket, or ``None`` when the reading was ignored.

        Raises:
            StorageError: If the database write fails.
        """
        if value is None:
            return None
        day, hour = local_bucket(ts_ms, self._tz)
        try:
            async with self._lock, self._sessions() as session, session.begin():
                touched = {day}
                row = await session.get(HourlyEnergyRow, (day, hour))
                if row is None:
                    row = HourlyEnergyRow(
                        date=day,
                        hour=hour,
                        start_value=value,
                        end_value=value,
                        delta=0.0,
                        last_update=ts_ms,
                    )
                    session.add(row)
                    prev_day, prev_hour = previous_bucket(day, hour)
                    prev = await session.get(HourlyEnergyRow, (prev_day, prev_hour))
                    if prev is not None:
                        prev.end_value = value
                        prev.delta = _delta(prev.start_value, value)
                        prev.last_update = ts_ms
                        touched.add(prev_day)
                else:
                    row.end_value = value
                    row.delta = _delta(row.start_value, value)
                    row.last_update = ts_ms
                await session.flush()
                for touched_day in touched:
                    await self._recompute_daily(session, touched_day, ts_ms)
                record = _to_record(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record accumulator reading: {exc}") from exc

        logger.debug(
            "Accumulator %s at %s h%02d: delta=%.1f", value, day, hour, record.delta
        )
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current_data(self, now: int | None = None) -> DayEnergy:
        """Buckets and total of the current local date."""
        today = local_date(now if now is not None else now_ms(), self._tz)
        return await self.get_day_data(today.strftime(DATE_FORMAT))

    async def get_day_data(self, day: str) -> DayEnergy:
        """Buckets and total of *day* (empty when nothing was recorded).

        Raises:
            ValidationError: If *day* is not ``YYYY-MM-DD``.
        """
        parse_date(day)
        days = await self._load_days(day, day)
        return days.get(day, DayEnergy(date=day))

    async def get_range_data(self, from_date: str, to_date: str) -> list[DayEnergy]:
        """Every date with data between *from_date* and *to_date* inclusive."""
        if parse_date(from_date) > parse_date(to_date):
            raise ValidationError(f"from {from_date} is after to {to_date}")
        days = await self._load_days(from_date, to_date)
        return [days[d] for d in sorted(days)]

    async def get_daily_totals(self, from_date: str, to_date: str) -> list[DailyRecord]:
        """Stored daily totals between two dates inclusive, oldest first."""
        if parse_date(from_date) > parse_date(to_date):
            raise ValidationError(f"from {from_date} is after to {to_date}")
        stmt = (
            select(DailyEnergyRow)
            .where(DailyEnergyRow.date >= from_date, DailyEnergyRow.date <= to_date)
            .order_by(DailyEnergyRow.date)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read daily totals: {exc}") from exc
        return [DailyRecord(date=r.date, total=r.total, last_update=r.last_update) for r in rows]

    async def get_summary(self, now: int | None = None) -> EnergySummary:
        """Today, last-7-days and last-30-days totals plus 30 daily totals.

        Days without data appear with a zero total so the series always has
        exactly 30 entries, oldest first, ending today.
        """
        today = local_date(now if now is not None else now_ms(), self._tz)
        first = today - timedelta(days=SUMMARY_DAYS - 1)
        stored = {
            r.date: r
            for r in await self.get_daily_totals(
                first.strftime(DATE_FORMAT), today.strftime(DATE_FORMAT)
            )
        }

        daily: list[DailyRecord] = []
        for offset in range(SUMMARY_DAYS):
            day = (first + timedelta(days=offset)).strftime(DATE_FORMAT)
            daily.append(stored.get(day, DailyRecord(date=day)))

        totals = [d.total for d in daily]
        return EnergySummary(
            today=totals[-1],
            last_7_days=sum(totals[-WEEK_DAYS:]),
            last_30_days=sum(totals),
            daily_totals=daily,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_range(self, from_date: str, to_date: str) -> int:
        """Delete hourly and daily rows between two dates inclusive.

        Returns:
            Number of hourly buckets removed.
        """
        if parse_date(from_date) > parse_date(to_date):
            raise ValidationError(f"from {from_date} is after to {to_date}")
        try:
            async with self._lock, self._sessions() as session, session.begin():
                result = await session.execute(
                    delete(HourlyEnergyRow).where(
                        HourlyEnergyRow.date >= from_date, HourlyEnergyRow.date <= to_date
                    )
                )
                await session.execute(
                    delete(DailyEnergyRow).where(
                        DailyEnergyRow.date >= from_date, DailyEnergyRow.date <= to_date
                    )
                )
                deleted = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete energy data: {exc}") from exc
        logger.info("Deleted %d hourly buckets from %s to %s", deleted, from_date, to_date)
        return deleted

    async def insert_test_data(self, day: str) -> DayEnergy:
        """Replace *day* with 24 synthetic buckets of 500..1500 each.

        Raises:
            TestDataDisabledError: Unless test data was enabled at construction.
            ValidationError: If *day* is not ``YYYY-MM-DD``.
        """
        if not self._allow_test_data:
            raise TestDataDisabledError("Synthetic energy data is disabled (ALLOW_TEST_DATA)")
        parse_date(day)
        ts = now_ms()
        try:
            async with self._lock, self._sessions() as session, session.begin():
                await session.execute(delete(HourlyEnergyRow).where(HourlyEnergyRow.date == day))
                reading = 0.0
                for hour in range(24):
                    delta = float(round(self._rng.uniform(TEST_DELTA_MIN, TEST_DELTA_MAX)))
                    session.add(
                        HourlyEnergyRow(
                            date=day,
                            hour=hour,
                            start_value=reading,
                            end_value=reading + delta,
                            delta=delta,
                            last_update=ts,
                        )
                    )
                    reading += delta
                await session.flush()
                await self._recompute_daily(session, day, ts)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert test data: {exc}") from exc
        logger.info("Inserted synthetic energy data for %s", day)
        return await self.get_day_data(day)

    async def seed_days(self, days: int, now: int | None = None) -> list[str]:
        """Insert synthetic data for the last *days* dates, ending today."""
        if days < 1 or days > 365:
            raise ValidationError("days must be between 1 and 365")
        today = local_date(now if now is not None else now_ms(), self._tz)
        seeded: list[str] = []
        for days_ago in range(days - 1, -1, -1):
            day = (today - timedelta(days=days_ago)).strftime(DATE_FORMAT)
            await self.insert_test_data(day)
            seeded.append(day)
        return seeded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _recompute_daily(self, session: AsyncSession, day: str, ts_ms: int) -> None:
        total = (
            await session.execute(
                select(func.coalesce(func.sum(HourlyEnergyRow.delta), 0.0)).where(
                    HourlyEnergyRow.date == day
                )
            )
        ).scalar_one()
        stmt = insert(DailyEnergyRow).values(date=day, total=total, last_update=ts_ms)
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"], set_={"total": total, "last_update": ts_ms}
        )
        await session.execute(stmt)

    async def _load_days(self, from_date: str, to_date: str) -> dict[str, DayEnergy]:
        stmt = (
            select(HourlyEnergyRow)
            .where(HourlyEnergyRow.date >= from_date, HourlyEnergyRow.date <= to_date)
            .order_by(HourlyEnergyRow.date, HourlyEnergyRow.hour)
        )
        totals = select(DailyEnergyRow).where(
            DailyEnergyRow.date >= from_date, DailyEnergyRow.date <= to_date
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
                daily_rows = (await session.execute(totals)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read energy data: {exc}") from exc

        days: dict[str, DayEnergy] = {}
        for row in rows:
            entry = days.setdefault(row.date, DayEnergy(date=row.date))
            entry.hours[row.hour] = _to_record(row)
        for daily in daily_rows:
            entry = days.setdefault(daily.date, DayEnergy(date=daily.date))
            entry.total = daily.total
            entry.last_update = daily.last_update
        return days
