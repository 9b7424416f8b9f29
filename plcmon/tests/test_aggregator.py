"""
Tests for hourly/daily energy aggregation.

Tests verify:
- First reading of an hour sets start and end; later readings move end.
- The first reading of a new hour closes the previous hour at that value.
- Counter rollover is clamped to a zero delta.
- Daily totals equal the sum of hourly deltas and stay stable on repeats.
- Summary covers exactly 30 days ending today.
- Synthetic data requires opt-in.

CHANGELOG:
- 2026-10-13: Add summary and synthetic data tests
- 2026-10-11: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import random
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from plcmon.src.errors import TestDataDisabledError, ValidationError
from plcmon.src.services.aggregator import HourlyAggregator


def _ms(iso: str) -> int:
    return int(datetime.fromisoformat(iso).replace(tzinfo=UTC).timestamp() * 1000)


@pytest.fixture()
def aggregator(sessions) -> HourlyAggregator:
    return HourlyAggregator(sessions, ZoneInfo("UTC"))


class TestObserve:
    """Bucket start/end bookkeeping."""

    @pytest.mark.asyncio
    async def test_first_reading_opens_bucket(self, aggregator: HourlyAggregator) -> None:
        record = await aggregator.observe(1000.0, _ms("2026-10-15T13:05:00"))

        assert record is not None
        assert (record.date, record.hour) == ("2026-10-15", 13)
        assert record.start_value == record.end_value == 1000.0
        assert record.delta == 0.0

    @pytest.mark.asyncio
    async def test_later_readings_move_end(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(1000.0, _ms("2026-10-15T13:05:00"))
        await aggregator.observe(1010.0, _ms("2026-10-15T13:30:00"))
        record = await aggregator.observe(1025.0, _ms("2026-10-15T13:59:00"))

        assert record.start_value == 1000.0
        assert record.end_value == 1025.0
        assert record.delta == 25.0

    @pytest.mark.asyncio
    async def test_new_hour_closes_previous(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(1000.0, _ms("2026-10-15T13:05:00"))
        await aggregator.observe(1040.0, _ms("2026-10-15T13:55:00"))
        await aggregator.observe(1050.0, _ms("2026-10-15T14:00:02"))

        day = await aggregator.get_day_data("2026-10-15")

        assert day.hours[13].end_value == 1050.0
        assert day.hours[13].delta == 50.0
        assert day.hours[14].start_value == 1050.0
        assert day.total == 50.0

    @pytest.mark.asyncio
    async def test_midnight_closes_previous_day(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(100.0, _ms("2026-10-14T23:10:00"))
        await aggregator.observe(130.0, _ms("2026-10-15T00:00:05"))

        yesterday = await aggregator.get_day_data("2026-10-14")

        assert yesterday.hours[23].delta == 30.0
        assert yesterday.total == 30.0

    @pytest.mark.asyncio
    async def test_rollover_clamped_to_zero(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(65000.0, _ms("2026-10-15T13:00:00"))
        record = await aggregator.observe(20.0, _ms("2026-10-15T13:30:00"))

        assert record.delta == 0.0
        assert (await aggregator.get_day_data("2026-10-15")).total == 0.0

    @pytest.mark.asyncio
    async def test_failed_read_ignored(self, aggregator: HourlyAggregator) -> None:
        assert await aggregator.observe(None, _ms("2026-10-15T13:00:00")) is None
        assert (await aggregator.get_day_data("2026-10-15")).hours == {}

    @pytest.mark.asyncio
    async def test_daily_total_is_sum_and_idempotent(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(0.0, _ms("2026-10-15T08:00:00"))
        await aggregator.observe(10.0, _ms("2026-10-15T08:30:00"))
        await aggregator.observe(25.0, _ms("2026-10-15T09:30:00"))
        await aggregator.observe(40.0, _ms("2026-10-15T09:45:00"))
        await aggregator.observe(40.0, _ms("2026-10-15T09:45:00"))

        day = await aggregator.get_day_data("2026-10-15")

        assert day.total == sum(h.delta for h in day.hours.values()) == 40.0


class TestQueries:
    @pytest.mark.asyncio
    async def test_empty_day(self, aggregator: HourlyAggregator) -> None:
        day = await aggregator.get_day_data("2026-10-15")
        assert day.hours == {}
        assert day.total == 0.0

    @pytest.mark.asyncio
    async def test_invalid_day_rejected(self, aggregator: HourlyAggregator) -> None:
        with pytest.raises(ValidationError):
            await aggregator.get_day_data("15/10/2026")

    @pytest.mark.asyncio
    async def test_current_data_uses_today(self, aggregator: HourlyAggregator) -> None:
        now = _ms("2026-10-15T10:20:00")
        await aggregator.observe(5.0, now)
        current = await aggregator.get_current_data(now=now)
        assert current.date == "2026-10-15"
        assert 10 in current.hours

    @pytest.mark.asyncio
    async def test_range_data(self, aggregator: HourlyAggregator) -> None:
        await aggregator.observe(1.0, _ms("2026-10-13T10:00:00"))
        await aggregator.observe(2.0, _ms("2026-10-15T10:00:00"))

        days = await aggregator.get_range_data("2026-10-13", "2026-10-15")

        assert [d.date for d in days] == ["2026-10-13", "2026-10-15"]

    @pytest.mark.asyncio
    async def test_local_time_zone_buckets(self, sessions) -> None:
        aggregator = HourlyAggregator(sessions, ZoneInfo("Asia/Seoul"))
        # 16:30 UTC is 01:30 the next day in Seoul
        record = await aggregator.observe(1.0, _ms("2026-10-15T16:30:00"))
        assert (record.date, record.hour) == ("2026-10-16", 1)


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary_has_thirty_days_ending_today(
        self, sessions, rng: random.Random
    ) -> None:
        aggregator = HourlyAggregator(
            sessions, ZoneInfo("UTC"), allow_test_data=True, rng=rng
        )
        now = _ms("2026-10-15T12:00:00")
        await aggregator.seed_days(10, now=now)

        summary = await aggregator.get_summary(now=now)

        assert len(summary.daily_totals) == 30
        assert summary.daily_totals[-1].date == "2026-10-15"
        assert summary.daily_totals[0].date == "2026-09-16"
        assert summary.today == summary.daily_totals[-1].total
        assert summary.last_7_days == pytest.approx(
            sum(d.total for d in summary.daily_totals[-7:])
        )
        assert summary.last_30_days == pytest.approx(
            sum(d.total for d in summary.daily_totals)
        )
        assert all(d.total == 0.0 for d in summary.daily_totals[:20])

    @pytest.mark.asyncio
    async def test_empty_summary(self, aggregator: HourlyAggregator) -> None:
        summary = await aggregator.get_summary(now=_ms("2026-10-15T12:00:00"))
        assert summary.today == summary.last_7_days == summary.last_30_days == 0.0
        assert len(summary.daily_totals) == 30


class TestSyntheticData:
    @pytest.mark.asyncio
    async def test_disabled_by_default(self, aggregator: HourlyAggregator) -> None:
        with pytest.raises(TestDataDisabledError):
            await aggregator.insert_test_data("2026-10-15")

    @pytest.mark.asyncio
    async def test_inserts_24_consistent_buckets(self, sessions, rng: random.Random) -> None:
        aggregator = HourlyAggregator(
            sessions, ZoneInfo("UTC"), allow_test_data=True, rng=rng
        )

        day = await aggregator.insert_test_data("2026-10-15")

        assert sorted(day.hours) == list(range(24))
        for hour in range(24):
            bucket = day.hours[hour]
            assert 500 <= bucket.delta <= 1500
            assert bucket.end_value - bucket.start_value == bucket.delta
            if hour:
                assert bucket.start_value == day.hours[hour - 1].end_value
        assert day.total == sum(h.delta for h in day.hours.values())

    @pytest.mark.asyncio
    async def test_seed_days_bounds(self, sessions) -> None:
        aggregator = HourlyAggregator(sessions, ZoneInfo("UTC"), allow_test_data=True)
        with pytest.raises(ValidationError):
            await aggregator.seed_days(0)


class TestDeleteRange:
    @pytest.mark.asyncio
    async def test_deletes_hourly_and_daily(self, sessions, rng: random.Random) -> None:
        aggregator = HourlyAggregator(
            sessions, ZoneInfo("UTC"), allow_test_data=True, rng=rng
        )
        await aggregator.insert_test_data("2026-10-14")
        await aggregator.insert_test_data("2026-10-15")

        deleted = await aggregator.delete_range("2026-10-14", "2026-10-14")

        assert deleted == 24
        assert (await aggregator.get_day_data("2026-10-14")).total == 0.0
        totals = await aggregator.get_daily_totals("2026-10-01", "2026-10-31")
        assert [t.date for t in totals] == ["2026-10-15"]
