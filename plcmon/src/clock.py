"""
Epoch-millisecond clock and local calendar helpers.

All persisted timestamps are epoch milliseconds. Calendar concepts (dates,
hour buckets, day ranges) are evaluated in one configured IANA time zone so
that "today" and "hour 13" mean the same thing to every process.

CHANGELOG:
- 2026-10-07: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from plcmon.src.errors import ValidationError

DATE_FORMAT = "%Y-%m-%d"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def parse_date(text: str) -> date:
    """Parse a ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: If *text* is not a valid calendar date.
    """
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid date {text!r}, expected YYYY-MM-DD") from exc


def day_start_ms(day: date, tz: ZoneInfo) -> int:
    """Epoch ms of local midnight at the start of *day*."""
    return int(datetime(day.year, day.month, day.day, tzinfo=tz).timestamp() * 1000)


def date_range_ms(from_date: str, to_date: str, tz: ZoneInfo) -> tuple[int, int]:
    """Inclusive epoch-ms bounds covering whole local days.

    ``from_date`` starts at 00:00:00.000 and ``to_date`` ends at
    23:59:59.999 local time.

    Raises:
        ValidationError: If either date is malformed or from is after to.
    """
    start = parse_date(from_date)
    end = parse_date(to_date)
    if start > end:
        raise ValidationError(f"from {from_date} is after to {to_date}")
    return day_start_ms(start, tz), day_start_ms(end + timedelta(days=1), tz) - 1


def local_bucket(ts_ms: int, tz: ZoneInfo) -> tuple[str, int]:
    """Return the local ``(YYYY-MM-DD, hour)`` containing *ts_ms*."""
    local = datetime.fromtimestamp(ts_ms / 1000, tz=tz)
    return local.strftime(DATE_FORMAT), local.hour


def local_date(ts_ms: int, tz: ZoneInfo) -> date:
    return datetime.fromtimestamp(ts_ms / 1000, tz=tz).date()


def previous_bucket(day: str, hour: int) -> tuple[str, int]:
    """The hour bucket immediately before ``(day, hour)``."""
    if hour > 0:
        return day, hour - 1
    prev = parse_date(day) - timedelta(days=1)
    return prev.strftime(DATE_FORMAT), 23


def next_hour_ms(ts_ms: int, tz: ZoneInfo) -> int:
    """Epoch ms of the next local top of the hour strictly after *ts_ms*."""
    local = datetime.fromtimestamp(ts_ms / 1000, tz=tz)
    top = local.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return int(top.timestamp() * 1000)
