"""
Hourly energy endpoints.

GET returns one date's hourly buckets (today by default), POST starts the
hourly accumulator polling service, ``/seed`` inserts synthetic data when
ALLOW_TEST_DATA is enabled, and ``/summary`` returns the dashboard totals.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-017)

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from plcmon.src.api.deps import Monitor, http_error
from plcmon.src.api.schemas import HourlyStartRequest, SeedRequest
from plcmon.src.errors import MonitorError
from plcmon.src.models import DayEnergy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/energy", tags=["energy"])


def _day_payload(day: DayEnergy) -> dict:
    return {
        "date": day.date,
        "hours": {
            str(hour): {
                "startValue": rec.start_value,
                "endValue": rec.end_value,
                "delta": rec.delta,
                "lastUpdate": rec.last_update,
            }
            for hour, rec in sorted(day.hours.items())
        },
        "total": day.total,
        "lastUpdate": day.last_update,
    }


@router.get("/hourly")
async def get_hourly(
    monitor: Monitor,
    date: Annotated[str | None, Query(description="YYYY-MM-DD, today when omitted.")] = None,
) -> dict:
    """Hourly buckets and daily total for one local date."""
    try:
        day = await monitor.energy_day(date)
    except MonitorError as exc:
        raise http_error(exc) from exc
    return _day_payload(day)


@router.post("/hourly")
async def start_hourly(body: HourlyStartRequest, monitor: Monitor) -> dict:
    """Start hourly accumulator polling against one controller."""
    kind = (body.protocol_kind or monitor.settings.default_protocol).lower()
    ip, port = body.ip, body.port
    if kind == "demo":
        ip = ip or "demo"
        port = port or 502
    if not ip or port is None:
        raise HTTPException(status_code=400, detail="ip and port are required")
    try:
        config = await monitor.start_hourly(host=ip, port=port, protocol_kind=kind)
    except MonitorError as exc:
        raise http_error(exc) from exc
    return {"success": True, "address": config.addresses[0], "protocolKind": kind}


@router.post("/hourly/seed")
async def seed_hourly(body: SeedRequest, monitor: Monitor) -> dict:
    """Insert synthetic hourly data for the last ``days`` dates.

    Raises:
        HTTPException: 403 unless ALLOW_TEST_DATA is enabled.
    """
    try:
        seeded = await monitor.seed_energy(body.days)
    except MonitorError as exc:
        raise http_error(exc) from exc
    logger.info("Seeded synthetic energy data for %d day(s)", len(seeded))
    return {"success": True, "days": len(seeded), "dates": seeded}


@router.get("/summary")
async def energy_summary(monitor: Monitor) -> dict:
    """Today, 7-day and 30-day totals plus 30 zero-filled daily totals."""
    try:
        summary = await monitor.energy_summary()
    except MonitorError as exc:
        raise http_error(exc) from exc
    return {
        "today": summary.today,
        "weekly": summary.last_7_days,
        "monthly": summary.last_30_days,
        "dailyTotals": [{"date": d.date, "total": d.total} for d in summary.daily_totals],
    }
