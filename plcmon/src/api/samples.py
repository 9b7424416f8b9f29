"""
Sample endpoints: recent reads, date-range query and delete, plus store
maintenance (distinct addresses, stats, retention cleanup).

Date parameters are ``YYYY-MM-DD`` local dates; a range covers ``from``
00:00:00.000 through ``to`` 23:59:59.999. ``type`` selects raw samples
(``realtime``), hourly energy buckets (``hourly``) or daily totals
(``daily``).

CHANGELOG:
- 2026-10-19: Leave limit/hours bounds to the monitor so they map to 400
- 2026-10-14: Initial creation (STORY-016)

TODO:
- None
"""

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic.alias_generators import to_camel

from plcmon.src.api.deps import Monitor, http_error
from plcmon.src.api.schemas import (
    CleanupResponse,
    DeleteResponse,
    RangeResponse,
    RecentPoint,
    RecentResponse,
)
from plcmon.src.errors import MonitorError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["samples"])

DataType = Literal["realtime", "hourly", "daily"]


def _require_dates(from_date: str | None, to_date: str | None) -> None:
    if not from_date or not to_date:
        raise HTTPException(status_code=400, detail="from and to are required (YYYY-MM-DD)")


@router.get("/samples/recent", response_model=RecentResponse)
async def recent_samples(
    monitor: Monitor,
    address: Annotated[str | None, Query(description="Address to read, e.g. D400.")] = None,
    limit: Annotated[int | None, Query(description="Newest N samples, 1 to 10000.")] = None,
    hours: Annotated[float | None, Query(description="Window in hours, > 0.")] = None,
    set_address: Annotated[str | None, Query(alias="setAddress")] = None,
) -> RecentResponse:
    """Return recent samples of one address, oldest first.

    ``hours`` takes precedence over ``limit``. When ``setAddress`` is given,
    each point carries that address's value from the same poll cycle.
    """
    if not address:
        raise HTTPException(status_code=400, detail="address is required")
    try:
        points = await monitor.recent_with_set_point(
            address, set_address, limit=limit, hours=hours
        )
    except MonitorError as exc:
        raise http_error(exc) from exc

    data = [
        RecentPoint(timestamp=p["timestamp"], value=p["value"], set_address=p["set_value"])
        for p in points
    ]
    return RecentResponse(
        address=address.strip().upper(),
        set_address=set_address.strip().upper() if set_address else None,
        data=data,
        count=len(data),
    )


@router.get("/samples/range", response_model=RangeResponse)
async def query_range(
    monitor: Monitor,
    from_date: Annotated[str | None, Query(alias="from")] = None,
    to_date: Annotated[str | None, Query(alias="to")] = None,
    address: str | None = None,
    type: DataType = "realtime",  # noqa: A002
) -> RangeResponse:
    """Return stored data between two dates inclusive."""
    _require_dates(from_date, to_date)
    try:
        rows = await monitor.query_range(from_date, to_date, address, type)
    except MonitorError as exc:
        raise http_error(exc) from exc

    data = [{to_camel(k): v for k, v in row.model_dump().items()} for row in rows]
    logger.debug("Range query %s..%s type=%s rows=%d", from_date, to_date, type, len(data))
    return RangeResponse(
        from_=from_date,
        to=to_date,
        address=address,
        type=type,
        data=data,
        count=len(data),
    )


@router.delete("/samples/range", response_model=DeleteResponse)
async def delete_range(
    monitor: Monitor,
    from_date: Annotated[str | None, Query(alias="from")] = None,
    to_date: Annotated[str | None, Query(alias="to")] = None,
    address: str | None = None,
    type: DataType = "realtime",  # noqa: A002
) -> DeleteResponse:
    """Irreversibly delete stored data between two dates inclusive."""
    _require_dates(from_date, to_date)
    try:
        deleted = await monitor.delete_range(from_date, to_date, address, type)
    except MonitorError as exc:
        raise http_error(exc) from exc
    return DeleteResponse(success=True, deleted_count=deleted)


@router.get("/samples/addresses")
async def list_addresses(monitor: Monitor) -> dict:
    """Distinct addresses with stored samples."""
    try:
        addresses = await monitor.addresses()
    except MonitorError as exc:
        raise http_error(exc) from exc
    return {"addresses": addresses, "count": len(addresses)}


@router.get("/db/stats")
async def db_stats(monitor: Monitor) -> dict:
    """Row count, address count, time span and file size of the store."""
    try:
        stats = await monitor.stats()
    except MonitorError as exc:
        raise http_error(exc) from exc
    return {
        "rowCount": stats.row_count,
        "addressCount": stats.address_count,
        "oldestTimestamp": stats.oldest_timestamp,
        "newestTimestamp": stats.newest_timestamp,
        "fileSizeBytes": stats.file_size_bytes,
    }


@router.post("/db/cleanup", response_model=CleanupResponse)
async def cleanup(
    monitor: Monitor,
    days_to_keep: Annotated[int, Query(alias="daysToKeep")] = 30,
) -> CleanupResponse:
    """Delete samples older than ``daysToKeep`` days (1..365)."""
    try:
        deleted = await monitor.cleanup(days_to_keep)
    except MonitorError as exc:
        raise http_error(exc) from exc
    return CleanupResponse(success=True, deleted_count=deleted, days_to_keep=days_to_keep)
