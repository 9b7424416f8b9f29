"""
Polling control endpoints: start, stop and status.

Status is read from the durable registry, so any worker process reports the
state of the process that actually runs the loop.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-015)

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError as PydanticValidationError

from plcmon.src.api.deps import Monitor, http_error
from plcmon.src.api.schemas import (
    ChannelIn,
    ServiceStatus,
    StartRequest,
    StartResponse,
    StatusResponse,
    StopResponse,
)
from plcmon.src.errors import MonitorError
from plcmon.src.models import Channel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/polling", tags=["polling"])

DEMO_HOST = "demo"
DEMO_PORT = 502


@router.post("/start", response_model=StartResponse)
async def start_polling(body: StartRequest, monitor: Monitor) -> StartResponse:
    """Start or restart realtime polling.

    Raises:
        HTTPException: 400 on missing/malformed input, 409 if another process
            owns the service, 500 if the controller cannot be reached.
    """
    kind = (body.protocol_kind or monitor.settings.default_protocol).lower()
    ip, port = body.ip, body.port
    if kind == "demo":
        ip = ip or DEMO_HOST
        port = port or DEMO_PORT
    if not ip or port is None or not body.addresses:
        raise HTTPException(status_code=400, detail="ip, port and addresses are required")

    try:
        channels = [
            Channel(address=item.address, set_address=item.set_address)
            if isinstance(item, ChannelIn)
            else item
            for item in body.addresses
        ]
        config = await monitor.start_realtime(
            host=ip,
            port=port,
            channels=channels,
            interval_ms=body.interval_ms,
            protocol_kind=kind,
            mode=body.mode,
        )
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MonitorError as exc:
        raise http_error(exc) from exc

    return StartResponse(
        success=True,
        address_count=len(config.addresses),
        addresses=config.addresses,
        interval_ms=config.interval_ms,
        mode=config.mode,
    )


@router.post("/stop", response_model=StopResponse)
async def stop_polling(
    monitor: Monitor,
    service: Annotated[
        str | None, Query(description="realtime or hourly; both when omitted.")
    ] = None,
) -> StopResponse:
    """Stop one polling service, or both."""
    try:
        stopped = await monitor.stop(service)
    except MonitorError as exc:
        raise http_error(exc) from exc
    return StopResponse(success=True, services=stopped)


@router.get("/status", response_model=StatusResponse)
async def polling_status(monitor: Monitor) -> StatusResponse:
    """Report every service's durable polling state."""
    try:
        states = await monitor.status()
    except MonitorError as exc:
        raise http_error(exc) from exc

    services = {
        name: ServiceStatus(
            is_polling=state.is_polling,
            started_at=state.started_at,
            last_error=state.last_error,
            consecutive_failures=state.consecutive_failures,
            last_cycle_at=state.last_cycle_at,
            owner=state.owner,
            config=state.config,
        )
        for name, state in states.items()
    }
    running = any(s.is_polling for s in services.values())
    return StatusResponse(status="running" if running else "stopped", services=services)
