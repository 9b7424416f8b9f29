"""
FastAPI dependency injection providers and error translation.

The MonitorService is created by the application lifespan and stored on
``app.state``; routes receive it through the ``Monitor`` alias.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from plcmon.src.errors import (
    MonitorError,
    PlcConnectionError,
    ServiceBusyError,
    TestDataDisabledError,
    ValidationError,
)
from plcmon.src.services.monitor import MonitorService

logger = logging.getLogger(__name__)


def get_monitor(request: Request) -> MonitorService:
    """Return the process MonitorService from ``app.state``."""
    return request.app.state.monitor


# Usage in route handlers:
#   async def my_route(monitor: Monitor):
#       await monitor.status()
Monitor = Annotated[MonitorService, Depends(get_monitor)]


def http_error(exc: MonitorError) -> HTTPException:
    """Translate a monitor error into the matching HTTPException."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ServiceBusyError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TestDataDisabledError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, PlcConnectionError):
        return HTTPException(status_code=500, detail=f"PLC connection failed: {exc}")
    logger.error("Request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))
