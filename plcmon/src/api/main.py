"""
FastAPI application factory for the PLC monitor API.

The lifespan builds one MonitorService from MonitorSettings, opens it (schema,
orphaned state release, mode flag) and stores it on ``app.state``. On
shutdown it stops both polling services and disposes of the engine, so the
controller connections are always released.

CHANGELOG:
- 2026-10-14: Register polling, samples and energy routers (STORY-015)
- 2026-10-14: Initial creation (STORY-015)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from plcmon.src.api.energy import router as energy_router
from plcmon.src.api.health import router as health_router
from plcmon.src.api.polling import router as polling_router
from plcmon.src.api.samples import router as samples_router
from plcmon.src.config import MonitorSettings
from plcmon.src.services.monitor import MonitorService

logger = logging.getLogger(__name__)


def create_app(
    settings: MonitorSettings | None = None,
    monitor: MonitorService | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        monitor: Pre-built service (tests); built from settings when omitted.

    Returns:
        FastAPI: Application with all routers registered.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build and open the MonitorService; close it on shutdown."""
        service = monitor or MonitorService(settings or MonitorSettings())
        await service.open()
        app.state.monitor = service
        logger.info("PLC monitor API ready")
        try:
            yield
        finally:
            logger.info("PLC monitor API shutting down")
            await service.close()

    app = FastAPI(
        title="PLC Monitor API",
        description="Controller polling, sample history and hourly energy roll-ups.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health_router)
    app.include_router(polling_router)
    app.include_router(samples_router)
    app.include_router(energy_router)

    @app.get("/")
    async def root() -> dict:
        """Root health check endpoint."""
        return {"status": "ok"}

    return app
