"""
Process entry point for the PLC monitor.

Configures structured JSON logging on the root logger, logs a configuration
summary and serves the FastAPI application with uvicorn. Polling services
are started through the API; shutdown (SIGTERM/SIGINT handled by uvicorn)
runs the application lifespan, which stops every loop and releases the
controller connections.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-018)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

import uvicorn

from plcmon.src.api.main import create_app
from plcmon.src.config import MonitorSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger, writing to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def log_config_summary(settings: MonitorSettings) -> None:
    """Log the effective configuration at startup."""
    logger.info(
        "PLC monitor starting with config: "
        "database_path=%s, default_protocol=%s, default_mode=%s, "
        "modbus_slave_id=%s, register_kind=%s, d_address_base=%s, "
        "modbus_offset=%s, word_signed=%s, connect_timeout_s=%s, "
        "request_timeout_s=%s, memory_cache_size=%s, default_interval_ms=%s, "
        "accumulator_address=%s, timezone=%s, allow_test_data=%s",
        settings.database_path,
        settings.default_protocol,
        settings.default_mode,
        settings.modbus_slave_id,
        settings.register_kind,
        settings.d_address_base,
        settings.modbus_offset,
        settings.word_signed,
        settings.connect_timeout_s,
        settings.request_timeout_s,
        settings.memory_cache_size,
        settings.default_interval_ms,
        settings.accumulator_address,
        settings.timezone,
        settings.allow_test_data,
    )


def main() -> None:
    """Load settings, configure logging and run the API server."""
    settings = MonitorSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
