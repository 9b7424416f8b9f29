"""
Tests for the process entry point: JSON logging and startup summary.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-018)

TODO:
- None
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from plcmon.src.config import MonitorSettings
from plcmon.src.main import JsonFormatter, configure_logging, log_config_summary, main

# ---------------------------------------------------------------------------
# Test: JSON log formatting
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Every log line is one JSON object."""

    def test_fields(self) -> None:
        record = logging.LogRecord(
            "plcmon.src.services.scheduler", logging.WARNING, __file__, 1,
            "skipped %d", (3,), None,
        )

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "plcmon.src.services.scheduler"
        assert entry["msg"] == "skipped 3"
        assert "ts" in entry
        assert "exception" not in entry

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        entry = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]

    def test_configure_logging_sets_root(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("debug")
            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


# ---------------------------------------------------------------------------
# Test: startup logs config summary
# ---------------------------------------------------------------------------


class TestStartupLogging:
    def test_summary_contains_effective_settings(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = MonitorSettings(database_path="/srv/plc/monitor.db", timezone="Asia/Seoul")

        with caplog.at_level(logging.INFO, logger="plcmon.src.main"):
            log_config_summary(settings)

        assert "/srv/plc/monitor.db" in caplog.text
        assert "Asia/Seoul" in caplog.text
        assert "D6100" in caplog.text


class TestMain:
    def test_main_serves_app(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_PORT", "9100")
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            with patch("plcmon.src.main.uvicorn.run") as run:
                main()
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        run.assert_called_once()
        assert run.call_args.kwargs["port"] == 9100
        assert run.call_args.kwargs["log_config"] is None
