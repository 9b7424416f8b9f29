"""
Error taxonomy for the PLC monitor.

Each class maps to one failure domain so callers can decide on retry and
HTTP status without inspecting messages:

- ValidationError: bad request input (400, never retried).
- ConfigurationError: malformed or unmappable address, raised at start time.
- PlcConnectionError: controller unreachable or transport dropped.
- ReadError: a single address failed inside a batch (carried in readings).
- StorageError: the SQLite store failed for one operation.
- ServiceBusyError: another live process owns the polling service.
- TestDataDisabledError: synthetic data requested without opt-in.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all PLC monitor errors."""


class ValidationError(MonitorError):
    """Request parameters are missing or malformed."""


class ConfigurationError(ValidationError):
    """An address or endpoint cannot be mapped to a protocol register."""


class PlcConnectionError(MonitorError, ConnectionError):
    """The controller could not be reached or the transport was lost.

    Args:
        message: Human-readable description.
        cause: The underlying transport exception, when there is one.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ReadError(MonitorError):
    """Reading one address failed; the rest of the batch is unaffected."""


class StorageError(MonitorError):
    """The durable store rejected or failed an operation."""


class ServiceBusyError(MonitorError):
    """A polling service is already owned by another live process."""


class TestDataDisabledError(MonitorError):
    """Synthetic data insertion was requested but is not enabled."""

    __test__ = False
