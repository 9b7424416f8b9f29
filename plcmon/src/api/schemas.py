"""
Request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class ChannelIn(CamelModel):
    address: str
    set_address: str | None = None


class StartRequest(CamelModel):
    """Body of POST /v1/polling/start.

    ``addresses`` accepts plain address strings or ``{address, setAddress}``
    objects. For ``protocolKind="demo"`` the ip and port may be omitted.
    """

    ip: str | None = None
    port: int | None = None
    interval_ms: int | None = None
    addresses: list[str | ChannelIn] | None = None
    protocol_kind: str | None = None
    mode: str | None = None


class StartResponse(CamelModel):
    success: bool
    address_count: int
    addresses: list[str]
    interval_ms: int
    mode: str


class StopResponse(CamelModel):
    success: bool
    services: list[str]


class ServiceStatus(CamelModel):
    is_polling: bool
    started_at: int | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    last_cycle_at: int | None = None
    owner: str | None = None
    config: dict[str, Any] | None = None


class StatusResponse(CamelModel):
    status: str
    services: dict[str, ServiceStatus]


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


class RecentPoint(CamelModel):
    """One sample of the requested address.

    Attributes:
        set_address: Value of the paired set-point address in the same
            poll cycle, when one was requested and read.
    """

    timestamp: int
    value: float | None = None
    set_address: float | None = None


class RecentResponse(CamelModel):
    address: str
    set_address: str | None = None
    data: list[RecentPoint]
    count: int


class RangeResponse(CamelModel):
    from_: str
    to: str
    address: str | None = None
    type: str
    data: list[dict[str, Any]]
    count: int

    model_config = ConfigDict(
        alias_generator=lambda name: "from" if name == "from_" else to_camel(name),
        populate_by_name=True,
    )


class DeleteResponse(CamelModel):
    success: bool
    deleted_count: int


class CleanupResponse(CamelModel):
    success: bool
    deleted_count: int
    days_to_keep: int


# ---------------------------------------------------------------------------
# Energy
# ---------------------------------------------------------------------------


class HourlyStartRequest(CamelModel):
    ip: str | None = None
    port: int | None = None
    protocol_kind: str | None = None


class SeedRequest(CamelModel):
    days: int = 30
