"""
Pydantic models for samples, polling configuration and energy roll-ups.

These are the protocol-agnostic shapes that flow between the scheduler, the
stores, the aggregator and the HTTP layer. Timestamps are integer epoch
milliseconds throughout; dates are ``YYYY-MM-DD`` strings in the configured
time zone.

CHANGELOG:
- 2026-10-10: Add StoreStats and EnergySummary for the db/energy routes
- 2026-10-03: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from plcmon.src.addresses import dedupe, normalize_address
from plcmon.src.errors import ValidationError

MIN_INTERVAL_MS = 500
"""Realtime polling intervals below this are raised to it."""

ProtocolKind = Literal["modbus", "mc", "demo"]
SampleMode = Literal["memory", "durable"]


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------


class Sample(BaseModel):
    """A single timestamped reading of one controller address.

    Attributes:
        address: Canonical address string, e.g. ``"D400"``.
        timestamp: Epoch milliseconds of the poll cycle that produced it.
        value: Decoded value, or ``None`` when the read failed that cycle.
    """

    address: str
    timestamp: int
    value: float | None = None


# ---------------------------------------------------------------------------
# Polling configuration
# ---------------------------------------------------------------------------


class Endpoint(BaseModel):
    """Network location and protocol of a controller."""

    host: str
    port: int = Field(ge=0, le=65535)
    protocol_kind: ProtocolKind = "modbus"


class Channel(BaseModel):
    """A measured address optionally paired with its set-point address."""

    address: str
    set_address: str | None = None

    @field_validator("address")
    @classmethod
    def _normalize_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("set_address")
    @classmethod
    def _normalize_set_address(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return normalize_address(v)


class PollConfig(BaseModel):
    """Everything a polling service needs to run.

    ``channels`` accepts plain address strings as well as channel objects.
    ``addresses`` is derived: the de-duplicated union of every channel's
    address and set-point in first-seen order.

    Raises:
        ConfigurationError: If any address is malformed.
        ValidationError: If no addresses remain.
    """

    channels: list[Channel]
    endpoint: Endpoint
    interval_ms: int = 2000
    mode: SampleMode = "durable"

    @field_validator("channels", mode="before")
    @classmethod
    def _coerce_channels(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        return [{"address": item} if isinstance(item, str) else item for item in v]

    @field_validator("interval_ms")
    @classmethod
    def _clamp_interval(cls, v: int) -> int:
        return max(v, MIN_INTERVAL_MS)

    @model_validator(mode="after")
    def _require_addresses(self) -> PollConfig:
        if not self.addresses:
            raise ValidationError("At least one address is required")
        return self

    @property
    def addresses(self) -> list[str]:
        """Ordered, de-duplicated addresses to poll."""
        flat: list[str] = []
        for channel in self.channels:
            flat.append(channel.address)
            if channel.set_address:
                flat.append(channel.set_address)
        return dedupe(flat)


class PollState(BaseModel):
    """Durable state of one polling service as seen by every process."""

    service_name: str
    is_polling: bool = False
    started_at: int | None = None
    updated_at: int | None = None
    config: dict[str, Any] | None = None
    owner: str | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    last_cycle_at: int | None = None


# ---------------------------------------------------------------------------
# Energy roll-ups
# ---------------------------------------------------------------------------


class HourlyRecord(BaseModel):
    """Accumulator readings at the edges of one local hour.

    Attributes:
        date: Local calendar date ``YYYY-MM-DD``.
        hour: Local hour 0-23.
        start_value: First accumulator reading seen in the hour.
        end_value: Latest reading, or the first reading of the next hour.
        delta: ``max(0, end_value - start_value)``.
        last_update: Epoch ms of the last change.
    """

    date: str
    hour: int = Field(ge=0, le=23)
    start_value: float
    end_value: float
    delta: float = Field(ge=0)
    last_update: int


class DailyRecord(BaseModel):
    """Sum of a date's hourly deltas."""

    date: str
    total: float = 0.0
    last_update: int | None = None


class DayEnergy(BaseModel):
    """All hourly buckets of one date plus its daily total."""

    date: str
    hours: dict[int, HourlyRecord] = Field(default_factory=dict)
    total: float = 0.0
    last_update: int | None = None


class EnergySummary(BaseModel):
    """Headline totals plus a zero-filled 30-day daily series."""

    today: float
    last_7_days: float
    last_30_days: float
    daily_totals: list[DailyRecord]


# ---------------------------------------------------------------------------
# Store diagnostics
# ---------------------------------------------------------------------------


class StoreStats(BaseModel):
    """Row counts and span of the durable sample store."""

    row_count: int
    address_count: int
    oldest_timestamp: int | None = None
    newest_timestamp: int | None = None
    file_size_bytes: int = 0
