"""
PLC monitor configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Every value has a default suitable for local development with the demo
controller; production deployments override them through the environment
or a .env file.

CHANGELOG:
- 2026-10-09: Add word_signed and register_kind for controller families
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

VALID_PROTOCOLS = frozenset({"modbus", "mc", "demo"})
VALID_MODES = frozenset({"memory", "durable"})


class MonitorSettings(BaseSettings):
    """Process-wide configuration for the PLC monitor.

    Attributes:
        database_path: SQLite file holding samples, roll-ups and state.
        default_protocol: Protocol used when a start request names none.
        default_mode: Sample read mode used until a start request sets one.
        modbus_slave_id: Modbus unit ID (1-247).
        register_kind: ``"input"`` (FC 0x04) or ``"holding"`` (FC 0x03).
        d_address_base: D-address subtracted before the Modbus offset.
        modbus_offset: Offset added to the D-address to get the register.
        word_signed: Decode 16-bit words as two's complement.
        connect_timeout_s: Bound on a single connect attempt.
        request_timeout_s: Bound on a single address round trip.
        memory_cache_size: Samples kept per address in memory mode.
        default_interval_ms: Realtime interval when a request omits one.
        accumulator_address: Energy accumulator polled by the hourly service.
        timezone: IANA zone used for dates and hour buckets.
        allow_test_data: Enable synthetic hourly data seeding.
        api_host: Bind address for the HTTP server.
        api_port: Bind port for the HTTP server.
        log_level: Root logger level name.
    """

    database_path: str = "./data/plcmon.db"
    default_protocol: str = "demo"
    default_mode: str = "durable"
    modbus_slave_id: int = 1
    register_kind: str = "input"
    d_address_base: int = 0
    modbus_offset: int = 0
    word_signed: bool = False
    connect_timeout_s: float = 5.0
    request_timeout_s: float = 3.0
    memory_cache_size: int = 20
    default_interval_ms: int = 2000
    accumulator_address: str = "D6100"
    timezone: str = "UTC"
    allow_test_data: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    @field_validator("default_protocol")
    @classmethod
    def protocol_must_be_known(cls, v: str) -> str:
        """Validate the default protocol is one of the supported adapters."""
        v = v.lower()
        if v not in VALID_PROTOCOLS:
            raise ValueError(f"DEFAULT_PROTOCOL must be one of {sorted(VALID_PROTOCOLS)}")
        return v

    @field_validator("default_mode")
    @classmethod
    def mode_must_be_known(cls, v: str) -> str:
        """Validate the default sample mode."""
        v = v.lower()
        if v not in VALID_MODES:
            raise ValueError(f"DEFAULT_MODE must be one of {sorted(VALID_MODES)}")
        return v

    @field_validator("register_kind")
    @classmethod
    def register_kind_must_be_known(cls, v: str) -> str:
        """Validate the Modbus register table selector."""
        v = v.lower()
        if v not in ("input", "holding"):
            raise ValueError("REGISTER_KIND must be 'input' or 'holding'")
        return v

    @field_validator("modbus_slave_id")
    @classmethod
    def modbus_slave_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus slave ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("MODBUS_SLAVE_ID must be between 1 and 247")
        return v

    @field_validator("connect_timeout_s", "request_timeout_s")
    @classmethod
    def timeouts_must_be_positive(cls, v: float) -> float:
        """Every protocol round trip needs a bounded, positive timeout."""
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("memory_cache_size")
    @classmethod
    def cache_size_must_be_positive(cls, v: int) -> int:
        """Validate the per-address ring holds at least one sample."""
        if v < 1:
            raise ValueError("MEMORY_CACHE_SIZE must be >= 1")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the time zone name resolves with zoneinfo."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE '{v}' is not a known IANA zone") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        """The configured time zone as a ZoneInfo instance."""
        return ZoneInfo(self.timezone)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
