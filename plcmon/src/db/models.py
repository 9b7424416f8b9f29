"""
SQLAlchemy ORM models for the PLC monitor database.

Tables:
- samples: one row per (address, cycle); value NULL marks a failed read.
- hourly_energy: accumulator readings per local (date, hour) bucket.
- daily_energy: sum of the hourly deltas per local date.
- polling_state: one row per polling service, shared across processes.
- runtime_config: small key/value table holding the sample mode flag.

Samples carry an autoincrement id so rows with equal timestamps keep their
insertion order when sorted by ``(ts, id)``.

CHANGELOG:
- 2026-10-08: Add polling_state and runtime_config (STORY-010)
- 2026-10-07: Initial creation (STORY-008)

TODO:
- None
"""

from sqlalchemy import BigInteger, Boolean, Float, Index, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all PLC monitor ORM models."""

    pass


class SampleRow(Base):
    """A stored sample.

    Attributes:
        id: Insertion sequence, tie-breaker for equal timestamps.
        address: Canonical controller address.
        ts: Cycle timestamp in epoch milliseconds.
        value: Decoded value, NULL for a failed read.
    """

    __tablename__ = "samples"
    __table_args__ = (Index("ix_samples_address_ts", "address", "ts", "id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    ts: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"SampleRow(address={self.address!r}, ts={self.ts!r}, value={self.value!r})"


class HourlyEnergyRow(Base):
    """Accumulator readings at the edges of one local hour."""

    __tablename__ = "hourly_energy"

    date: Mapped[str] = mapped_column(Text, primary_key=True)
    hour: Mapped[int] = mapped_column(Integer, primary_key=True)
    start_value: Mapped[float] = mapped_column(Float, nullable=False)
    end_value: Mapped[float] = mapped_column(Float, nullable=False)
    delta: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    last_update: Mapped[int] = mapped_column(BigInteger, nullable=False)


class DailyEnergyRow(Base):
    """Sum of one local date's hourly deltas."""

    __tablename__ = "daily_energy"

    date: Mapped[str] = mapped_column(Text, primary_key=True)
    total: Mapped[float] = mapped_column(Float, nullable=False, server_default=text("0"))
    last_update: Mapped[int] = mapped_column(BigInteger, nullable=False)


class PollingStateRow(Base):
    """Durable state of one polling service.

    Attributes:
        service_name: ``"realtime"`` or ``"hourly"``.
        is_polling: Whether a loop is believed to be running.
        started_at: Epoch ms of the last start.
        updated_at: Epoch ms of the last write.
        config_json: JSON of the PollConfig in effect.
        owner: ``"<hostname>:<pid>"`` of the process running the loop.
        last_error: Message of the most recent failure, cleared on success.
        consecutive_failures: Failed cycles since the last success.
        last_cycle_at: Epoch ms of the last successful cycle.
    """

    __tablename__ = "polling_state"

    service_name: Mapped[str] = mapped_column(Text, primary_key=True)
    is_polling: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("0")
    )
    started_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    config_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    last_cycle_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class RuntimeConfigRow(Base):
    """Process-independent key/value settings changed at runtime."""

    __tablename__ = "runtime_config"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
