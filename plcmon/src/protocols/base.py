"""
Protocol adapter contract and tagged readings.

Every controller protocol implements :class:`ProtocolAdapter`. The base class
owns the parts that are the same for every wire protocol:

- Bounded connect (``connect_timeout_s``) that always raises
  :class:`PlcConnectionError` on failure, carrying the transport cause.
- Fail-fast address validation before a polling loop is started.
- The batch read template: every address is read independently with a
  per-address timeout, per-address failures become failure readings, and a
  dropped transport fails the whole batch.

Subclasses supply ``_open``, ``_close``, ``_map``, ``_read_one``,
``_failure`` and ``write_one``.

CHANGELOG:
- 2026-10-05: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from plcmon.src.addresses import normalize_address
from plcmon.src.errors import ConfigurationError, PlcConnectionError
from plcmon.src.models import Endpoint

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Word decoding
# ---------------------------------------------------------------------------


def decode_word(word: int, signed: bool = False) -> float:
    """Decode a 16-bit register word.

    Args:
        word: Raw register value (0-65535).
        signed: Interpret as two's complement when True.

    Returns:
        The decoded value as a float.
    """
    word &= 0xFFFF
    if signed and word >= 0x8000:
        word -= 0x10000
    return float(word)


def encode_word(value: float) -> int:
    """Encode a value into a 16-bit register word (two's complement).

    Raises:
        ConfigurationError: If the value does not fit in 16 bits.
    """
    as_int = int(round(value))
    if as_int < -0x8000 or as_int > 0xFFFF:
        raise ConfigurationError(f"Value {value} does not fit in a 16-bit register")
    return as_int & 0xFFFF


# ---------------------------------------------------------------------------
# Tagged readings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ModbusReading:
    """Result of reading one address over Modbus TCP."""

    address: str
    register: int
    words: tuple[int, ...] = ()
    error: str | None = None
    signed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and len(self.words) > 0

    @property
    def value(self) -> float | None:
        return decode_word(self.words[0], self.signed) if self.ok else None


@dataclass(frozen=True, slots=True)
class MCReading:
    """Result of reading one word device over MC 3E."""

    address: str
    device: str
    words: tuple[int, ...] = ()
    error: str | None = None
    signed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and len(self.words) > 0

    @property
    def value(self) -> float | None:
        return decode_word(self.words[0], self.signed) if self.ok else None


@dataclass(frozen=True, slots=True)
class DemoReading:
    """Result of reading one address from the synthetic controller."""

    address: str
    reading: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.reading is not None

    @property
    def value(self) -> float | None:
        return self.reading if self.ok else None


Reading = ModbusReading | MCReading | DemoReading


# ---------------------------------------------------------------------------
# Adapter contract
# ---------------------------------------------------------------------------


class ProtocolAdapter(ABC):
    """Connection to one controller over one wire protocol.

    Args:
        endpoint: Controller host, port and protocol kind.
        connect_timeout_s: Bound on a single connect attempt.
        request_timeout_s: Bound on a single address round trip.
    """

    kind: str = ""

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        connect_timeout_s: float = 5.0,
        request_timeout_s: float = 3.0,
    ) -> None:
        self.endpoint = endpoint
        self._connect_timeout_s = connect_timeout_s
        self._request_timeout_s = request_timeout_s

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.endpoint.host}:{self.endpoint.port})"

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the transport is believed to be usable."""

    @abstractmethod
    async def _open(self) -> None:
        """Open the transport. Raise on failure."""

    @abstractmethod
    async def _close(self) -> None:
        """Close the transport."""

    @abstractmethod
    def _map(self, address: str) -> Any:
        """Map a canonical address to the protocol's register reference."""

    @abstractmethod
    async def _read_one(self, address: str) -> Reading:
        """Read one canonical address."""

    @abstractmethod
    def _failure(self, address: str, error: str) -> Reading:
        """Build a failure reading for *address*."""

    @abstractmethod
    async def write_one(self, address: str, value: float) -> None:
        """Write one value to one address."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, addresses: Iterable[str]) -> list[str]:
        """Check every address maps onto this protocol.

        Returns:
            The canonical addresses in input order.

        Raises:
            ConfigurationError: On the first malformed or unmappable address.
        """
        canonical = [normalize_address(a) for a in addresses]
        for address in canonical:
            self._map(address)
        return canonical

    async def connect(self) -> None:
        """Open the transport within ``connect_timeout_s``.

        Raises:
            PlcConnectionError: On timeout, refusal or any transport error.
        """
        target = f"{self.endpoint.host}:{self.endpoint.port}"
        try:
            await asyncio.wait_for(self._open(), timeout=self._connect_timeout_s)
        except PlcConnectionError:
            await self._close_quietly()
            raise
        except TimeoutError as exc:
            await self._close_quietly()
            raise PlcConnectionError(
                f"Timed out connecting to {self.kind} controller at {target}", cause=exc
            ) from exc
        except Exception as exc:
            await self._close_quietly()
            raise PlcConnectionError(
                f"Failed to connect to {self.kind} controller at {target}: {exc}",
                cause=exc,
            ) from exc
        logger.info("Connected to %s controller at %s", self.kind, target)

    async def disconnect(self) -> None:
        """Close the transport. Safe to call when already closed."""
        await self._close_quietly()

    async def read_batch(self, addresses: Iterable[str]) -> dict[str, Reading]:
        """Read every address, one round trip each.

        Per-address errors and timeouts are logged and returned as failure
        readings, so the result always has one entry per address.

        Raises:
            PlcConnectionError: If the adapter is not connected, or the
                transport was lost during the batch.
        """
        if not self.connected:
            raise PlcConnectionError(f"{self.kind} adapter is not connected")

        results: dict[str, Reading] = {}
        for address in addresses:
            try:
                results[address] = await asyncio.wait_for(
                    self._read_one(address), timeout=self._request_timeout_s
                )
            except PlcConnectionError:
                raise
            except TimeoutError:
                logger.warning(
                    "Timed out reading %s after %.1fs", address, self._request_timeout_s
                )
                results[address] = self._failure(address, "timeout")
            except Exception as exc:
                logger.warning("Error reading %s: %s", address, exc)
                results[address] = self._failure(address, str(exc) or type(exc).__name__)

        if not self.connected:
            raise PlcConnectionError(
                f"Lost connection to {self.kind} controller during batch read"
            )
        return results

    async def _close_quietly(self) -> None:
        try:
            await self._close()
        except Exception:
            logger.warning("Error closing %r", self, exc_info=True)
