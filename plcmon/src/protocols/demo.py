"""
Synthetic controller for development and demos.

Holds an in-memory register map shaped like a small furnace line: eight
temperature zones with set-points, a power meter and an hourly energy
accumulator. Values drift a little on every read so charts look alive.
No I/O is performed; randomness comes from a seeded ``random.Random`` so
tests are reproducible.

Register map:
    D400, D410 ... D470   zone temperatures, start 30..40, +-0.5 per read
    D401, D411 ... D471   zone set-points, fixed 40
    D4000                 voltage 220
    D4002                 current 10
    D4024                 active power 2200
    D4030                 frequency 60
    D4032                 forward active energy (Wh), starts 15000, +-5 per read
    D6100                 energy accumulator, strictly increasing

Unknown addresses read 0.

CHANGELOG:
- 2026-10-11: Add D6100 accumulator for hourly energy demos
- 2026-10-06: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable

from plcmon.src.addresses import parse_address
from plcmon.src.errors import PlcConnectionError, ReadError
from plcmon.src.models import Endpoint
from plcmon.src.protocols.base import DemoReading, ProtocolAdapter

logger = logging.getLogger(__name__)

ACCUMULATOR_ADDRESS = "D6100"


class DemoAdapter(ProtocolAdapter):
    """In-memory synthetic controller.

    Args:
        endpoint: Ignored apart from logging; defaults to ``demo:502``.
        seed: Seed for the value generator.
        fail_addresses: Addresses that always fail to read.
    """

    kind = "demo"

    def __init__(
        self,
        endpoint: Endpoint | None = None,
        *,
        seed: int | None = None,
        fail_addresses: Iterable[str] = (),
        connect_timeout_s: float = 5.0,
        request_timeout_s: float = 3.0,
    ) -> None:
        super().__init__(
            endpoint or Endpoint(host="demo", port=502, protocol_kind="demo"),
            connect_timeout_s=connect_timeout_s,
            request_timeout_s=request_timeout_s,
        )
        self._rng = random.Random(seed)
        self._fail = {str(parse_address(a)) for a in fail_addresses}
        self._connected = False
        self._memory: dict[str, float] = {}
        self._init_memory()

    def _init_memory(self) -> None:
        for zone in range(0, 71, 10):
            self._memory[f"D{400 + zone}"] = 30 + self._rng.random() * 10
            self._memory[f"D{401 + zone}"] = 40.0
        self._memory["D4000"] = 220.0
        self._memory["D4002"] = 10.0
        self._memory["D4024"] = 2200.0
        self._memory["D4030"] = 60.0
        self._memory["D4032"] = 15000.0
        self._memory[ACCUMULATOR_ADDRESS] = 1000.0

    @property
    def connected(self) -> bool:
        return self._connected

    async def _open(self) -> None:
        self._connected = True

    async def _close(self) -> None:
        self._connected = False

    def _map(self, address: str) -> str:
        return str(parse_address(address))

    def _failure(self, address: str, error: str) -> DemoReading:
        return DemoReading(address=address, error=error)

    def drop_connection(self) -> None:
        """Simulate the transport going away (next batch fails)."""
        self._connected = False

    async def _read_one(self, address: str) -> DemoReading:
        if not self._connected:
            raise PlcConnectionError("demo controller disconnected")
        if address in self._fail:
            raise ReadError(f"simulated read failure for {address}")
        return DemoReading(address=address, reading=self._next_value(address))

    def _next_value(self, address: str) -> float:
        if address not in self._memory:
            return 0.0
        value = self._memory[address]
        index = parse_address(address).index
        if 400 <= index <= 470 and index % 10 == 0:
            value = round(value + self._rng.random() - 0.5, 1)
        elif address == "D4032":
            value = float(round(value + (self._rng.random() - 0.5) * 10))
        elif address == ACCUMULATOR_ADDRESS:
            value = float(round(value + 1 + self._rng.random() * 4))
        self._memory[address] = value
        return value

    async def write_one(self, address: str, value: float) -> None:
        if not self._connected:
            raise PlcConnectionError("demo controller disconnected")
        canonical = self._map(address)
        self._memory[canonical] = float(value)
        logger.info("Demo write %s to %s", value, canonical)
