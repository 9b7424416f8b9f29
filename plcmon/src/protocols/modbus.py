"""
Modbus TCP adapter for controllers exposing their D-area as registers.

Reads one register per address using function code 0x04 (read input
registers) by default, or 0x03 (read holding registers) when the controller
maps its D-area to the holding table. Writes use function code 0x06.

Address mapping is ``register = index - d_address_base + modbus_offset``;
see :mod:`plcmon.src.addresses`.

CHANGELOG:
- 2026-10-09: Support holding-register controllers (register_kind)
- 2026-10-05: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import logging

from pymodbus.client import AsyncModbusTcpClient

from plcmon.src.addresses import AddressMapping, parse_address, to_modbus_register
from plcmon.src.errors import ConfigurationError, PlcConnectionError, ReadError
from plcmon.src.models import Endpoint
from plcmon.src.protocols.base import ModbusReading, ProtocolAdapter, encode_word

logger = logging.getLogger(__name__)


class ModbusAdapter(ProtocolAdapter):
    """Modbus TCP adapter built on pymodbus' AsyncModbusTcpClient.

    Args:
        endpoint: Controller host and port.
        slave_id: Modbus unit ID passed as ``device_id``.
        register_kind: ``"input"`` for FC 0x04, ``"holding"`` for FC 0x03.
        mapping: D-address to register translation.
        word_signed: Decode words as two's complement.
        connect_timeout_s: Bound on a single connect attempt.
        request_timeout_s: Bound on a single register round trip.
    """

    kind = "modbus"

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        slave_id: int = 1,
        register_kind: str = "input",
        mapping: AddressMapping | None = None,
        word_signed: bool = False,
        connect_timeout_s: float = 5.0,
        request_timeout_s: float = 3.0,
    ) -> None:
        super().__init__(
            endpoint,
            connect_timeout_s=connect_timeout_s,
            request_timeout_s=request_timeout_s,
        )
        self._slave_id = slave_id
        self._register_kind = register_kind
        self._mapping = mapping or AddressMapping()
        self._word_signed = word_signed
        self._client: AsyncModbusTcpClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    async def _open(self) -> None:
        client = AsyncModbusTcpClient(
            self.endpoint.host,
            port=self.endpoint.port,
            timeout=self._request_timeout_s,
        )
        self._client = client
        ok = await client.connect()
        if not ok:
            raise PlcConnectionError(
                f"Modbus connect to {self.endpoint.host}:{self.endpoint.port} "
                "returned False"
            )

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()

    def _map(self, address: str) -> int:
        return to_modbus_register(parse_address(address), self._mapping)

    def _failure(self, address: str, error: str) -> ModbusReading:
        try:
            register = self._map(address)
        except ConfigurationError:
            register = -1
        return ModbusReading(address=address, register=register, error=error)

    async def _read_one(self, address: str) -> ModbusReading:
        assert self._client is not None, "Modbus client not connected"
        register = self._map(address)
        if self._register_kind == "holding":
            response = await self._client.read_holding_registers(
                register, count=1, device_id=self._slave_id
            )
        else:
            response = await self._client.read_input_registers(
                register, count=1, device_id=self._slave_id
            )

        if response.isError():
            raise ReadError(f"Modbus error response for {address} (register {register})")

        return ModbusReading(
            address=address,
            register=register,
            words=tuple(response.registers),
            signed=self._word_signed,
        )

    async def write_one(self, address: str, value: float) -> None:
        """Write a single register (FC 0x06).

        Raises:
            PlcConnectionError: If not connected.
            ReadError: If the controller answers with an error response.
        """
        if self._client is None or not self.connected:
            raise PlcConnectionError("Modbus adapter is not connected")
        register = self._map(address)
        response = await self._client.write_register(
            register, encode_word(value), device_id=self._slave_id
        )
        if response.isError():
            raise ReadError(f"Modbus error response writing {address} (register {register})")
        logger.info("Wrote %s to %s (register %d)", value, address, register)
