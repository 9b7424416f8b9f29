"""
Controller protocol adapters and the factory that picks one per endpoint.

CHANGELOG:
- 2026-10-06: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from plcmon.src.addresses import AddressMapping
from plcmon.src.config import MonitorSettings
from plcmon.src.errors import ValidationError
from plcmon.src.models import Endpoint
from plcmon.src.protocols.base import (
    DemoReading,
    MCReading,
    ModbusReading,
    ProtocolAdapter,
    Reading,
)
from plcmon.src.protocols.demo import DemoAdapter
from plcmon.src.protocols.mc import MCAdapter
from plcmon.src.protocols.modbus import ModbusAdapter

__all__ = [
    "DemoAdapter",
    "DemoReading",
    "MCAdapter",
    "MCReading",
    "ModbusAdapter",
    "ModbusReading",
    "ProtocolAdapter",
    "Reading",
    "create_adapter",
]


def create_adapter(endpoint: Endpoint, settings: MonitorSettings) -> ProtocolAdapter:
    """Build the adapter for *endpoint*'s protocol kind.

    Args:
        endpoint: Controller location and protocol kind.
        settings: Process settings supplying timeouts and mapping.

    Returns:
        A new, not yet connected adapter.

    Raises:
        ValidationError: If the protocol kind is unknown.
    """
    timeouts = {
        "connect_timeout_s": settings.connect_timeout_s,
        "request_timeout_s": settings.request_timeout_s,
    }
    if endpoint.protocol_kind == "modbus":
        return ModbusAdapter(
            endpoint,
            slave_id=settings.modbus_slave_id,
            register_kind=settings.register_kind,
            mapping=AddressMapping(
                d_address_base=settings.d_address_base,
                modbus_offset=settings.modbus_offset,
            ),
            word_signed=settings.word_signed,
            **timeouts,
        )
    if endpoint.protocol_kind == "mc":
        return MCAdapter(endpoint, word_signed=settings.word_signed, **timeouts)
    if endpoint.protocol_kind == "demo":
        return DemoAdapter(endpoint, **timeouts)
    raise ValidationError(f"Unknown protocol kind: {endpoint.protocol_kind!r}")
