"""
Symbolic controller addresses and their protocol register mapping.

Addresses are written the way the controller manuals write them: one or two
device letters followed by a decimal word index (``D400``, ``W1A`` is not
valid, ``ZR100`` is). Parsing and mapping are pure functions; a malformed or
unmappable address raises :class:`ConfigurationError` so the problem surfaces
when polling is started rather than on the first poll cycle.

Modbus mapping follows the controller's D-area layout::

    register = index - d_address_base + modbus_offset

For example with ``d_address_base=400`` the address ``D401`` maps to
register 1.

CHANGELOG:
- 2026-10-03: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from plcmon.src.errors import ConfigurationError

_ADDRESS_RE = re.compile(r"^([A-Z]{1,2})(\d+)$")

MC_WORD_DEVICES: frozenset[str] = frozenset({"D", "W", "R", "ZR"})
"""MC device codes that address 16-bit word memory."""

MODBUS_DEVICES: frozenset[str] = frozenset({"D"})
"""Devices exposed over the controller's Modbus register table."""

MAX_REGISTER = 0xFFFF


@dataclass(frozen=True, slots=True)
class Address:
    """A parsed controller address.

    Attributes:
        device: Device code, e.g. ``"D"`` or ``"ZR"``.
        index: Word index within the device.
    """

    device: str
    index: int

    def __str__(self) -> str:
        return f"{self.device}{self.index}"


@dataclass(frozen=True, slots=True)
class AddressMapping:
    """Translation from D-addresses to Modbus register offsets.

    Attributes:
        d_address_base: D-address that corresponds to ``modbus_offset``.
        modbus_offset: Register offset added after rebasing.
    """

    d_address_base: int = 0
    modbus_offset: int = 0


def normalize_address(text: str) -> str:
    """Return the canonical spelling of *text* (upper-case, no whitespace)."""
    return str(parse_address(text))


def parse_address(text: str) -> Address:
    """Parse a symbolic address such as ``"D400"``.

    Args:
        text: Address string. Case and surrounding whitespace are ignored.

    Returns:
        The parsed :class:`Address`.

    Raises:
        ConfigurationError: If *text* is not letters followed by digits.
    """
    if not isinstance(text, str):
        raise ConfigurationError(f"Invalid address: {text!r}")
    match = _ADDRESS_RE.match(text.strip().upper())
    if match is None:
        raise ConfigurationError(f"Invalid address format: {text!r}")
    return Address(device=match.group(1), index=int(match.group(2)))


def to_modbus_register(address: Address, mapping: AddressMapping) -> int:
    """Map a D-address onto a 0-based Modbus register number.

    Raises:
        ConfigurationError: If the device is not on the Modbus table or the
            mapped register falls outside ``0..65535``.
    """
    if address.device not in MODBUS_DEVICES:
        raise ConfigurationError(
            f"Address {address} is not reachable over Modbus (only D registers)"
        )
    register = address.index - mapping.d_address_base + mapping.modbus_offset
    if register < 0 or register > MAX_REGISTER:
        raise ConfigurationError(
            f"Address {address} maps to register {register}, outside 0..{MAX_REGISTER}"
        )
    return register


def to_mc_device(address: Address) -> str:
    """Return the MC head-device string for a word address.

    Raises:
        ConfigurationError: If the device is not a word device.
    """
    if address.device not in MC_WORD_DEVICES:
        raise ConfigurationError(
            f"Address {address} is not an MC word device ({sorted(MC_WORD_DEVICES)})"
        )
    return str(address)


def dedupe(addresses: Iterable[str]) -> list[str]:
    """Normalize and de-duplicate addresses, keeping first-seen order."""
    seen: dict[str, None] = {}
    for text in addresses:
        seen.setdefault(normalize_address(text), None)
    return list(seen)
