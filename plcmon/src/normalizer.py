"""
Pure conversion from protocol readings to protocol-agnostic samples.

Every reading of one poll cycle is stamped with the same cycle timestamp.
Failed reads keep their slot as a sample with ``value=None`` so gaps stay
visible downstream.

CHANGELOG:
- 2026-10-05: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping

from plcmon.src.models import Sample
from plcmon.src.protocols.base import Reading


def to_samples(readings: Mapping[str, Reading], ts: int) -> list[Sample]:
    """Convert one cycle's readings into samples.

    Args:
        readings: ``{address: reading}`` in poll order.
        ts: Cycle timestamp in epoch milliseconds.

    Returns:
        One :class:`Sample` per reading, in the same order.
    """
    return [
        Sample(address=address, timestamp=ts, value=reading.value)
        for address, reading in readings.items()
    ]
