"""
Bounded in-process cache of the most recent samples per address.

Backs "memory" mode: recent-sample reads are answered from here without
touching SQLite. Each address keeps at most ``maxlen`` samples; older ones
fall off the front. The cache lives only as long as the process.

CHANGELOG:
- 2026-10-08: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from plcmon.src.models import Sample


class MemoryCache:
    """Per-address ring of recent samples.

    Args:
        maxlen: Samples kept per address (>= 1).
    """

    def __init__(self, maxlen: int = 20) -> None:
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self._maxlen = maxlen
        self._rings: dict[str, deque[Sample]] = {}

    @property
    def maxlen(self) -> int:
        return self._maxlen

    def append(self, samples: Iterable[Sample]) -> None:
        """Append samples in order, evicting the oldest beyond ``maxlen``."""
        for sample in samples:
            ring = self._rings.get(sample.address)
            if ring is None:
                ring = self._rings[sample.address] = deque(maxlen=self._maxlen)
            ring.append(sample)

    def snapshot(self, address: str) -> list[Sample]:
        """Return a copy of the address's samples, oldest first."""
        ring = self._rings.get(address)
        return list(ring) if ring is not None else []

    def latest(self, address: str) -> Sample | None:
        ring = self._rings.get(address)
        return ring[-1] if ring else None

    def __contains__(self, address: object) -> bool:
        return bool(self._rings.get(address))  # type: ignore[arg-type]

    def addresses(self) -> list[str]:
        return sorted(a for a, ring in self._rings.items() if ring)

    def clear(self) -> None:
        self._rings.clear()
