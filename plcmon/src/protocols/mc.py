"""
Mitsubishi MC protocol (3E frame, binary) adapter.

pymcprotocol's Type3E client is blocking, so every socket call runs in a
worker thread via ``asyncio.to_thread``. Calls are serialised with an
``asyncio.Lock`` because one Type3E instance owns one socket and the 3E
frame has no request correlation. A request that times out keeps the lock
until its thread returns, and the socket is reopened before the next request.

Addresses are passed straight through as head devices (``D400``, ``W10``,
``ZR100``) to ``batchread_wordunits`` with a read size of one word.

CHANGELOG:
- 2026-10-19: Hold the lock through timed-out requests and reopen the session
- 2026-10-06: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import pymcprotocol

from plcmon.src.addresses import parse_address, to_mc_device
from plcmon.src.errors import PlcConnectionError
from plcmon.src.models import Endpoint
from plcmon.src.protocols.base import MCReading, ProtocolAdapter, encode_word

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOCKET_TIMEOUT_RATIO = 0.8
"""Socket timeout as a share of the request timeout, so the socket gives up first."""


class MCAdapter(ProtocolAdapter):
    """MC 3E adapter built on pymcprotocol.Type3E.

    Args:
        endpoint: Controller host and port.
        plc_type: pymcprotocol PLC series (``"Q"``, ``"L"``, ``"iQ-R"``...).
        word_signed: Decode words as two's complement.
        connect_timeout_s: Bound on a single connect attempt.
        request_timeout_s: Bound on each round trip.
    """

    kind = "mc"

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        plc_type: str = "Q",
        word_signed: bool = False,
        connect_timeout_s: float = 5.0,
        request_timeout_s: float = 3.0,
    ) -> None:
        super().__init__(
            endpoint,
            connect_timeout_s=connect_timeout_s,
            request_timeout_s=request_timeout_s,
        )
        self._plc_type = plc_type
        self._word_signed = word_signed
        self._plc: pymcprotocol.Type3E | None = None
        self._connected = False
        self._dirty = False
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._plc is not None and self._connected

    async def _open(self) -> None:
        plc = pymcprotocol.Type3E(plctype=self._plc_type)
        plc.soc_timeout = self._request_timeout_s * SOCKET_TIMEOUT_RATIO
        self._plc = plc
        async with self._lock:
            await self._in_thread(plc.connect, self.endpoint.host, self.endpoint.port)
            self._dirty = False
        self._connected = True

    async def _close(self) -> None:
        plc, self._plc = self._plc, None
        self._connected = False
        if plc is not None:
            async with self._lock:
                await self._in_thread(plc.close)

    async def _in_thread(self, fn: Callable[..., T], *args: Any) -> T:
        """Run one blocking Type3E call; the caller holds ``self._lock``.

        If the awaiting task is cancelled (a request timeout) the worker
        thread keeps the socket until it returns, so the lock is held until
        then and the session is marked dirty.
        """
        call = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        try:
            return await asyncio.shield(call)
        except asyncio.CancelledError:
            self._dirty = True
            with contextlib.suppress(Exception):
                await call
            raise

    async def _resync(self) -> None:
        """Reopen the socket after a timed-out request; the caller holds the lock.

        A late 3E response would otherwise be read as the answer to the
        next request.
        """
        assert self._plc is not None
        try:
            await self._in_thread(self._plc.close)
            await self._in_thread(self._plc.connect, self.endpoint.host, self.endpoint.port)
        except OSError as exc:
            self._connected = False
            raise PlcConnectionError(
                f"MC reconnect to {self.endpoint.host}:{self.endpoint.port} failed: {exc}",
                cause=exc,
            ) from exc
        self._dirty = False
        logger.info("Reopened MC session to %s after a timed-out request", self.endpoint.host)

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            if self._dirty:
                await self._resync()
            try:
                return await self._in_thread(fn, *args)
            except TimeoutError:
                self._dirty = True
                raise

    def _map(self, address: str) -> str:
        return to_mc_device(parse_address(address))

    def _failure(self, address: str, error: str) -> MCReading:
        return MCReading(address=address, device=address, error=error)

    async def _read_one(self, address: str) -> MCReading:
        assert self._plc is not None, "MC client not connected"
        device = self._map(address)
        try:
            words = await self._call(self._plc.batchread_wordunits, device, 1)
        except TimeoutError:
            raise
        except OSError as exc:
            # socket-level failure: the 3E session is unusable
            self._connected = False
            raise PlcConnectionError(
                f"MC transport error reading {device}: {exc}", cause=exc
            ) from exc
        return MCReading(
            address=address,
            device=device,
            words=tuple(int(w) for w in words),
            signed=self._word_signed,
        )

    async def write_one(self, address: str, value: float) -> None:
        """Write a single word device.

        Raises:
            PlcConnectionError: If not connected or the socket fails.
            TimeoutError: If the controller did not answer in time.
        """
        if self._plc is None or not self.connected:
            raise PlcConnectionError("MC adapter is not connected")
        device = self._map(address)
        # pymcprotocol packs word units as signed shorts
        word = encode_word(value)
        if word >= 0x8000:
            word -= 0x10000
        try:
            await self._call(self._plc.batchwrite_wordunits, device, [word])
        except TimeoutError:
            raise
        except OSError as exc:
            self._connected = False
            raise PlcConnectionError(
                f"MC transport error writing {device}: {exc}", cause=exc
            ) from exc
        logger.info("Wrote %s to %s", value, device)
