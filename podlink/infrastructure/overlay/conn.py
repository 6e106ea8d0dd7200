"""
Socket-like wrapper over an overlay stream.

SSH needs a real socket to run on; ``OverlayConn.as_socket()`` bridges the
overlay stream to one end of a socket pair and hands back the other end.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass
from typing import List, Optional

from ...domain.interfaces.overlay import OverlayStream

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


@dataclass(frozen=True)
class OverlayAddr:
    """Endpoint address of an overlay stream."""
    address: str
    network: str = "libp2p"

    def __str__(self) -> str:
        return self.address


class OverlayConn:
    """Wraps an overlay stream with the surface of a network connection."""

    def __init__(self, stream: OverlayStream) -> None:
        self._stream = stream
        self._bridge: Optional[socket.socket] = None
        self._pumps: List[asyncio.Task] = []
        self._closed = False

    async def read(self, max_bytes: int = _CHUNK) -> bytes:
        return await self._stream.read(max_bytes)

    async def write(self, data: bytes) -> int:
        await self._stream.write(data)
        return len(data)

    def local_addr(self) -> OverlayAddr:
        return OverlayAddr(self._stream.local_multiaddr())

    def remote_addr(self) -> OverlayAddr:
        return OverlayAddr(self._stream.remote_multiaddr())

    # Deadlines are not supported by the overlay stream; accepted and ignored.
    def set_deadline(self, deadline: Optional[float]) -> None:
        return None

    def set_read_deadline(self, deadline: Optional[float]) -> None:
        return None

    def set_write_deadline(self, deadline: Optional[float]) -> None:
        return None

    def as_socket(self) -> socket.socket:
        """Return a connected socket whose bytes flow to and from the overlay stream."""
        if self._bridge is not None:
            raise RuntimeError("overlay connection is already bridged")
        outer, inner = socket.socketpair()
        inner.setblocking(False)
        self._bridge = inner
        self._pumps = [
            asyncio.create_task(self._pump_out(inner)),
            asyncio.create_task(self._pump_in(inner)),
        ]
        return outer

    async def _pump_out(self, sock: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await self._stream.read(_CHUNK)
                if not data:
                    break
                await loop.sock_sendall(sock, data)
        except (OSError, EOFError) as e:
            logger.debug(f"overlay: inbound pump stopped: {e}")
        finally:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_WR)

    async def _pump_in(self, sock: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await loop.sock_recv(sock, _CHUNK)
                if not data:
                    break
                await self._stream.write(data)
        except (OSError, EOFError) as e:
            logger.debug(f"overlay: outbound pump stopped: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in self._pumps:
            task.cancel()
        for task in self._pumps:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._bridge is not None:
            self._bridge.close()
        await self._stream.close()
