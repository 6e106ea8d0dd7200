"""
Local dialers: Unix-domain socket, direct TCP, and TCP through a proxy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..domain.interfaces.dialer import ContextProxyDialer, ProxyDialer
from .streams import DuplexStream

logger = logging.getLogger(__name__)


class UnixDialer:
    """Dials the daemon's Unix-domain socket."""

    keep_alive = True
    compression = False

    def __init__(self, path: str) -> None:
        self.path = path

    async def dial(self) -> DuplexStream:
        reader, writer = await asyncio.open_unix_connection(self.path)
        return DuplexStream(reader, writer, label=f"unix:{self.path}")

    async def aclose(self) -> None:
        return None


def _tcp_target(host: str, port: Optional[int]) -> int:
    if port is None:
        raise OSError(f"dial tcp {host}: missing port in address")
    return port


class TCPDialer:
    """Dials host:port directly."""

    keep_alive = True
    compression = False

    def __init__(self, host: str, port: Optional[int]) -> None:
        self.host = host
        self.port = port

    async def dial(self) -> DuplexStream:
        port = _tcp_target(self.host, self.port)
        reader, writer = await asyncio.open_connection(self.host, port)
        return DuplexStream(reader, writer, label=f"tcp:{self.host}:{port}")

    async def aclose(self) -> None:
        return None


class ProxyTCPDialer:
    """Dials host:port through a proxy.

    Proxies that support dialing under a deadline get ``dial_timeout``; the
    default TCP connect timeout is far longer than a dispatch retry loop should
    wait. Other proxies are dialed in a worker thread with no timeout control.
    """

    keep_alive = True
    compression = False

    def __init__(
        self,
        proxy: ProxyDialer,
        host: str,
        port: Optional[int],
        *,
        proxy_url: str = "",
        dial_timeout: float = 3.0,
    ) -> None:
        self.proxy = proxy
        self.host = host
        self.port = port
        self.proxy_url = proxy_url
        self.dial_timeout = dial_timeout

    @property
    def supports_timeout(self) -> bool:
        return isinstance(self.proxy, ContextProxyDialer)

    async def dial(self) -> DuplexStream:
        port = _tcp_target(self.host, self.port)
        if self.supports_timeout:
            logger.debug(f"use proxy {self.proxy_url} with dial timeout {self.dial_timeout:g}s")
            sock = await asyncio.wait_for(
                self.proxy.dial_context(self.host, port, self.dial_timeout),  # type: ignore[attr-defined]
                self.dial_timeout,
            )
        else:
            logger.debug(f"use proxy {self.proxy_url}, but proxy dialer does not support dial timeout")
            sock = await asyncio.to_thread(self.proxy.dial, self.host, port)
        sock.setblocking(False)
        reader, writer = await asyncio.open_connection(sock=sock)
        return DuplexStream(reader, writer, label=f"tcp:{self.host}:{port} via {self.proxy_url}")

    async def aclose(self) -> None:
        return None
