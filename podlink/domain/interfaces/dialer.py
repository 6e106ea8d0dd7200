"""
Dialer protocol interface.
Defines the capability every transport variant provides to the HTTP layer.
"""

from __future__ import annotations
from typing import Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from ...transport.streams import DuplexStream


@runtime_checkable
class Dialer(Protocol):
    """Opens a fresh duplex byte stream to the daemon on each call."""

    # Whether HTTP connections over this dialer may be pooled and reused.
    keep_alive: bool
    # Whether responses may be transfer-compressed.
    compression: bool

    async def dial(self) -> DuplexStream:
        """Open a new stream to the daemon's API socket."""
        ...

    async def aclose(self) -> None:
        """Release long-lived resources the dialer owns (sessions, peers)."""
        ...


@runtime_checkable
class ProxyDialer(Protocol):
    """Proxy that can only dial without timeout control."""

    def dial(self, host: str, port: int):
        """Return a connected, blocking socket to host:port through the proxy."""
        ...


@runtime_checkable
class ContextProxyDialer(ProxyDialer, Protocol):
    """Proxy that also supports dialing under a deadline."""

    async def dial_context(self, host: str, port: int, timeout: float):
        """Return a connected socket to host:port, failing after ``timeout`` seconds."""
        ...
