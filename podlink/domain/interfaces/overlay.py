"""
Overlay network protocol interface.
Defines the peer-to-peer capabilities the experimental p2p transport relies on.
"""

from __future__ import annotations
from typing import Protocol


class OverlayStream(Protocol):
    """An application-level stream opened to a remote peer."""

    async def read(self, max_bytes: int) -> bytes:
        """Read up to max_bytes; b'' at end of stream."""
        ...

    async def write(self, data: bytes) -> None:
        ...

    async def close(self) -> None:
        ...

    def local_multiaddr(self) -> str:
        ...

    def remote_multiaddr(self) -> str:
        ...


class OverlayHost(Protocol):
    """A local peer on the overlay network."""

    async def start(self) -> None:
        """Bring the peer up with no inbound listeners and relay traversal enabled."""
        ...

    def peer_id(self) -> str:
        ...

    async def connect(self, multiaddr: str) -> str:
        """Connect to the peer at multiaddr and return its peer id."""
        ...

    def clear_backoff(self, peer_id: str) -> None:
        """Forget any dial backoff recorded for peer_id."""
        ...

    async def ping(self, peer_id: str) -> float:
        """Round-trip ping; returns the RTT in seconds."""
        ...

    def protect(self, peer_id: str, tag: str) -> None:
        """Exempt peer_id's connections from idle pruning."""
        ...

    async def new_stream(self, peer_id: str, protocol_id: str) -> OverlayStream:
        ...

    async def close(self) -> None:
        ...
