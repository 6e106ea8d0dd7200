"""
Experimental peer-to-peer tunnel: reach the rendezvous peer through a relay
circuit and open the SSH-carrying stream to it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ...domain.interfaces.overlay import OverlayHost, OverlayStream
from ...errors import OverlayError
from ...transport.streams import DuplexStream
from ..config.settings import OverlaySettings
from ..ssh.session import SSHTunnelDialer
from .conn import OverlayConn

logger = logging.getLogger(__name__)


def _peer_of(multiaddr: str) -> str:
    """Peer id carried in the trailing /p2p/<id> component."""
    _, sep, peer = multiaddr.rpartition("/p2p/")
    if not sep or not peer:
        raise OverlayError(f"address {multiaddr} carries no peer id")
    return peer


def circuit_address(relay_peer: str, target_peer: str) -> str:
    return f"/p2p/{relay_peer}/p2p-circuit/p2p/{target_peer}"


async def open_overlay_stream(overlay: OverlayHost, settings: OverlaySettings) -> OverlayStream:
    """Dial the rendezvous peer over the relay and open the tunnel stream.

    Relay and circuit connect failures are only logged: the overlay may
    already hold a route. The liveness ping decides.
    """
    logger.debug(f"overlay: peer id {overlay.peer_id()}")

    relay_peer = _peer_of(settings.relay_addr)
    try:
        await overlay.connect(settings.relay_addr)
        logger.debug(f"overlay: connected to relay {relay_peer}")
    except Exception as e:  # noqa: BLE001 - ping below is authoritative
        logger.debug(f"overlay: relay connect failed: {e}")

    target_peer = _peer_of(settings.rendezvous_addr)
    circuit = circuit_address(relay_peer, target_peer)
    logger.debug(f"overlay: circuit {circuit}")

    overlay.clear_backoff(target_peer)
    try:
        await overlay.connect(circuit)
    except Exception as e:  # noqa: BLE001 - ping below is authoritative
        logger.debug(f"overlay: circuit connect failed: {e}")

    try:
        rtt = await asyncio.wait_for(overlay.ping(target_peer), settings.ping_timeout_s)
    except asyncio.TimeoutError as e:
        raise OverlayError(f"ping {target_peer} timed out after {settings.ping_timeout_s:g}s") from e
    except OverlayError:
        raise
    except Exception as e:  # noqa: BLE001 - any ping failure is fatal
        raise OverlayError(f"ping {target_peer} failed: {e}") from e
    logger.debug(f"overlay: ping {target_peer} rtt={rtt * 1000:.1f}ms")

    overlay.protect(target_peer, settings.protect_tag)
    return await overlay.new_stream(target_peer, settings.protocol_id)


class OverlayTunnelDialer(SSHTunnelDialer):
    """SSH tunnel dialer whose session rides on an overlay stream.

    Owns the overlay host and the bridged connection; both are released
    after the SSH session.
    """

    def __init__(self, conn: Any, path: str, *, overlay: OverlayHost, overlay_conn: Optional[OverlayConn] = None) -> None:
        super().__init__(conn, path)
        self.overlay = overlay
        self.overlay_conn = overlay_conn

    async def dial(self) -> DuplexStream:
        stream = await super().dial()
        stream.label = f"p2p:{self.path}"
        return stream

    async def aclose(self) -> None:
        try:
            await super().aclose()
        finally:
            try:
                if self.overlay_conn is not None:
                    await self.overlay_conn.close()
            finally:
                await self.overlay.close()
