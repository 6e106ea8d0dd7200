"""
py-libp2p implementation of the overlay host.

py-libp2p runs on trio, so the host lives on a trio event loop in a worker
thread and every call is marshalled onto it from asyncio. The libraries come
from the optional ``p2p`` extra and are imported when the host starts.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from ...errors import OverlayError

logger = logging.getLogger(__name__)


class Libp2pStream:
    """asyncio-facing view of a py-libp2p stream living on the host's trio loop."""

    def __init__(self, host: "Libp2pOverlayHost", stream: Any) -> None:
        self._host = host
        self._stream = stream

    async def read(self, max_bytes: int) -> bytes:
        return await self._host._call(self._stream.read, max_bytes)

    async def write(self, data: bytes) -> None:
        await self._host._call(self._stream.write, data)

    async def close(self) -> None:
        await self._host._call(self._stream.close)

    def _addr(self, getter: str) -> str:
        fn = getattr(self._stream, getter, None)
        addr = fn() if callable(fn) else None
        return "" if addr is None else str(addr)

    def local_multiaddr(self) -> str:
        return self._addr("get_local_address")

    def remote_multiaddr(self) -> str:
        return self._addr("get_remote_address")


def _relay_support() -> Tuple[Any, Any, Any, Any]:
    """Circuit relay v2 client pieces of the installed py-libp2p."""
    try:
        from libp2p.relay.circuit_v2.config import RelayConfig
        from libp2p.relay.circuit_v2.protocol import CircuitV2Protocol
        from libp2p.relay.circuit_v2.transport import CircuitV2Transport
        from libp2p.tools.async_service import background_trio_service
    except ImportError as e:
        raise OverlayError(f"installed py-libp2p lacks circuit relay v2 support: {e}") from e
    return RelayConfig, CircuitV2Protocol, CircuitV2Transport, background_trio_service


class Libp2pOverlayHost:
    """Overlay peer backed by py-libp2p.

    The host is created with no listen addresses: it only dials out, reaching
    peers behind NAT through a circuit relay v2 client transport.
    py-libp2p keeps no per-peer dial backoff and has no connection-manager
    protection, so ``clear_backoff`` is a no-op and ``protect`` only records
    the tag.
    """

    def __init__(self, *, user_agent: str = "") -> None:
        self.user_agent = user_agent
        self._host: Any = None
        self._relay: Any = None
        self._token: Any = None
        self._thread: Optional[threading.Thread] = None
        self._stop: Any = None
        self._protected: Dict[str, str] = {}

    # ---------------- trio bridge ----------------
    async def _call(self, afn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        import trio

        if self._token is None:
            raise OverlayError("overlay host is not running")
        return await asyncio.to_thread(trio.from_thread.run, afn, *args, trio_token=self._token)

    async def start(self) -> None:
        try:
            import trio
            from libp2p import new_host
        except ImportError as e:
            raise OverlayError(f"p2p transport needs the 'p2p' extra: {e}") from e
        relay_config_cls, relay_protocol_cls, relay_transport_cls, run_service = _relay_support()

        loop = asyncio.get_running_loop()
        ready: asyncio.Future = loop.create_future()

        def _resolve(exc: Optional[BaseException]) -> None:
            if ready.done():
                return
            if exc is None:
                ready.set_result(None)
            else:
                ready.set_exception(exc)

        async def _main() -> None:
            host = new_host()
            protocol = relay_protocol_cls(host, allow_hop=False)
            relay = relay_transport_cls(
                host,
                protocol,
                relay_config_cls(enable_hop=False, enable_stop=True, enable_client=True),
            )
            self._stop = trio.Event()
            async with host.run(listen_addrs=[]), run_service(protocol):
                self._host = host
                self._relay = relay
                self._token = trio.lowlevel.current_trio_token()
                loop.call_soon_threadsafe(_resolve, None)
                await self._stop.wait()

        def _runner() -> None:
            try:
                trio.run(_main)
            except Exception as e:  # noqa: BLE001 - reported to the starting coroutine
                logger.debug(f"overlay: host loop exited: {e!r}")
                loop.call_soon_threadsafe(_resolve, OverlayError(f"failed to create p2p host: {e}"))

        self._thread = threading.Thread(target=_runner, name="podlink-libp2p", daemon=True)
        self._thread.start()
        await ready

    # ---------------- OverlayHost ----------------
    def peer_id(self) -> str:
        return self._host.get_id().to_base58()

    async def connect(self, multiaddr: str) -> str:
        import multiaddr as ma
        from libp2p.peer.peerinfo import info_from_p2p_addr

        if "/p2p-circuit" in multiaddr:
            if self._relay is None:
                raise OverlayError("overlay host has no relay transport")
            await self._call(self._relay.dial, ma.Multiaddr(multiaddr))
            return multiaddr.rpartition("/p2p/")[2]

        info = info_from_p2p_addr(ma.Multiaddr(multiaddr))
        await self._call(self._host.connect, info)
        return info.peer_id.to_base58()

    def clear_backoff(self, peer_id: str) -> None:
        return None

    async def ping(self, peer_id: str) -> float:
        from libp2p.host.ping import PingService
        from libp2p.peer.id import ID

        service = PingService(self._host)
        rtts = await self._call(service.ping, ID.from_base58(peer_id))
        if not rtts:
            raise OverlayError(f"no ping response from {peer_id}")
        # microseconds
        return rtts[0] / 1_000_000

    def protect(self, peer_id: str, tag: str) -> None:
        self._protected[peer_id] = tag

    async def new_stream(self, peer_id: str, protocol_id: str) -> Libp2pStream:
        from libp2p.custom_types import TProtocol
        from libp2p.peer.id import ID

        stream = await self._call(self._host.new_stream, ID.from_base58(peer_id), [TProtocol(protocol_id)])
        return Libp2pStream(self, stream)

    async def close(self) -> None:
        if self._token is None or self._thread is None:
            return
        import trio

        token, self._token = self._token, None
        await asyncio.to_thread(trio.from_thread.run_sync, self._stop.set, trio_token=token)
        await asyncio.to_thread(self._thread.join)
