import asyncio
import socket

import pytest

from podlink.domain.models.uri import ConnectionURI
from podlink.errors import ParameterResolutionError
from podlink.transport import proxy as proxy_mod
from podlink.transport.connection import Connection
from podlink.transport.dialers import ProxyTCPDialer, TCPDialer, UnixDialer
from podlink.transport.proxy import SocksProxyDialer, proxy_from_url, register_proxy_dialer
from podlink.transport.streams import DuplexStream


class _PlainProxy:
    """Proxy offering only a blocking dial."""

    def __init__(self, url=""):
        self.url = url
        self.calls = []

    def dial(self, host, port):
        self.calls.append((host, port))
        return socket.create_connection((host, port))


class _ContextProxy(_PlainProxy):
    def __init__(self, url=""):
        super().__init__(url)
        self.timeouts = []

    async def dial_context(self, host, port, timeout):
        self.timeouts.append(timeout)
        return socket.create_connection((host, port))


async def _echo_server():
    async def handle(reader, writer):
        writer.write(await reader.read(100))
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1]


@pytest.mark.asyncio
async def test_plain_proxy_dialer_has_no_timeout():
    server, port = await _echo_server()
    proxy = _PlainProxy()
    dialer = ProxyTCPDialer(proxy, "127.0.0.1", port, proxy_url="fake://p")
    assert not dialer.supports_timeout
    stream = await dialer.dial()
    await stream.write(b"ping")
    assert await stream.read(4) == b"ping"
    await stream.aclose()
    server.close()
    await server.wait_closed()
    assert proxy.calls == [("127.0.0.1", port)]


@pytest.mark.asyncio
async def test_context_proxy_dialer_gets_dial_timeout():
    server, port = await _echo_server()
    proxy = _ContextProxy()
    dialer = ProxyTCPDialer(proxy, "127.0.0.1", port, proxy_url="fake://p", dial_timeout=3.0)
    assert dialer.supports_timeout
    stream = await dialer.dial()
    await stream.aclose()
    server.close()
    await server.wait_closed()
    assert proxy.timeouts == [3.0]
    assert proxy.calls == []


@pytest.mark.asyncio
async def test_tcp_dialer_without_port_fails_at_dial():
    dialer = TCPDialer("localhost", None)
    with pytest.raises(OSError, match="missing port in address"):
        await dialer.dial()


def test_registered_proxy_scheme(monkeypatch):
    monkeypatch.setattr(proxy_mod, "_registry", dict(proxy_mod._registry))
    register_proxy_dialer("fake", _PlainProxy)
    dialer = proxy_from_url("fake://proxy.local:1080")
    assert isinstance(dialer, _PlainProxy)
    assert dialer.url == "fake://proxy.local:1080"


@pytest.mark.asyncio
async def test_socks_proxy_is_context_capable():
    dialer = proxy_from_url("socks5://127.0.0.1:1080")
    assert isinstance(dialer, SocksProxyDialer)
    assert ProxyTCPDialer(dialer, "h", 1).supports_timeout


def test_unknown_proxy_scheme():
    with pytest.raises(ParameterResolutionError, match="unknown scheme: gopher"):
        proxy_from_url("gopher://proxy:70")


class _CountingDialer:
    """Unix dialer with keep-alive off, counting dials."""

    keep_alive = False
    compression = True

    def __init__(self, path):
        self._inner = UnixDialer(path)
        self.dials = 0

    async def dial(self) -> DuplexStream:
        self.dials += 1
        return await self._inner.dial()

    async def aclose(self):
        return None


@pytest.mark.asyncio
async def test_each_request_dials_when_keep_alive_off(fake_daemon):
    dialer = _CountingDialer(fake_daemon.path)
    uri = ConnectionURI.parse(f"ssh://core@host{fake_daemon.path}")
    async with fake_daemon:
        async with Connection.from_dialer(uri, dialer) as conn:
            for _ in range(3):
                async with await conn.do_request("GET", "/info") as resp:
                    assert resp.is_success()
                    await resp.response.aread()
    assert dialer.dials == 3
    assert fake_daemon.connections == 3


@pytest.mark.asyncio
async def test_unix_connection_reuses_one_stream_and_escapes_paths(fake_daemon):
    uri = ConnectionURI.parse(f"unix://{fake_daemon.path}")
    async with fake_daemon:
        async with Connection.from_dialer(uri, UnixDialer(fake_daemon.path)) as conn:
            for name in ("web", "a/b c"):
                async with await conn.do_request("GET", "/containers/{}/json", path_values=[name]) as resp:
                    await resp.response.aread()
    targets = [target for _, target, _ in fake_daemon.requests]
    assert targets == [
        "/v5.2.0/libpod/containers/web/json",
        "/v5.2.0/libpod/containers/a%2Fb%20c/json",
    ]
    assert fake_daemon.connections == 1


@pytest.mark.asyncio
async def test_raw_dial_returns_duplex_stream(fake_daemon):
    uri = ConnectionURI.parse(f"unix://{fake_daemon.path}")
    async with fake_daemon:
        async with Connection.from_dialer(uri, UnixDialer(fake_daemon.path)) as conn:
            stream = await conn.dial()
            await stream.write(b"GET /v5.2.0/libpod/_ping HTTP/1.1\r\nHost: d\r\n\r\n")
            data = await stream.read(1024)
            await stream.aclose()
    assert data.startswith(b"HTTP/1.1 200")
