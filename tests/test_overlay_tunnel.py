import asyncio
import sys

import pytest

from podlink.application import resolvers
from podlink.application.connection_service import get_client, new_connection_with_identity
from podlink.errors import ConnectError, OverlayError, ParameterResolutionError
from podlink.infrastructure.config.settings import OverlaySettings
from podlink.infrastructure.overlay.conn import OverlayConn
from podlink.infrastructure.overlay.libp2p_host import Libp2pOverlayHost, _relay_support
from podlink.infrastructure.overlay.tunnel import circuit_address, open_overlay_stream

RELAY = "12D3KooWRelay"
TARGET = "12D3KooWTarget"


class FakeStream:
    def __init__(self):
        self.written = []
        self.inbound = asyncio.Queue()
        self.closed = False

    async def read(self, max_bytes):
        return await self.inbound.get()

    async def write(self, data):
        self.written.append(data)

    async def close(self):
        self.closed = True

    def local_multiaddr(self):
        return "/p2p/12D3KooWLocal"

    def remote_multiaddr(self):
        return f"/p2p/{RELAY}/p2p-circuit/p2p/{TARGET}"


class FakeOverlayHost:
    """Records the overlay call sequence."""

    def __init__(self, *, user_agent="", fail_connect=False, fail_ping=False, hang_ping=False):
        self.user_agent = user_agent
        self.fail_connect = fail_connect
        self.fail_ping = fail_ping
        self.hang_ping = hang_ping
        self.calls = []
        self.stream = FakeStream()
        self.closed = False

    async def start(self):
        self.calls.append(("start",))

    def peer_id(self):
        return "12D3KooWLocal"

    async def connect(self, multiaddr):
        self.calls.append(("connect", multiaddr))
        if self.fail_connect:
            raise OSError("no route")
        return multiaddr.rpartition("/p2p/")[2]

    def clear_backoff(self, peer_id):
        self.calls.append(("clear_backoff", peer_id))

    async def ping(self, peer_id):
        self.calls.append(("ping", peer_id))
        if self.hang_ping:
            await asyncio.sleep(3600)
        if self.fail_ping:
            raise OSError("stream reset")
        return 0.025

    def protect(self, peer_id, tag):
        self.calls.append(("protect", peer_id, tag))

    async def new_stream(self, peer_id, protocol_id):
        self.calls.append(("new_stream", peer_id, protocol_id))
        return self.stream

    async def close(self):
        self.closed = True


@pytest.fixture
def overlay_settings():
    return OverlaySettings(
        relay_addr=f"/ip4/127.0.0.1/tcp/4001/p2p/{RELAY}",
        rendezvous_addr=f"/ip4/127.0.0.1/tcp/11212/ws/p2p/{TARGET}",
        protocol_id="/test/ssh/1.0.0",
        ping_timeout_s=0.05,
        protect_tag="proxy",
    )


@pytest.mark.asyncio
async def test_tunnel_call_sequence(overlay_settings):
    host = FakeOverlayHost()
    stream = await open_overlay_stream(host, overlay_settings)
    assert stream is host.stream
    assert host.calls == [
        ("connect", overlay_settings.relay_addr),
        ("clear_backoff", TARGET),
        ("connect", circuit_address(RELAY, TARGET)),
        ("ping", TARGET),
        ("protect", TARGET, "proxy"),
        ("new_stream", TARGET, "/test/ssh/1.0.0"),
    ]
    assert circuit_address(RELAY, TARGET) == f"/p2p/{RELAY}/p2p-circuit/p2p/{TARGET}"


@pytest.mark.asyncio
async def test_connect_failures_are_not_fatal(overlay_settings):
    host = FakeOverlayHost(fail_connect=True)
    assert await open_overlay_stream(host, overlay_settings) is host.stream


@pytest.mark.asyncio
async def test_ping_failure_is_fatal(overlay_settings):
    host = FakeOverlayHost(fail_ping=True)
    with pytest.raises(OverlayError, match="stream reset"):
        await open_overlay_stream(host, overlay_settings)
    assert ("new_stream", TARGET, "/test/ssh/1.0.0") not in host.calls


@pytest.mark.asyncio
async def test_ping_deadline(overlay_settings):
    host = FakeOverlayHost(hang_ping=True)
    with pytest.raises(OverlayError, match="timed out"):
        await open_overlay_stream(host, overlay_settings)


@pytest.mark.asyncio
async def test_overlay_conn_bridges_socket():
    stream = FakeStream()
    conn = OverlayConn(stream)
    assert conn.remote_addr().network == "libp2p"
    conn.set_deadline(None)
    sock = conn.as_socket()
    loop = asyncio.get_running_loop()
    sock.setblocking(False)

    await loop.sock_sendall(sock, b"SSH-2.0-test\r\n")
    for _ in range(100):
        if stream.written:
            break
        await asyncio.sleep(0.01)
    assert b"".join(stream.written) == b"SSH-2.0-test\r\n"

    await stream.inbound.put(b"SSH-2.0-peer\r\n")
    assert await loop.sock_recv(sock, 100) == b"SSH-2.0-peer\r\n"

    await conn.close()
    sock.close()
    assert stream.closed


@pytest.fixture
def fake_p2p(monkeypatch, fake_daemon, overlay_settings, settings, tmp_path, ssh_connection_cls):
    holder = {"host_kwargs": {}}
    monkeypatch.setattr(settings, "overlay", overlay_settings)
    monkeypatch.setattr(settings.transport, "ssh_config_path", str(tmp_path / "none"))

    def _host(**kwargs):
        holder["host"] = FakeOverlayHost(**kwargs, **holder["host_kwargs"])
        return holder["host"]

    async def _open(params, *, verify_host_key=True, sock=None):
        holder["params"] = params
        holder["verify_host_key"] = verify_host_key
        holder["sock"] = sock
        sock.close()
        holder["conn"] = ssh_connection_cls(fake_daemon.path)
        return holder["conn"]

    monkeypatch.setattr(resolvers, "Libp2pOverlayHost", _host)
    monkeypatch.setattr(resolvers, "open_ssh_connection", _open)
    return holder


@pytest.mark.asyncio
async def test_p2p_connection_over_overlay(fake_daemon, fake_p2p, settings):
    async with fake_daemon:
        ctx = await new_connection_with_identity("p2p://alice@node", "/keys/id", False, settings=settings)
        conn = get_client(ctx)
        await conn.aclose()

    host = fake_p2p["host"]
    assert fake_p2p["params"].user == "alice"
    assert fake_p2p["params"].identity == "/keys/id"
    assert fake_p2p["verify_host_key"] is False
    assert fake_p2p["sock"] is not None
    assert conn.uri.path == fake_daemon.path
    assert fake_p2p["conn"].closed
    assert host.closed
    assert host.stream.closed


@pytest.mark.asyncio
async def test_p2p_ping_failure_closes_overlay(fake_p2p, settings):
    fake_p2p["host_kwargs"] = {"fail_ping": True}
    with pytest.raises(ConnectError) as excinfo:
        await new_connection_with_identity("p2p://alice@node", "/keys/id", False, settings=settings)
    assert isinstance(excinfo.value.err, OverlayError)
    assert fake_p2p["host"].closed


@pytest.mark.asyncio
async def test_p2p_without_identity_is_rejected_before_overlay(fake_p2p, settings):
    with pytest.raises(ParameterResolutionError, match="require an SSH identity key"):
        await new_connection_with_identity("p2p://alice@node", "", False, settings=settings)
    assert "host" not in fake_p2p


def test_missing_circuit_relay_is_overlay_error(monkeypatch):
    monkeypatch.setitem(sys.modules, "libp2p.relay.circuit_v2.config", None)
    with pytest.raises(OverlayError):
        _relay_support()


@pytest.mark.asyncio
async def test_host_refuses_to_start_without_circuit_relay(monkeypatch):
    pytest.importorskip("trio")
    pytest.importorskip("libp2p")
    monkeypatch.setitem(sys.modules, "libp2p.relay.circuit_v2.transport", None)
    host = Libp2pOverlayHost()
    with pytest.raises(OverlayError, match="lacks circuit relay v2 support"):
        await host.start()
    await host.close()


@pytest.mark.asyncio
async def test_circuit_dial_needs_running_relay():
    pytest.importorskip("multiaddr")
    pytest.importorskip("libp2p")
    host = Libp2pOverlayHost()
    with pytest.raises(OverlayError, match="no relay transport"):
        await host.connect(circuit_address(RELAY, TARGET))
