import asyncio
import shutil
import tempfile

import asyncssh
import pytest

from podlink.infrastructure.config.settings import AppSettings


_ENV_VARS = (
    "CONTAINER_HOST",
    "CONTAINER_SSHKEY",
    "CONTAINER_PROXY",
    "CONTAINER_SSH_CONFIG",
    "PODLINK_MAX_ATTEMPTS",
    "PODLINK_BACKOFF_STEP_S",
    "PODLINK_MINIMAL_API_VERSION",
    "PODLINK_CURRENT_API_VERSION",
    "PODLINK_REQUEST_TIMEOUT_S",
)


@pytest.fixture
def settings(monkeypatch):
    """Settings built from a clean environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return AppSettings()


@pytest.fixture
def sock_dir():
    """Short temporary directory; Unix socket paths are limited to ~108 bytes."""
    path = tempfile.mkdtemp(prefix="podlink-", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


class FakeDaemon:
    """Minimal HTTP/1.1 service mimicking the libpod API.

    Listens on the Unix socket at ``path``, or on a loopback TCP port (``port``)
    when no path is given.

    Use as ``async with daemon:``; records every request as
    (method, target, headers).
    """

    def __init__(self, path=None):
        self.path = path
        self.port = None
        self.requests = []
        self.connections = 0
        self.ping_status = 200
        self.ping_version = "5.2.0"
        self.status = 200
        self.body = b"{}"
        self._server = None

    async def __aenter__(self):
        if self.path is None:
            self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
            self.port = self._server.sockets[0].getsockname()[1]
        else:
            self._server = await asyncio.start_unix_server(self._handle, path=self.path)
        return self

    async def __aexit__(self, *exc_info):
        self._server.close()
        await self._server.wait_closed()

    def _respond(self, method, target):
        if target.endswith("/_ping"):
            headers = {}
            if self.ping_version is not None:
                headers["Libpod-API-Version"] = self.ping_version
            return self.ping_status, headers, b"OK"
        return self.status, {"Content-Type": "application/json"}, self.body

    async def _handle(self, reader, writer):
        self.connections += 1
        try:
            while True:
                head = await reader.readuntil(b"\r\n\r\n")
                lines = head.decode("latin-1").split("\r\n")
                method, target, _ = lines[0].split(" ", 2)
                headers = {}
                for line in lines[1:]:
                    if ":" in line:
                        k, v = line.split(":", 1)
                        headers[k.strip().lower()] = v.strip()
                length = int(headers.get("content-length", "0") or 0)
                if length:
                    await reader.readexactly(length)
                self.requests.append((method, target, headers))

                status, extra, body = self._respond(method, target)
                out = [f"HTTP/1.1 {status} X", f"Content-Length: {len(body)}"]
                out += [f"{k}: {v}" for k, v in extra.items()]
                writer.write(("\r\n".join(out) + "\r\n\r\n").encode("latin-1") + body)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


@pytest.fixture
def fake_daemon(sock_dir):
    return FakeDaemon(f"{sock_dir}/podman.sock")


@pytest.fixture
def tcp_daemon():
    return FakeDaemon()


class _RunResult:
    def __init__(self, stdout):
        self.stdout = stdout


class FakeSSHConnection:
    """Stands in for asyncssh.SSHClientConnection; channels go to a local Unix socket."""

    def __init__(self, remote_socket, fail_run=False):
        self.remote_socket = remote_socket
        self.fail_run = fail_run
        self.commands = []
        self.channels = []
        self.closed = False

    async def run(self, command, check=False):
        self.commands.append(command)
        if self.fail_run:
            raise asyncssh.ChannelOpenError(asyncssh.OPEN_CONNECT_FAILED, "session refused")
        return _RunResult(self.remote_socket + "\n")

    async def open_unix_connection(self, path):
        self.channels.append(path)
        return await asyncio.open_unix_connection(path)

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None


@pytest.fixture
def ssh_connection_cls():
    return FakeSSHConnection
