"""
SSH session adapter - opens SSH connections and tunnels Unix-socket channels through them.
"""

from __future__ import annotations
import logging
import socket
from typing import Any, Optional

import asyncssh

from ...domain.models.params import TransportParams
from ...errors import ParameterResolutionError, RemoteSocketDiscoveryError
from ...transport.streams import DuplexStream

logger = logging.getLogger(__name__)

# Prints the daemon's own API socket path on the remote host.
INTROSPECTION_COMMAND = "podman info --format '{{.Host.RemoteSocket.Path}}'"


def load_identity(path: str) -> asyncssh.SSHKey:
    """Read a private key, mapping unreadable or undecodable keys to ParameterResolutionError."""
    try:
        return asyncssh.read_private_key(path)
    except (OSError, asyncssh.KeyImportError) as e:
        raise ParameterResolutionError(f"failed to read identity {path}: {e}") from e


async def open_ssh_connection(
    params: TransportParams,
    *,
    verify_host_key: bool = True,
    sock: Optional[socket.socket] = None,
) -> asyncssh.SSHClientConnection:
    """Open an authenticated SSH connection with the resolved parameters.

    With ``sock`` the SSH protocol runs over that already-connected socket
    instead of a new TCP connection to ``params.hostname``.
    """
    options: dict[str, Any] = {
        "port": params.port,
        "username": params.user,
        # Parameters were already merged with the user's ssh_config
        "config": [],
    }
    if params.identity:
        options["client_keys"] = [load_identity(params.identity)]
    if not verify_host_key:
        options["known_hosts"] = None
    if sock is not None:
        options["sock"] = sock

    logger.debug(f"ssh: connecting {params.user}@{params.hostname}:{params.port}")
    return await asyncssh.connect(params.hostname, **options)


async def discover_socket_path(conn: Any) -> str:
    """Ask the remote daemon for its API socket path."""
    try:
        result = await conn.run(INTROSPECTION_COMMAND, check=True)
    except (asyncssh.Error, OSError) as e:
        raise RemoteSocketDiscoveryError(f"failed to learn remote socket path: {e}") from e

    output = result.stdout or ""
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    if output.endswith("\n"):
        output = output[:-1]
    logger.debug(f"ssh: remote socket path {output!r}")
    return output


class SSHTunnelDialer:
    """Opens a Unix-socket channel through one SSH connection on every dial.

    HTTP connections are not kept alive over it, so each request is a fresh
    channel on the same authenticated session.
    """

    keep_alive = False
    compression = True

    def __init__(self, conn: Any, path: str) -> None:
        self.conn = conn
        self.path = path

    async def dial(self) -> DuplexStream:
        try:
            reader, writer = await self.conn.open_unix_connection(self.path)
        except asyncssh.Error as e:
            raise ConnectionError(f"ssh: cannot open channel to {self.path}: {e}") from e
        return DuplexStream(
            reader,
            writer,
            label=f"ssh:{self.path}",
            # channel and session loss surface as asyncssh errors, not OSError
            error_types=(OSError, asyncssh.Error),
        )

    async def aclose(self) -> None:
        self.conn.close()
        await self.conn.wait_closed()
