"""
Connection service - entry points that produce a live, version-checked connection context.
"""

from __future__ import annotations

import logging
from typing import Optional

import asyncssh
import httpx

from ..domain.models.context import ConnectionContext, get_client, service_version
from ..domain.models.uri import ConnectionURI
from ..errors import ConnectError, PodlinkError
from ..infrastructure.config.settings import AppSettings, get_settings
from ..utils import redact_uri
from .handshake import ping_new_connection
from .resolvers import resolve_connection

logger = logging.getLogger(__name__)

__all__ = [
    "new_connection",
    "new_connection_with_identity",
    "get_client",
    "service_version",
]


async def new_connection(
    uri: str = "",
    ctx: Optional[ConnectionContext] = None,
    settings: Optional[AppSettings] = None,
) -> ConnectionContext:
    """Connect to the daemon at uri (or CONTAINER_HOST) and return a context carrying it.

    Examples:
        unix:///run/podman/podman.sock
        unix://run/podman/podman.sock
        ssh://core@localhost:61234/run/podman/podman.sock?secure=True
        tcp://localhost:8080
    """
    return await new_connection_with_identity(uri, "", False, ctx=ctx, settings=settings)


async def new_connection_with_identity(
    uri: str,
    identity: Optional[str],
    machine: bool,
    ctx: Optional[ConnectionContext] = None,
    settings: Optional[AppSettings] = None,
) -> ConnectionContext:
    """Like new_connection, with an explicit SSH identity file and machine flag.

    Machine connections target a locally managed VM: host keys are not
    verified and the SSH client config is not consulted.
    """
    settings = settings or get_settings()
    if not uri and settings.transport.container_host:
        uri = settings.transport.container_host
    if not identity and settings.transport.container_sshkey:
        identity = settings.transport.container_sshkey

    logger.debug(f"Connecting to {redact_uri(uri)}")
    parsed = ConnectionURI.parse(uri)
    connection = await resolve_connection(parsed, identity or None, machine, settings)

    ctx = (ctx or ConnectionContext()).with_connection(connection)
    try:
        version = await ping_new_connection(ctx, settings)
    except (PodlinkError, httpx.HTTPError, OSError, asyncssh.Error) as e:
        await connection.aclose()
        raise ConnectError(e) from e
    return ctx.with_service_version(version)
