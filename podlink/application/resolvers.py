"""
Scheme resolvers - turn a parsed URI into a Connection over the right transport.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Optional

import asyncssh

from ..domain.models.uri import ConnectionURI
from ..errors import (
    ConnectError,
    OverlayError,
    ParameterResolutionError,
    RemoteSocketDiscoveryError,
    URIParseError,
    UnsupportedSchemeError,
)
from ..infrastructure.config.settings import AppSettings
from ..infrastructure.overlay.conn import OverlayConn
from ..infrastructure.overlay.libp2p_host import Libp2pOverlayHost
from ..infrastructure.overlay.tunnel import OverlayTunnelDialer, open_overlay_stream
from ..infrastructure.ssh.config import resolve_transport_params
from ..infrastructure.ssh.session import SSHTunnelDialer, discover_socket_path, open_ssh_connection
from ..transport.connection import Connection
from ..transport.dialers import ProxyTCPDialer, TCPDialer, UnixDialer
from ..transport.policy import RetryPolicy
from ..transport.proxy import proxy_from_url
from ..utils import join_url

logger = logging.getLogger(__name__)

Resolver = Callable[[ConnectionURI, Optional[str], bool, AppSettings], Awaitable[Connection]]


def _build_connection(uri: ConnectionURI, dialer, settings: AppSettings) -> Connection:
    return Connection.from_dialer(
        uri,
        dialer,
        api_version=settings.api.current_version,
        retry_policy=RetryPolicy(
            max_attempts=settings.retry.max_attempts,
            backoff_step_s=settings.retry.backoff_step_s,
        ),
        timeout=settings.transport.request_timeout_s,
    )


async def _resolve_tunneled(uri: ConnectionURI, dialer: SSHTunnelDialer, settings: AppSettings) -> Connection:
    """Fill in the remote socket path when the URI has none, then build the connection."""
    # ssh://user@host/ names no socket either
    if uri.path in ("", "/"):
        try:
            uri.set_socket_path(await discover_socket_path(dialer.conn))
        except RemoteSocketDiscoveryError:
            await dialer.aclose()
            raise
    dialer.path = uri.path
    return _build_connection(uri, dialer, settings)


async def resolve_unix(uri: ConnectionURI, identity: Optional[str], machine: bool, settings: AppSettings) -> Connection:
    # unix://run/podman.sock puts "run" in the host slot
    if not uri.raw.startswith("unix:///"):
        elements = [e for e in (uri.host, uri.path.lstrip("/")) if e]
        uri.fold_host_into_path(join_url(*elements))
    return _build_connection(uri, UnixDialer(uri.path), settings)


async def resolve_tcp(uri: ConnectionURI, identity: Optional[str], machine: bool, settings: AppSettings) -> Connection:
    if not uri.raw.startswith("tcp://"):
        raise URIParseError("tcp URIs should begin with tcp://")
    try:
        port = uri.port_number()
        proxy_url = settings.transport.container_proxy
        if proxy_url:
            dialer = ProxyTCPDialer(
                proxy_from_url(proxy_url),
                uri.hostname,
                port,
                proxy_url=proxy_url,
                dial_timeout=settings.transport.proxy_dial_timeout_s,
            )
        else:
            dialer = TCPDialer(uri.hostname, port)
    except ParameterResolutionError as e:
        raise ConnectError(e) from e
    return _build_connection(uri, dialer, settings)


async def resolve_ssh(uri: ConnectionURI, identity: Optional[str], machine: bool, settings: AppSettings) -> Connection:
    params = resolve_transport_params(uri, identity, machine, settings.transport.resolved_ssh_config_path())
    try:
        conn = await open_ssh_connection(params, verify_host_key=not machine)
    except (asyncssh.Error, OSError) as e:
        raise ConnectError(e) from e
    return await _resolve_tunneled(uri, SSHTunnelDialer(conn, uri.path), settings)


async def resolve_p2p(uri: ConnectionURI, identity: Optional[str], machine: bool, settings: AppSettings) -> Connection:
    """Experimental: SSH over a relayed overlay stream to a fixed rendezvous peer."""
    params = resolve_transport_params(uri, identity, machine, settings.transport.resolved_ssh_config_path())
    if not params.identity:
        raise ParameterResolutionError("p2p connections require an SSH identity key")

    overlay = Libp2pOverlayHost(user_agent=settings.overlay.user_agent)
    overlay_conn: Optional[OverlayConn] = None
    try:
        await overlay.start()
        stream = await open_overlay_stream(overlay, settings.overlay)
        overlay_conn = OverlayConn(stream)
        conn = await open_ssh_connection(params, verify_host_key=False, sock=overlay_conn.as_socket())
    except BaseException as e:
        if overlay_conn is not None:
            await overlay_conn.close()
        await overlay.close()
        if isinstance(e, (OverlayError, asyncssh.Error, OSError)):
            raise ConnectError(e) from e
        raise

    dialer = OverlayTunnelDialer(conn, uri.path, overlay=overlay, overlay_conn=overlay_conn)
    return await _resolve_tunneled(uri, dialer, settings)


_resolvers: Dict[str, Resolver] = {
    "unix": resolve_unix,
    "tcp": resolve_tcp,
    "ssh": resolve_ssh,
    "p2p": resolve_p2p,
}


async def resolve_connection(
    uri: ConnectionURI,
    identity: Optional[str],
    machine: bool,
    settings: AppSettings,
) -> Connection:
    """Build the connection for uri with the resolver registered for its scheme."""
    resolver = _resolvers.get(uri.scheme)
    if resolver is None:
        raise UnsupportedSchemeError(uri.scheme)
    logger.debug(f"resolving {uri.scheme} connection")
    return await resolver(uri, identity, machine, settings)
