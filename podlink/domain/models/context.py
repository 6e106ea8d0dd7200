"""
Connection context - the value callers carry between API calls.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, TYPE_CHECKING

import semver

from ...errors import ContextValueError
from ...version import ZERO_VERSION

if TYPE_CHECKING:  # pragma: no cover
    from ...transport.connection import Connection


@dataclass(frozen=True)
class ConnectionContext:
    """Immutable, request-scoped carrier of a live connection and its service version.

    New values are attached by deriving a new context, never by mutation.
    """
    connection: Optional[Connection] = None
    service_version: Optional[semver.Version] = None

    def with_connection(self, connection: Connection) -> ConnectionContext:
        return replace(self, connection=connection)

    def with_service_version(self, version: semver.Version) -> ConnectionContext:
        return replace(self, service_version=version)


def get_client(ctx: ConnectionContext) -> Connection:
    """Return the connection carried by ctx."""
    if ctx is None or ctx.connection is None:
        raise ContextValueError("Client not set in context")
    return ctx.connection


def service_version(ctx: ConnectionContext) -> semver.Version:
    """Service API version learned by the handshake, or 0.0.0 when unknown."""
    if ctx is None or ctx.service_version is None:
        return ZERO_VERSION
    return ctx.service_version
