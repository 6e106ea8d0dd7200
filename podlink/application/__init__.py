"""Application layer - connection setup, scheme resolution and the version handshake."""

from .connection_service import new_connection, new_connection_with_identity, get_client, service_version
from .handshake import ping_new_connection

__all__ = [
    "new_connection",
    "new_connection_with_identity",
    "get_client",
    "service_version",
    "ping_new_connection",
]
