"""Domain models package."""

from .uri import ConnectionURI
from .params import TransportParams
from .response import APIResponse
from .context import ConnectionContext, get_client, service_version

__all__ = [
    "ConnectionURI",
    "TransportParams",
    "APIResponse",
    "ConnectionContext",
    "get_client",
    "service_version",
]
