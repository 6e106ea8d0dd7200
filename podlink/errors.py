"""
Exception hierarchy for the podlink connection layer.

All podlink-specific exceptions inherit from :class:`PodlinkError` so callers
can catch a single base class. Failures to reach the daemon, on any transport,
surface as :class:`ConnectError`.
"""

from __future__ import annotations


class PodlinkError(Exception):
    """Base exception for all podlink operations."""


class URIParseError(PodlinkError, ValueError):
    """Raised when a connection URI is malformed."""


class UnsupportedSchemeError(PodlinkError):
    """Raised when a URI scheme has no registered resolver."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f'unable to create connection. "{scheme}" is not a supported schema')


class ParameterResolutionError(PodlinkError):
    """Raised when user, port, identity or proxy parameters cannot be resolved."""


class ConnectError(PodlinkError):
    """Raised when the daemon could not be reached or failed the handshake."""

    def __init__(self, err: BaseException):
        self.err = err
        super().__init__(f"unable to connect to Podman socket: {err}")


class HandshakeError(PodlinkError):
    """Raised when the version handshake rejects the service."""


class RemoteSocketDiscoveryError(PodlinkError):
    """Raised when the remote daemon's socket path cannot be learned."""


class OverlayError(PodlinkError):
    """Raised when the overlay network peer cannot be created or reached."""


class ContextValueError(PodlinkError):
    """Raised when a connection context does not carry the requested value."""
