"""
podlink - connection layer for the Podman (libpod) REST API over unix, tcp, ssh and p2p transports.
"""

__version__ = "0.1.0"

__all__ = [
    "new_connection",
    "new_connection_with_identity",
    "get_client",
    "service_version",
    "Connection",
    "ConnectionContext",
    "APIResponse",
]

# Lazy attribute access so `import podlink.version` stays free of transport imports.
def __getattr__(name: str):  # pragma: no cover - simple lazy loader
    if name in {"new_connection", "new_connection_with_identity", "get_client", "service_version"}:
        from .application import connection_service as _svc
        return getattr(_svc, name)
    if name == "Connection":
        from .transport.connection import Connection as _C
        return _C
    if name in {"ConnectionContext", "APIResponse"}:
        from .domain import models as _models
        return getattr(_models, name)
    raise AttributeError(f"module 'podlink' has no attribute {name!r}")
