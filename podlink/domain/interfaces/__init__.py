"""Domain interfaces package - Protocols for ports."""

from .dialer import Dialer, ProxyDialer, ContextProxyDialer
from .overlay import OverlayHost, OverlayStream

__all__ = [
    "Dialer",
    "ProxyDialer",
    "ContextProxyDialer",
    "OverlayHost",
    "OverlayStream",
]
