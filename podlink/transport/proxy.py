"""
Proxy dialers for the TCP transport.

Proxies are built from a URL through a scheme registry. The stock entries use
python-socks and support dialing under a deadline; registered factories may
return dialers that only offer a plain blocking dial.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict
from urllib.parse import urlsplit

from python_socks.sync import Proxy as SyncProxy
from python_socks.async_.asyncio import Proxy as AsyncProxy

from ..domain.interfaces.dialer import ProxyDialer
from ..errors import ParameterResolutionError

logger = logging.getLogger(__name__)

ProxyFactory = Callable[[str], ProxyDialer]


class SocksProxyDialer:
    """SOCKS4/5 or HTTP CONNECT proxy backed by python-socks."""

    def __init__(self, proxy_url: str) -> None:
        self.proxy_url = proxy_url
        self._sync = SyncProxy.from_url(proxy_url)
        self._async = AsyncProxy.from_url(proxy_url)

    def dial(self, host: str, port: int):
        return self._sync.connect(dest_host=host, dest_port=port)

    async def dial_context(self, host: str, port: int, timeout: float):
        return await self._async.connect(dest_host=host, dest_port=port, timeout=timeout)


_registry: Dict[str, ProxyFactory] = {
    scheme: SocksProxyDialer
    for scheme in ("socks4", "socks4a", "socks5", "socks5h", "http")
}


def register_proxy_dialer(scheme: str, factory: ProxyFactory) -> None:
    """Register (or replace) the dialer factory used for a proxy URL scheme."""
    _registry[scheme.lower()] = factory


def proxy_from_url(proxy_url: str) -> ProxyDialer:
    """Build the proxy dialer for proxy_url."""
    try:
        scheme = urlsplit(proxy_url).scheme.lower()
    except ValueError as e:
        raise ParameterResolutionError(f"value of CONTAINER_PROXY is not a valid url: {proxy_url}: {e}") from e
    if not scheme:
        raise ParameterResolutionError(f"value of CONTAINER_PROXY is not a valid url: {proxy_url}")

    factory = _registry.get(scheme)
    if factory is None:
        raise ParameterResolutionError(f"unable to dial to proxy {proxy_url}, proxy: unknown scheme: {scheme}")
    try:
        return factory(proxy_url)
    except ValueError as e:
        raise ParameterResolutionError(f"unable to dial to proxy {proxy_url}, {e}") from e
