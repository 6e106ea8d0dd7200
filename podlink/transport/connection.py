"""
Connection - a resolved URI plus a dial-capable HTTP client.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from ..domain.interfaces.dialer import Dialer
from ..domain.models.response import APIResponse
from ..domain.models.uri import ConnectionURI
from ..version import CURRENT_API_VERSION, parse_tolerant, path_version
from .http import HeaderTypes, RequestDispatcher
from .policy import RetryPolicy
from .streams import DuplexStream, build_http_client

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """A daemon connection.

    The dialer is chosen once when the connection is built and never replaced.
    Dispatch does not mutate the connection, so concurrent calls need no locking.
    """
    uri: ConnectionURI
    client: httpx.AsyncClient
    dialer: Dialer
    api_version: str = CURRENT_API_VERSION
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep

    @classmethod
    def from_dialer(
        cls,
        uri: ConnectionURI,
        dialer: Dialer,
        *,
        api_version: str = CURRENT_API_VERSION,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
    ) -> Connection:
        return cls(
            uri=uri,
            client=build_http_client(dialer, timeout=timeout),
            dialer=dialer,
            # Semver suffixes break older services, so only major.minor.patch goes in the path
            api_version=path_version(parse_tolerant(api_version)),
            retry_policy=retry_policy or RetryPolicy(),
        )

    def dispatcher(self) -> RequestDispatcher:
        return RequestDispatcher(
            self.client,
            scheme=self.uri.scheme,
            host=self.uri.host,
            path_prefix=self.uri.path,
            api_version=self.api_version,
            retry_policy=self.retry_policy,
            sleep_fn=self.sleep_fn,
        )

    async def do_request(
        self,
        method: str,
        endpoint: str,
        *,
        body: Any = None,
        query: Any = None,
        headers: Optional[HeaderTypes] = None,
        path_values: Iterable[str] = (),
    ) -> APIResponse:
        """Dispatch a logical request; the caller must close the returned response."""
        return await self.dispatcher().do_request(
            method,
            endpoint,
            body=body,
            query=query,
            headers=headers,
            path_values=path_values,
        )

    async def dial(self) -> DuplexStream:
        """Open a raw byte stream to the daemon, bypassing HTTP (attach/exec hijacking)."""
        return await self.dialer.dial()

    async def aclose(self) -> None:
        """Close the HTTP client, then release whatever the dialer holds open."""
        try:
            await self.client.aclose()
        finally:
            await self.dialer.aclose()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
