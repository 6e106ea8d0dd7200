from __future__ import annotations

"""
Request dispatch over a connection's dial-capable HTTP client.

Owns URL templating, API-version selection, header forwarding and retries so
the API helpers built above stay free from transport micromanagement.
"""

from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote
import asyncio
import logging

import httpx

from ..domain.models.response import APIResponse
from .policy import RetryPolicy

logger = logging.getLogger(__name__)

API_VERSION_HEADER = "API-Version"

# Synthetic host for transports whose addressing lives in the dialer.
DIAL_BASE_URL = "http://d"

HeaderTypes = Union[httpx.Headers, Mapping[str, str], Sequence[Tuple[str, str]]]


def escape_path_value(value: str) -> str:
    """Escape one path segment: '/', spaces and '?' are encoded, sub-delims like ':' and '@' kept."""
    return quote(str(value), safe="$&+=:@")


class RequestDispatcher:
    """
    Builds and sends requests for one connection.
    Responsibilities:
      - Template the API version and escaped path values into the route
      - Consume the API-Version override header instead of forwarding it
      - Retry transport failures with linear backoff
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        scheme: str,
        host: str = "",
        path_prefix: str = "",
        api_version: str,
        retry_policy: Optional[RetryPolicy] = None,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.scheme = scheme
        self.host = host
        self.path_prefix = path_prefix
        self.api_version = api_version
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep_fn = sleep_fn

    # ---------------- Internal helpers ----------------
    def base_url(self) -> str:
        if self.scheme == "tcp":
            # Keep the tcp path prefix, as reverse proxies in front of the daemon expect
            return f"http://{self.host}{self.path_prefix.rstrip('/')}"
        return DIAL_BASE_URL

    def build_url(self, endpoint: str, api_version: str, path_values: Iterable[str] = ()) -> str:
        escaped = [escape_path_value(v) for v in path_values]
        if escaped:
            endpoint = endpoint.format(*escaped)
        return f"{self.base_url()}/v{api_version}/libpod{endpoint}"

    async def _retry_loop(self, func: Callable[[], Awaitable[Any]]) -> Any:
        attempt = 1
        while True:
            try:
                return await func()
            except Exception as e:  # noqa: BLE001 - we evaluate via policy
                if not self.retry_policy.should_retry(e, attempt):
                    raise
                delay = self.retry_policy.backoff_seconds(attempt)
                logger.debug(f"transport:retry attempt={attempt + 1} delay={delay:.2f}s after: {e!r}")
                await self.sleep_fn(delay)
                attempt += 1

    # ---------------- Public API ----------------
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
        """
        Assemble the request and return the response envelope.

        The response body is streamed; the caller must close it. A transport
        failure on every attempt re-raises the last error unchanged.
        """
        incoming = httpx.Headers(headers or {})
        override = incoming.get_list(API_VERSION_HEADER)
        api_version = override[0] if override else self.api_version
        forwarded = [(k, v) for k, v in incoming.multi_items() if k.lower() != API_VERSION_HEADER.lower()]

        url = self.build_url(endpoint, api_version, path_values)
        logger.debug(f"DoRequest Method: {method} URI: {url}")

        request = self.client.build_request(
            method,
            url,
            params=query or None,
            headers=forwarded,
            content=body,
        )
        response = await self._retry_loop(lambda: self.client.send(request, stream=True))
        return APIResponse(response=response, request=request)
