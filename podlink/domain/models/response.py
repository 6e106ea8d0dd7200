"""
API response envelope - pairs a raw response with the request that produced it.
"""

from __future__ import annotations
from dataclasses import dataclass
from http import HTTPStatus

import httpx


@dataclass
class APIResponse:
    """Response envelope returned by request dispatch.

    The caller owns the response and must release its body with ``aclose()``
    (or by using the envelope as an async context manager).
    """
    response: httpx.Response
    request: httpx.Request

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    def is_informational(self) -> bool:
        """True if the response code is 1xx."""
        return self.status_code // 100 == 1

    def is_success(self) -> bool:
        """True if the response code is 2xx."""
        return self.status_code // 100 == 2

    def is_redirection(self) -> bool:
        """True if the response code is 3xx."""
        return self.status_code // 100 == 3

    def is_client_error(self) -> bool:
        """True if the response code is 4xx."""
        return self.status_code // 100 == 4

    def is_conflict_error(self) -> bool:
        """True if the response code is 409."""
        return self.status_code == HTTPStatus.CONFLICT

    def is_server_error(self) -> bool:
        """True if the response code is 5xx."""
        return self.status_code // 100 == 5

    async def aclose(self) -> None:
        await self.response.aclose()

    async def __aenter__(self) -> APIResponse:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
