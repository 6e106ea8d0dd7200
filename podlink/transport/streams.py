"""
HTTP plumbing that routes every connection through a Dialer.

httpx sends requests to a synthetic host; the network backend defined here
ignores the host and port httpcore asks for and calls the connection's dialer
instead, so the real addressing lives entirely in the dialer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Iterable, Iterator, Optional, Tuple, Type

import httpcore
import httpx

from ..domain.interfaces.dialer import Dialer

logger = logging.getLogger(__name__)


class DuplexStream(httpcore.AsyncNetworkStream):
    """Byte stream over a reader/writer pair (asyncio streams, asyncssh channels).

    ``error_types`` are the exceptions the pair raises when the peer goes away;
    they surface as httpcore read/write errors so dispatch can retry them.
    """

    def __init__(
        self,
        reader: Any,
        writer: Any,
        label: str = "",
        error_types: Tuple[Type[BaseException], ...] = (OSError,),
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.label = label
        self._error_types = error_types

    async def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        try:
            return await asyncio.wait_for(self._reader.read(max_bytes), timeout)
        except asyncio.TimeoutError as e:
            raise httpcore.ReadTimeout(f"read timed out on {self.label}") from e
        except self._error_types as e:
            raise httpcore.ReadError(str(e)) from e

    async def write(self, buffer: bytes, timeout: Optional[float] = None) -> None:
        if not buffer:
            return
        try:
            self._writer.write(buffer)
            await asyncio.wait_for(self._writer.drain(), timeout)
        except asyncio.TimeoutError as e:
            raise httpcore.WriteTimeout(f"write timed out on {self.label}") from e
        except self._error_types as e:
            raise httpcore.WriteError(str(e)) from e

    async def aclose(self) -> None:
        self._writer.close()
        # The peer may already have torn the channel down.
        with contextlib.suppress(*self._error_types):
            await self._writer.wait_closed()

    def get_extra_info(self, info: str) -> Any:
        return self._writer.get_extra_info(info, None)


class DialBackend(httpcore.AsyncNetworkBackend):
    """Network backend whose every connect is a call to the dialer."""

    def __init__(self, dialer: Dialer) -> None:
        self._dialer = dialer

    async def _dial(self, timeout: Optional[float]) -> httpcore.AsyncNetworkStream:
        try:
            return await asyncio.wait_for(self._dialer.dial(), timeout)
        except asyncio.TimeoutError as e:
            raise httpcore.ConnectTimeout("dial timed out") from e
        except OSError as e:
            raise httpcore.ConnectError(str(e)) from e

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._dial(timeout)

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._dial(timeout)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


# Most specific first: timeouts subclass the broader httpcore families.
_ERROR_MAP = (
    (httpcore.ConnectTimeout, httpx.ConnectTimeout),
    (httpcore.ReadTimeout, httpx.ReadTimeout),
    (httpcore.WriteTimeout, httpx.WriteTimeout),
    (httpcore.PoolTimeout, httpx.PoolTimeout),
    (httpcore.ConnectError, httpx.ConnectError),
    (httpcore.ReadError, httpx.ReadError),
    (httpcore.WriteError, httpx.WriteError),
    (httpcore.RemoteProtocolError, httpx.RemoteProtocolError),
    (httpcore.LocalProtocolError, httpx.LocalProtocolError),
    (httpcore.UnsupportedProtocol, httpx.UnsupportedProtocol),
)


@contextlib.contextmanager
def map_transport_errors(request: httpx.Request) -> Iterator[None]:
    """Re-raise httpcore failures as the matching httpx transport errors."""
    try:
        yield
    except httpcore.TimeoutException as e:
        raise _translate(e, request) from e
    except (httpcore.NetworkError, httpcore.ProtocolError, httpcore.UnsupportedProtocol) as e:
        raise _translate(e, request) from e


def _translate(exc: Exception, request: httpx.Request) -> httpx.TransportError:
    for core_type, httpx_type in _ERROR_MAP:
        if isinstance(exc, core_type):
            return httpx_type(str(exc), request=request)
    return httpx.TransportError(str(exc), request=request)


class _PoolResponseStream(httpx.AsyncByteStream):
    def __init__(self, stream: Any, request: httpx.Request) -> None:
        self._stream = stream
        self._request = request

    async def __aiter__(self) -> AsyncIterator[bytes]:
        with map_transport_errors(self._request):
            async for part in self._stream:
                yield part

    async def aclose(self) -> None:
        if hasattr(self._stream, "aclose"):
            await self._stream.aclose()


class DialTransport(httpx.AsyncBaseTransport):
    """httpx transport over a connection pool that dials through a Dialer.

    With ``keep_alive`` off, no HTTP connection is reused: every request makes
    its own dial.
    """

    def __init__(self, dialer: Dialer, *, keep_alive: bool = True) -> None:
        self.dialer = dialer
        self._pool = httpcore.AsyncConnectionPool(
            network_backend=DialBackend(dialer),
            max_keepalive_connections=None if keep_alive else 0,
            keepalive_expiry=None if keep_alive else 0.0,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with map_transport_errors(request):
            core_response = await self._pool.handle_async_request(core_request)

        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_PoolResponseStream(core_response.stream, request),
            extensions=core_response.extensions,
        )

    async def aclose(self) -> None:
        await self._pool.aclose()


def build_http_client(dialer: Dialer, *, timeout: Optional[float] = None) -> httpx.AsyncClient:
    """Create the dial-capable HTTP client for a connection."""
    headers = None
    if not dialer.compression:
        headers = {"Accept-Encoding": "identity"}
    return httpx.AsyncClient(
        transport=DialTransport(dialer, keep_alive=dialer.keep_alive),
        headers=headers,
        timeout=timeout,
        trust_env=False,
    )
