"""
Connection URI model - the parsed form of a daemon address.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit, unquote

from ...errors import URIParseError, ParameterResolutionError


@dataclass
class ConnectionURI:
    """A parsed daemon URI.

    ``path`` is the only field that changes after parsing: tunnelled transports
    fill it in once, from the daemon's own report, when the URI omitted it.
    """
    raw: str
    scheme: str
    username: Optional[str] = None
    hostname: str = ""
    port: str = ""
    host: str = ""
    path: str = ""
    _path_resolved: bool = field(default=False, repr=False, compare=False)

    @classmethod
    def parse(cls, raw: str) -> ConnectionURI:
        """Parse a URI string such as ``ssh://core@host:22/run/podman/podman.sock``."""
        try:
            parts = urlsplit(raw)
            hostname = parts.hostname or ""
        except ValueError as e:
            raise URIParseError(f"value of CONTAINER_HOST is not a valid url: {raw}: {e}") from e

        # Port text is kept raw; transports that need a number validate it.
        host = parts.netloc.rpartition("@")[2]
        port = ""
        if host and not host.endswith("]") and ":" in host:
            port = host.rsplit(":", 1)[1]

        return cls(
            raw=raw,
            scheme=parts.scheme,
            username=unquote(parts.username) if parts.username else None,
            hostname=hostname,
            port=port,
            host=host,
            path=parts.path,
        )

    def port_number(self) -> Optional[int]:
        """Integer port from the URI, or None when it carries none."""
        if not self.port:
            return None
        try:
            return int(self.port)
        except ValueError as e:
            raise ParameterResolutionError(f"port is not an int: {self.port}: {e}") from e

    def fold_host_into_path(self, joined: str) -> None:
        """Treat the host segment as the first path element (``unix://run/x.sock``)."""
        self.path = joined
        self.host = ""
        self.hostname = ""
        self.port = ""

    def set_socket_path(self, path: str) -> None:
        """Record the daemon-reported socket path; it is fixed once set."""
        if self._path_resolved:
            raise ValueError(f"socket path already resolved to {self.path!r}")
        self.path = path
        self._path_resolved = True

    def __str__(self) -> str:
        userinfo = f"{self.username}@" if self.username else ""
        return f"{self.scheme}://{userinfo}{self.host}{self.path}"
