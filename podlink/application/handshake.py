"""
Version handshake - ping the service and check its API version.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Optional

import semver

from ..domain.models.context import ConnectionContext, get_client
from ..errors import HandshakeError
from ..infrastructure.config.settings import AppSettings, get_settings
from ..version import ZERO_VERSION, parse_tolerant

logger = logging.getLogger(__name__)


async def ping_new_connection(ctx: ConnectionContext, settings: Optional[AppSettings] = None) -> semver.Version:
    """Issue ``GET /_ping`` and return the service API version.

    A service that omits the version header is accepted as version 0.0.0.

    Raises:
        HandshakeError: Non-200 ping, unparsable header, or a service older
            than the minimal supported API version.
    """
    settings = settings or get_settings()
    connection = get_client(ctx)

    async with await connection.do_request("GET", "/_ping") as response:
        if response.status_code != HTTPStatus.OK:
            raise HandshakeError(f"ping response was {response.status_code}")

        header = settings.api.version_header
        raw = response.headers.get(header, "")
        if not raw:
            logger.warning(f"Service did not provide {header} Header")
            return ZERO_VERSION

        try:
            version = parse_tolerant(raw)
        except ValueError as e:
            raise HandshakeError(f"unable to parse service version {raw!r}: {e}") from e

        minimal = parse_tolerant(settings.api.minimal_version)
        if version < minimal:
            raise HandshakeError(f'server API version is too old. Client "{minimal}" server "{version}"')
        return version
