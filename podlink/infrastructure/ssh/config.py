"""
SSH connection parameter resolution.

Merges, highest precedence first: values embedded in the URI (or passed
explicitly), the user's SSH client configuration for the host alias, and OS
defaults (current user, port 22). Shared by every transport that finishes
with an SSH session.
"""

from __future__ import annotations
import getpass
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import paramiko
from paramiko.ssh_exception import ConfigParseError

from ...domain.models.params import TransportParams
from ...domain.models.uri import ConnectionURI
from ...errors import ParameterResolutionError

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22


def load_ssh_config(path: str) -> paramiko.SSHConfig:
    """Load an SSH client config; a missing or unparsable file yields an empty one."""
    try:
        return paramiko.SSHConfig.from_path(path)
    except FileNotFoundError:
        return paramiko.SSHConfig()
    except (OSError, ConfigParseError) as e:
        logger.debug(f"Ignoring ssh config {path}: {e}")
        return paramiko.SSHConfig()


def lookup_host(path: str, alias: str) -> Dict[str, Any]:
    """Options for alias from the SSH client config at path."""
    try:
        return dict(load_ssh_config(path).lookup(alias))
    except ConfigParseError as e:
        logger.debug(f"Ignoring ssh config {path} for {alias}: {e}")
        return {}


def current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError) as e:
        raise ParameterResolutionError(f"current user could not be determined: {e}") from e


def expand_identity(value: str) -> str:
    """Strip quotes and expand a leading '~/' to the home directory."""
    identity = value.strip('"')
    if identity.startswith("~/"):
        try:
            home = Path.home()
        except RuntimeError as e:
            raise ParameterResolutionError(f"failed to find home dir: {e}") from e
        identity = str(home / identity[2:])
    return identity


def resolve_transport_params(
    uri: ConnectionURI,
    identity: Optional[str],
    machine: bool,
    config_path: str,
) -> TransportParams:
    """Resolve user, hostname, port and identity for one connection attempt.

    Machine-managed connections carry every value in their URI, so the SSH
    client config is not read for them.
    """
    port = uri.port_number()
    user = uri.username
    hostname = uri.hostname
    found = False

    if not machine:
        alias = uri.hostname
        options = lookup_host(config_path, alias)

        if not user and options.get("user"):
            user = options["user"]
            found = True

        cfg_hostname = options.get("hostname")
        if cfg_hostname and cfg_hostname != alias:
            hostname = cfg_hostname
            found = True

        if port is None and options.get("port"):
            raw_port = str(options["port"])
            try:
                port = int(raw_port)
            except ValueError as e:
                raise ParameterResolutionError(f"port is not an int: {raw_port}: {e}") from e
            if port != DEFAULT_SSH_PORT:
                found = True

        if not identity and options.get("identityfile"):
            identity = expand_identity(options["identityfile"][0])
            found = True

        if found:
            logger.debug(f"ssh_config alias found: {alias}")
            logger.debug(f"  User: {user}")
            logger.debug(f"  Hostname: {hostname}")
            logger.debug(f"  Port: {port}")
            logger.debug(f"  IdentityFile: {identity!r}")

    # not in url or ssh_config so default to current user and port 22
    if not user:
        user = current_user()
    if port is None:
        port = DEFAULT_SSH_PORT

    return TransportParams(
        user=user,
        hostname=hostname,
        port=port,
        identity=identity or None,
        from_config=found,
    )
