"""
Configuration settings - Infrastructure component for managing connection configuration.
Uses Pydantic for validation and environment variable loading.
"""

from __future__ import annotations
import os
from typing import Optional, Dict, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...version import CURRENT_API_VERSION, MINIMAL_API_VERSION, parse_tolerant


def _settings_config(**overrides: Any) -> SettingsConfigDict:
    base: Dict[str, Any] = {
        'env_file': '.env',
        'case_sensitive': False,
        'extra': 'ignore',
        'populate_by_name': True,
    }
    base.update(overrides)
    return SettingsConfigDict(**base)


class TransportSettings(BaseSettings):
    """Connection target and transport configuration."""

    container_host: Optional[str] = Field(None, validation_alias='CONTAINER_HOST')
    container_sshkey: Optional[str] = Field(None, validation_alias='CONTAINER_SSHKEY')
    container_proxy: Optional[str] = Field(None, validation_alias='CONTAINER_PROXY')
    ssh_config_path: Optional[str] = Field(None, validation_alias='CONTAINER_SSH_CONFIG')

    proxy_dial_timeout_s: float = Field(3.0, validation_alias='PODLINK_PROXY_DIAL_TIMEOUT_S')
    request_timeout_s: Optional[float] = Field(None, validation_alias='PODLINK_REQUEST_TIMEOUT_S')

    model_config = _settings_config()

    @field_validator('container_host', 'container_sshkey', 'container_proxy', 'ssh_config_path')
    @classmethod
    def empty_as_unset(cls, v):
        """Treat empty values as unset."""
        if v is None or str(v).strip() == '':
            return None
        return str(v).strip()

    def resolved_ssh_config_path(self) -> str:
        """Path of the SSH client configuration file to consult."""
        return os.path.expanduser(self.ssh_config_path or '~/.ssh/config')


class RetrySettings(BaseSettings):
    """Dispatch retry configuration."""

    max_attempts: int = Field(3, validation_alias='PODLINK_MAX_ATTEMPTS')
    backoff_step_s: float = Field(0.1, validation_alias='PODLINK_BACKOFF_STEP_S')

    model_config = _settings_config()

    @field_validator('max_attempts')
    @classmethod
    def validate_max_attempts(cls, v):
        """At least one attempt is always made."""
        return max(1, int(v))


class ApiSettings(BaseSettings):
    """API version negotiation configuration."""

    current_version: str = Field(CURRENT_API_VERSION, validation_alias='PODLINK_CURRENT_API_VERSION')
    minimal_version: str = Field(MINIMAL_API_VERSION, validation_alias='PODLINK_MINIMAL_API_VERSION')
    version_header: str = Field('Libpod-API-Version', validation_alias='PODLINK_VERSION_HEADER')

    model_config = _settings_config()

    @field_validator('current_version', 'minimal_version')
    @classmethod
    def validate_version(cls, v):
        """Reject values that are not semantic versions."""
        parse_tolerant(v)
        return v


class OverlaySettings(BaseSettings):
    """Peer-to-peer overlay configuration (experimental transport)."""

    relay_addr: str = Field(
        '/ip4/64.176.227.5/tcp/4001/p2p/12D3KooWLzi9E1oaHLhWrgTPnPa3aUjNkM8vvC8nYZp1gk9RjTV1',
        validation_alias='PODLINK_P2P_RELAY_ADDR',
    )
    rendezvous_addr: str = Field(
        '/ip4/64.176.227.5/tcp/11212/ws/p2p/12D3KooWJJqoWuC2CVAuUfEfdLHguh1bPbKsLwQY4SoC2Vw695ry',
        validation_alias='PODLINK_P2P_RENDEZVOUS_ADDR',
    )
    protocol_id: str = Field('/p2pdao/libp2p-ssh/1.0.0', validation_alias='PODLINK_P2P_PROTOCOL_ID')
    user_agent: str = Field('p2pdao.libp2p-proxy', validation_alias='PODLINK_P2P_USER_AGENT')
    ping_timeout_s: float = Field(15.0, validation_alias='PODLINK_P2P_PING_TIMEOUT_S')
    protect_tag: str = Field('proxy', validation_alias='PODLINK_P2P_PROTECT_TAG')

    model_config = _settings_config()


class AppSettings(BaseSettings):
    """Main podlink settings."""

    # Sub-configurations
    transport: TransportSettings = Field(default_factory=TransportSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    overlay: OverlaySettings = Field(default_factory=OverlaySettings)

    # Logging
    log_level: str = Field('INFO', validation_alias='LOG_LEVEL')
    log_format: str = Field(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        validation_alias='LOG_FORMAT',
    )

    model_config = _settings_config()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(v).upper() not in valid_levels:
            return 'INFO'
        return str(v).upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            'transport': self.transport.model_dump(),
            'retry': self.retry.model_dump(),
            'api': self.api.model_dump(),
            'overlay': self.overlay.model_dump(),
            'log_level': self.log_level,
        }


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Reload settings from environment (for testing)."""
    global _settings
    _settings = AppSettings()
    return _settings
