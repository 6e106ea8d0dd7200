"""
Transport parameter models.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TransportParams:
    """User, host, port and identity resolved for one connection attempt."""
    user: str
    hostname: str
    port: int
    identity: Optional[str] = None
    from_config: bool = False
