"""
Utility functions for podlink.
"""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    # Reduce noise from third-party libraries unless debugging
    if level.upper() != "DEBUG":
        for name in ("httpx", "httpcore", "asyncssh", "paramiko"):
            logging.getLogger(name).setLevel(logging.WARNING)


def join_url(*elements: str) -> str:
    """Join URL path elements with '/' under a leading slash."""
    return "/" + "/".join(elements)


def redact_uri(uri: str) -> str:
    """Hide any password embedded in a URI before it reaches a log line."""
    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest:
        return uri
    userinfo, _, hostpart = rest.rpartition("@")
    if ":" not in userinfo:
        return uri
    user = userinfo.split(":", 1)[0]
    return f"{scheme}://{user}:***@{hostpart}"
