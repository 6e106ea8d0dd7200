"""
Libpod REST API versions spoken by this client.
"""

from __future__ import annotations

import semver

# Newest API version the client formats into request paths.
CURRENT_API_VERSION = "5.2.0"

# Oldest service API version the handshake accepts.
MINIMAL_API_VERSION = "4.0.0"

ZERO_VERSION = semver.Version(0, 0, 0)


def parse_tolerant(raw: str) -> semver.Version:
    """Parse a version string, accepting a leading 'v' and missing minor/patch.

    Raises:
        ValueError: If the string is not a semantic version.
    """
    text = (raw or "").strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    return semver.Version.parse(text, optional_minor_and_patch=True)


def path_version(version: semver.Version) -> str:
    """Render a version for the request path without prerelease/build suffixes."""
    return f"{version.major}.{version.minor}.{version.patch}"
