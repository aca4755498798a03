"""
Server capability detection.

The journal needs PostgreSQL 9.3 for JSON operators and prefers 9.4+ where
payloads can be stored as JSONB. Versions are compared through an integer key
built by concatenating the first three version components, so "9.4.2"
becomes 942.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from pgjournal.errors import VersionUnsupported

logger = logging.getLogger(__name__)

MINIMUM_VERSION_KEY = 930
JSONB_VERSION_KEY = 940

_LEADING_VERSION = re.compile(r"^\s*(\d+(?:\.\d+)*)")
_TWO_PART = re.compile(r"^(\d+\.\d+)$")
_MAJOR_ONLY = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ServerCapabilities:
    """Capability flags derived from the server version."""

    version: str
    version_key: int
    jsonb: bool

    @property
    def payload_type(self) -> str:
        return "JSONB" if self.jsonb else "JSON"


def normalize_version(raw: str) -> str:
    """
    Normalize a ``server_version`` string.

    Distribution suffixes such as ``"16.2 (Debian 16.2-1)"`` and pre-release
    tags such as ``"17beta1"`` are dropped. Two-part versions get a zero patch
    component (``"9.3"`` -> ``"9.3.0"``) and bare majors get both
    (``"17devel"`` -> ``"17.0.0"``).
    """
    match = _LEADING_VERSION.match(raw)
    version = match.group(1) if match else raw.strip()
    if _MAJOR_ONLY.match(version):
        return f"{version}.0.0"
    return _TWO_PART.sub(r"\1.0", version)


def version_key(version: str) -> int:
    """Concatenate the first three components of ``version`` into an integer."""
    parts = version.split(".")[:3]
    try:
        return int("".join(parts))
    except ValueError:
        raise VersionUnsupported(version) from None


def probe_capabilities(raw_version: str) -> ServerCapabilities:
    """
    Derive server capabilities from a raw version string.

    Raises:
        VersionUnsupported: If the server is older than 9.3
    """
    version = normalize_version(raw_version)
    key = version_key(version)
    if key < MINIMUM_VERSION_KEY:
        raise VersionUnsupported(version)

    jsonb = key >= JSONB_VERSION_KEY
    if not jsonb:
        logger.warning(
            "journal storage: no jsonb support on %s, consider upgrading postgres", version
        )
    return ServerCapabilities(version=version, version_key=key, jsonb=jsonb)


__all__ = [
    "JSONB_VERSION_KEY",
    "MINIMUM_VERSION_KEY",
    "ServerCapabilities",
    "normalize_version",
    "probe_capabilities",
    "version_key",
]
