"""Append-only event journal backed by PostgreSQL."""

from __future__ import annotations

from importlib import metadata

from pgjournal.errors import (
    DecodeError,
    JournalError,
    QueryExecutionError,
    VersionUnsupported,
    WriteError,
)
from pgjournal.models import JournalMessage, Query, TimestampRange

__all__ = (
    "__version__",
    "DecodeError",
    "JournalError",
    "JournalMessage",
    "Query",
    "QueryExecutionError",
    "TimestampRange",
    "VersionUnsupported",
    "WriteError",
)


def _detect_version() -> str:
    """Return the installed package version or a placeholder during development."""
    try:
        return metadata.version("pgjournal")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = _detect_version()
