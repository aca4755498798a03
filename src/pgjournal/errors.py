"""Exceptions raised by the journal storage layer."""

from __future__ import annotations

from typing import Any, Sequence


class JournalError(RuntimeError):
    """Base exception for journal storage failures."""


class BackendNotInitialized(JournalError):
    """Raised when a storage operation runs before ``initialize()`` or after ``close()``."""


class VersionUnsupported(JournalError):
    """Raised when the database server is older than the minimum supported version."""

    def __init__(self, version: str, minimum: str = "9.3") -> None:
        self.version = version
        self.minimum = minimum
        super().__init__(f"PostgreSQL version too old: {version}, supported: >= {minimum}")


class WriteError(JournalError):
    """Raised when inserting a message fails (constraint violation, lost connection)."""


class QueryExecutionError(JournalError):
    """Raised when the backend rejects a compiled query."""

    def __init__(self, message: str, sql: str, params: Sequence[Any]) -> None:
        self.sql = sql
        self.params = list(params)
        super().__init__(message)


class DecodeError(JournalError):
    """Raised when a stored payload or timestamp cannot be parsed."""


__all__ = [
    "JournalError",
    "BackendNotInitialized",
    "VersionUnsupported",
    "WriteError",
    "QueryExecutionError",
    "DecodeError",
]
