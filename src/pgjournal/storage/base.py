"""
Storage abstraction for the journal.

Backends advertise what they support through ``StorageCapabilities`` so
callers can degrade gracefully (for example when payloads are stored as plain
JSON text rather than JSONB).
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Protocol

from pgjournal.models import JournalMessage, Query


@dataclass
class StorageCapabilities:
    """
    Capabilities supported by a journal backend.

    This allows runtime feature detection when switching between backends.
    """

    insert: bool = True  # Can append messages
    find: bool = True  # Can page through matching messages
    count: bool = True  # Can count matching messages
    drop: bool = False  # Can drop its storage
    payload_query: bool = False  # Can filter on payload fields
    structured_json: bool = False  # Payloads stored in a binary JSON column


@dataclass(frozen=True)
class DropResult:
    """
    Outcome of a best-effort drop.

    Callers may inspect ``error`` but are not required to; a missing table is
    an expected outcome.
    """

    dropped: bool
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.dropped


class JournalStorage(Protocol):
    """Protocol for journal storage backends."""

    @property
    @abstractmethod
    def capabilities(self) -> StorageCapabilities:
        """Return capabilities supported by this backend"""
        ...

    @abstractmethod
    async def initialize(self) -> None:
        """Connect and create storage (tables, etc.)"""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources"""
        ...

    @abstractmethod
    async def insert(self, message: JournalMessage) -> None:
        """
        Append a message to the journal.

        Raises:
            WriteError: On constraint violations (e.g. duplicate id) or a lost connection
        """
        ...

    @abstractmethod
    async def find(
        self, query: Query, limit: Optional[int] = 100, offset: int = 0
    ) -> List[JournalMessage]:
        """
        Return messages matching ``query``.

        Args:
            query: Structured query
            limit: Maximum number of messages (None for no limit)
            offset: Number of matching messages to skip

        Returns:
            Eagerly materialized list; no ordering is guaranteed
        """
        ...

    @abstractmethod
    async def count(self, query: Query) -> int:
        """Return the number of messages matching ``query``."""
        ...

    @abstractmethod
    async def drop(self) -> DropResult:
        """Drop the journal storage, best effort."""
        ...


__all__ = ["DropResult", "JournalStorage", "StorageCapabilities"]
