"""
Data models for the journal.

A journal is an append-only store of topic-tagged, timestamped messages with
flexible JSON payloads. Messages are immutable once constructed; queries are
built per call and never persisted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _require_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and (value.tzinfo is None or value.utcoffset() is None):
        raise ValueError("timestamp must be timezone aware")
    return value


def _ordered_unique(values: Any) -> Tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(str(value), None)
    return tuple(seen)


class JournalMessage(BaseModel):
    """
    A single journal entry.

    The storage layer serializes and deserializes messages but never mutates
    them, so the model is frozen.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque unique identifier (UUID textual form)")
    topic: str = Field(description="Topic the message was published under")
    timestamp: datetime = Field(description="Timezone-aware publication time")
    payload: Any = Field(
        default_factory=dict,
        description="JSON-compatible payload: scalar, list or mapping, arbitrarily nested",
    )

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        """Reject naive timestamps."""
        return _require_aware(v)  # type: ignore[return-value]

    @classmethod
    def create(
        cls,
        topic: str,
        payload: Any = None,
        *,
        timestamp: Optional[datetime] = None,
        id: Optional[str] = None,
    ) -> "JournalMessage":
        """Build a message with a fresh UUID and the current UTC time unless given."""
        return cls(
            id=id or str(uuid4()),
            topic=topic,
            timestamp=timestamp or datetime.now(UTC),
            payload={} if payload is None else payload,
        )


class TimestampRange(BaseModel):
    """Inclusive time bounds; either side may be omitted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: Optional[datetime] = Field(default=None, alias="from")
    to: Optional[datetime] = Field(default=None)

    @field_validator("from_", "to")
    @classmethod
    def validate_bounds(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Reject naive bounds."""
        return _require_aware(v)

    @property
    def is_set(self) -> bool:
        return self.from_ is not None or self.to is not None


class Query(BaseModel):
    """
    Structured journal query.

    Four independent constraint groups, each optional:

    - ``id``: exact identifiers, any of which may match
    - ``topic``: case-insensitive glob patterns where ``*`` matches any substring
    - ``timestamp``: inclusive ``from``/``to`` range
    - ``payload``: dotted field path to expected value, any of which may match

    Groups combine with AND.
    """

    model_config = ConfigDict(frozen=True)

    id: Tuple[str, ...] = Field(default=(), description="Exact-match identifiers")
    topic: Tuple[str, ...] = Field(default=(), description="Topic glob patterns")
    timestamp: TimestampRange = Field(default_factory=TimestampRange)
    payload: Dict[str, Any] = Field(
        default_factory=dict, description="Dotted payload path -> expected value"
    )

    @field_validator("id", "topic", mode="before")
    @classmethod
    def normalize_values(cls, v: Any) -> Tuple[str, ...]:
        """Accept any iterable (or a single string) and keep first occurrences in order."""
        return _ordered_unique(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalize_timestamp(cls, v: Any) -> Any:
        if v is None:
            return TimestampRange()
        return v

    @field_validator("payload", mode="before")
    @classmethod
    def normalize_payload(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v

    @property
    def is_empty(self) -> bool:
        return not (self.id or self.topic or self.timestamp.is_set or self.payload)

    @classmethod
    def build(
        cls,
        *,
        id: Optional[Iterable[str]] = None,
        topic: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "Query":
        """Keyword-friendly constructor that avoids the ``from`` keyword."""
        return cls(
            id=id,
            topic=topic,
            timestamp=TimestampRange(from_=since, to=until),
            payload=payload,
        )


__all__ = ["JournalMessage", "Query", "TimestampRange"]
