"""
Conversion between journal rows and ``JournalMessage`` objects.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, List, Mapping

from pydantic import ValidationError

from pgjournal.errors import DecodeError
from pgjournal.models import JournalMessage
from pgjournal.storage.serialization import json_safe

# PostgreSQL text output for timestamptz, e.g. "2024-03-01 12:30:00.123456+00"
_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")
_FRACTION = re.compile(r"\.(\d{1,6})(?=[+-]|$)")


def encode_payload(payload: Any) -> str:
    """Serialize a payload to JSON text for a JSON/JSONB column."""
    return json.dumps(json_safe(payload), ensure_ascii=False)


def decode_payload(raw: Any) -> Any:
    """Parse the stored payload back into a JSON-compatible value."""
    if not isinstance(raw, (str, bytes, bytearray)):
        # The driver may already hand back decoded JSON when a codec is registered.
        return raw
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Stored payload is not valid JSON: {exc}") from exc


def decode_timestamp(raw: Any) -> datetime:
    """Parse a stored timestamp into a timezone-aware ``datetime``."""
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str):
        text = _SHORT_OFFSET.sub(r"\1:00", raw.strip())
        text = _FRACTION.sub(lambda m: "." + m.group(1).ljust(6, "0"), text)
        try:
            value = datetime.fromisoformat(text)
        except ValueError as exc:
            raise DecodeError(f"Stored timestamp {raw!r} could not be parsed") from exc
    else:
        raise DecodeError(f"Stored timestamp has unexpected type {type(raw).__name__}")

    if value.tzinfo is None or value.utcoffset() is None:
        raise DecodeError(f"Stored timestamp {raw!r} has no timezone offset")
    return value


def row_to_message(row: Mapping[str, Any]) -> JournalMessage:
    """Build a message from a ``journal`` row."""
    try:
        return JournalMessage(
            id=str(row["id"]),
            topic=row["topic"],
            timestamp=decode_timestamp(row["timestamp"]),
            payload=decode_payload(row["payload"]),
        )
    except ValidationError as exc:
        raise DecodeError(f"Stored row {row['id']} is not a valid message: {exc}") from exc


def message_to_params(message: JournalMessage) -> List[Any]:
    """Positional insert parameters: id, topic, timestamp, payload JSON."""
    return [message.id, message.topic, message.timestamp, encode_payload(message.payload)]


__all__ = [
    "decode_payload",
    "decode_timestamp",
    "encode_payload",
    "message_to_params",
    "row_to_message",
]
