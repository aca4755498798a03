"""
Normalization of message payloads into JSON-compatible values.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID


def json_safe(value: Any) -> Any:
    """
    Convert a payload into a structure ``json.dumps`` accepts.

    Mappings keep their (stringified) keys, sequences and sets become lists,
    datetimes become ISO 8601 strings in UTC. Pydantic models are dumped.
    Scalars already valid in JSON pass through untouched.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(key): json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return [json_safe(item) for item in sorted(value, key=repr)]
    if isinstance(value, datetime):
        ts = value if value.tzinfo else value.replace(tzinfo=UTC)
        return ts.astimezone(UTC).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, Enum):
        return json_safe(value.value)
    if isinstance(value, (UUID, Path)):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if hasattr(value, "model_dump"):
        return json_safe(value.model_dump(mode="json"))

    raise TypeError(f"Payload value of type {type(value).__name__} is not JSON serializable")


__all__ = ["json_safe"]
