"""Serialization helpers for persisted orchestrator records.

Decimal values are written as strings so no precision is lost, and
timestamps as ISO-8601 strings in UTC so lexical order matches time order.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that converts Decimal values to strings."""

    def default(self, o: object) -> Any:
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, datetime):
            return to_db_time(o)
        return super().default(o)


def serialize_details(details: dict[str, Any] | None) -> str:
    """JSON-encode a free-form details dict, converting Decimals to strings.

    Args:
        details: The dict to encode, or ``None`` for an empty object.

    Returns:
        A JSON string.
    """
    return json.dumps(details or {}, cls=_DecimalEncoder)


def deserialize_details(json_str: str | None) -> dict[str, Any]:
    """Decode a JSON string produced by ``serialize_details``.

    Decimal fields come back as strings.
    """
    if not json_str:
        return {}
    result: dict[str, Any] = json.loads(json_str)
    return result


def to_db_time(value: datetime) -> str:
    """Render a datetime for storage; naive values are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def from_db_time(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware datetime."""
    if value is None:
        return None
    return datetime.fromisoformat(value)
