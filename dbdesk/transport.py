"""Recursive transform making driver values safe to cross a process boundary."""

from __future__ import annotations

import array
import base64
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Mapping

from .models import QueryResult

# Largest integer a JSON consumer can hold without losing precision.
MAX_SAFE_INTEGER = 2**53 - 1


def sanitize_value(value: Any) -> Any:
    """Convert `value` into strings, numbers, booleans, lists, and dicts only."""

    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
            return value
        return str(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return {"__buffer": True, "data": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (memoryview, array.array)):
        return {"__typedarray": True, "data": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, Mapping):
        return {str(key): sanitize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_value(item) for item in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    try:
        return str(value)
    except Exception:
        return f"<{type(value).__name__}>"


def sanitize_result(result: QueryResult) -> dict[str, Any]:
    """Transport-safe dict for one query result."""

    return {
        "command": result.command,
        "rowCount": result.row_count,
        "affectedRows": result.affected_rows,
        "fields": [descriptor.to_dict() for descriptor in result.fields],
        "rows": [sanitize_value(row) for row in result.rows],
    }


__all__ = ["MAX_SAFE_INTEGER", "sanitize_result", "sanitize_value"]
