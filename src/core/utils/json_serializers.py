"""Shared JSON serialization utilities for structured log output."""

import dataclasses
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, timedelta):
        return True, obj.total_seconds()
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, (bytes, bytearray)):
        return True, bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, (set, frozenset)):
        return True, sorted(obj, key=str)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    JSON ``default=`` hook that keeps numeric and structured values typed.

    - datetime/date -> ISO 8601 string
    - timedelta -> seconds
    - Enum -> value
    - bytes -> UTF-8 text (lossy)
    - dataclasses -> dict
    - pydantic models -> ``model_dump()``
    - everything else -> string (fallback, covers yarl.URL)

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return str(obj)


__all__ = ["json_serializer"]
