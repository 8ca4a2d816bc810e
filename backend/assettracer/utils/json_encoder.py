"""
JSON helpers for Supabase payloads and the Redis user cache.

PostgREST and json.dumps both refuse UUID, date, Decimal and Enum values, so
rows built from pydantic models go through deep_serialize before insert.
"""
import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def _scalar(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def deep_serialize(obj: Any) -> Any:
    """Return a copy of obj made only of JSON-compatible values."""
    if isinstance(obj, dict):
        return {key: deep_serialize(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [deep_serialize(item) for item in obj]
    return _scalar(obj)


def _unknown(value: Any) -> Any:
    converted = _scalar(value)
    if converted is value:
        raise TypeError(f"{type(value).__name__} is not JSON serializable")
    return converted


def safe_json_dumps(obj: Any, **kwargs) -> str:
    return json.dumps(deep_serialize(obj), default=_unknown, **kwargs)


def safe_json_loads(json_str: str, **kwargs) -> Any:
    """Parse a cached JSON string, raising ValueError on corrupt entries."""
    try:
        return json.loads(json_str, **kwargs)
    except json.JSONDecodeError as e:
        raise ValueError(f"Corrupt cache entry: {e}") from e
