"""
Typed value codec - Tagged strings for a flat key-value store.

A flat string store loses type information. Every value is written as a
single-character type tag followed by its payload, and decoding dispatches
on that tag alone:

    'a'  undefined (UNDEFINED sentinel)
    'b'  None
    '0'  bool        '1' / '0'
    '1'  str         raw text
    '2'  number      decimal string (int or float)
    '3'  datetime    epoch milliseconds (UTC)
    '4'  structured  JSON

Datetimes must be timezone-aware; a naive datetime has no single epoch
value and cannot round-trip, so it is rejected. Decimal is rejected for
the same reason: the number tag decodes to int or float.

Structured values write nested datetimes as ISO-8601, dates as YYYY-MM-DD
and Decimals as strings. On decode any string that looks like an ISO-8601 timestamp is
revived as a datetime; dates stay strings. This is a heuristic, not a
schema. Anything else json cannot serialize raises CodecError.
"""

import dataclasses
import json
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from .exceptions import CodecError

TAG_UNDEFINED = "a"
TAG_NULL = "b"
TAG_BOOLEAN = "0"
TAG_STRING = "1"
TAG_NUMBER = "2"
TAG_DATE = "3"
TAG_OBJECT = "4"

_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_INTEGER = re.compile(r"^[+-]?\d+$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class _Undefined:
    """Marker for a value that was never set, distinct from None."""

    _instance = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def encode(value: Any) -> str:
    """Encode a value as a tagged string."""
    if value is UNDEFINED:
        return TAG_UNDEFINED
    if value is None:
        return TAG_NULL
    if isinstance(value, Enum):
        value = value.value
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return f"{TAG_BOOLEAN}{1 if value else 0}"
    if isinstance(value, Decimal):
        raise CodecError(detail="Decimal does not round-trip; pass int, float or str")
    if isinstance(value, (int, float)):
        return f"{TAG_NUMBER}{value}"
    if isinstance(value, str):
        return f"{TAG_STRING}{value}"
    if isinstance(value, datetime):
        return f"{TAG_DATE}{_to_epoch_ms(value)}"
    try:
        payload = json.dumps(_to_jsonable(value), default=_json_default)
    except (TypeError, ValueError) as e:
        raise CodecError(detail=f"cannot encode {type(value).__name__}: {e}") from e
    return f"{TAG_OBJECT}{payload}"


def decode(text: str) -> Any:
    """
    Decode a tagged string back to its value.

    Raises:
        CodecError: empty input, unknown tag, or malformed payload
    """
    if not text:
        raise CodecError(detail="cannot decode empty value")

    tag, content = text[0], text[1:]

    if tag == TAG_UNDEFINED:
        return UNDEFINED
    if tag == TAG_NULL:
        return None
    if tag == TAG_BOOLEAN:
        return content == "1"
    if tag == TAG_STRING:
        return content
    if tag == TAG_NUMBER:
        return _parse_number(content)
    if tag == TAG_DATE:
        try:
            return _EPOCH + timedelta(milliseconds=int(content))
        except (ValueError, OverflowError) as e:
            raise CodecError(detail=f"malformed timestamp: {content!r}") from e
    if tag == TAG_OBJECT:
        try:
            return _revive(json.loads(content))
        except json.JSONDecodeError as e:
            raise CodecError(detail="malformed structured value") from e

    raise CodecError(detail=f"unknown type tag: {tag!r}")


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise CodecError(detail=f"naive datetime cannot be stored: {value.isoformat()}")
    return value


def _to_epoch_ms(value: datetime) -> int:
    value = _require_aware(value)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def _parse_number(content: str) -> int | float:
    if _INTEGER.match(content):
        return int(content)
    try:
        return float(content)
    except ValueError as e:
        raise CodecError(detail=f"malformed number: {content!r}") from e


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if isinstance(value, tuple):
        return list(value)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return _require_aware(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _revive(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _revive(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_revive(v) for v in value]
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value
