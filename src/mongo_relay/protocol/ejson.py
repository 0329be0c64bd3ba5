"""
Extended JSON Encoding/Decoding for the relay protocol.

Values JSON cannot express natively (dates, ObjectIds, binary, UUIDs,
Decimal128, regular expressions, timestamps...) travel in MongoDB Relaxed
Extended JSON form, produced and parsed by ``bson.json_util``:

- ``{"$date": "2012-12-12T00:00:00Z"}``: datetime (UTC)
- ``{"$oid": "5f9c0b2b6c3b2e1d1c9d9b9b"}``: ObjectId
- ``{"$binary": {"base64": "aGVsbG8=", "subType": "00"}}``: bytes
- ``{"$numberDecimal": "1.10"}``: Decimal128

A user document that contains one of the reserved type keys is wrapped as
``{"$escape": {...}}`` before encoding, so the decoder keeps it as a plain
mapping instead of reading it as a typed value.

Every encoded payload is a single line of compact UTF-8 JSON, which lets the
same ``encode`` serve whole responses and individual NDJSON stream records.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from bson import json_util
from bson.binary import UuidRepresentation
from bson.errors import BSONError
from bson.json_util import JSONMode, JSONOptions

from ..exceptions import CodecError

ESCAPE = "$escape"

JSON_OPTIONS = JSONOptions(
    json_mode=JSONMode.RELAXED,
    tz_aware=True,
    tzinfo=UTC,
    uuid_representation=UuidRepresentation.STANDARD,
)

# Keys bson.json_util reads as a typed value
TYPE_KEYS = frozenset(
    {
        "$oid",
        "$date",
        "$binary",
        "$uuid",
        "$numberInt",
        "$numberLong",
        "$numberDouble",
        "$numberDecimal",
        "$timestamp",
        "$regex",
        "$regularExpression",
        "$code",
        "$symbol",
        "$ref",
        "$dbPointer",
        "$minKey",
        "$maxKey",
        "$undefined",
    }
)

RESERVED_KEYS = TYPE_KEYS | {ESCAPE}

_DECODE_ERRORS = (BSONError, TypeError, ValueError, LookupError, OverflowError)


def _escape(value: Any) -> Any:
    """Wrap lookalike mappings and normalise values json_util would mangle."""
    if isinstance(value, Mapping):
        escaped: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CodecError(f"Document keys must be strings, got {type(key).__name__}")
            escaped[key] = _escape(item)
        if not RESERVED_KEYS.isdisjoint(escaped):
            return {ESCAPE: escaped}
        return escaped
    if isinstance(value, (list, tuple)):
        return [_escape(item) for item in value]
    if isinstance(value, datetime):
        # Naive datetimes are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def _dumps(value: Any) -> str:
    try:
        return json_util.dumps(
            _escape(value),
            json_options=JSON_OPTIONS,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except CodecError:
        raise
    except (BSONError, TypeError, ValueError, OverflowError) as e:
        raise CodecError(f"Cannot encode value to extended JSON: {e}") from e


def to_wire(value: Any) -> Any:
    """
    Convert a domain value into a plain JSON tree.

    Args:
        value: Document, array or scalar, possibly containing BSON values
            at any depth.

    Returns:
        A tree of dicts, lists, strings, numbers, booleans and None.

    Raises:
        CodecError: If the value contains a type with no wire form.
    """
    return json.loads(_dumps(value))


def from_wire(value: Any) -> Any:
    """
    Convert a plain JSON tree back into domain values.

    Decoding is top-down so an escaped mapping is never read as a typed
    value; everything else goes through ``json_util.object_hook``.

    Raises:
        CodecError: If a typed value is malformed.
    """
    if isinstance(value, list):
        return [from_wire(item) for item in value]
    if not isinstance(value, dict):
        return value
    if len(value) == 1 and ESCAPE in value:
        raw = value[ESCAPE]
        if not isinstance(raw, dict):
            raise CodecError(f"Invalid $escape value: {raw!r}")
        return {k: from_wire(v) for k, v in raw.items()}
    decoded = {k: from_wire(v) for k, v in value.items()}
    try:
        return json_util.object_hook(decoded, json_options=JSON_OPTIONS)
    except _DECODE_ERRORS as e:
        raise CodecError(f"Invalid extended JSON value {value!r}: {e}") from e


def encode(value: Any) -> bytes:
    """
    Encode a value to extended JSON bytes.

    Args:
        value: Python object to encode

    Returns:
        Compact single-line UTF-8 JSON
    """
    return _dumps(value).encode("utf-8")


def decode(data: bytes | str) -> Any:
    """
    Decode extended JSON bytes to Python objects.

    Args:
        data: UTF-8 JSON bytes (or an already decoded string)

    Returns:
        Decoded Python object
    """
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise CodecError(f"Invalid extended JSON: {e}") from e
    return from_wire(raw)
