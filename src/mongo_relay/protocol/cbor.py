"""
CBOR Encoding/Decoding for the relay protocol.

Alternate codec used when a deployment sends ``application/cbor`` bodies.
CBOR carries type tags out of band, so unlike extended JSON it never needs
to escape documents that look like tagged values.

Tags:
- 0 (standard): DateTime as an ISO 8601 string; naive datetimes are UTC
- TAG_OBJECT_ID: ObjectId as its 12 raw bytes
- byte strings are native CBOR and need no tag
"""

from __future__ import annotations

from datetime import UTC
from typing import Any

import cbor2
from bson import ObjectId
from cbor2 import CBORTag

from ..exceptions import CodecError

# Private tag from the first-come-first-served range, no registered ObjectId tag exists
TAG_OBJECT_ID = 55001


def _cbor_default_encoder(encoder: Any, value: Any) -> None:
    """
    Custom CBOR encoder for the extended value types.

    Raises:
        CodecError: For any type with no wire form
    """
    if isinstance(value, ObjectId):
        encoder.encode(CBORTag(TAG_OBJECT_ID, value.binary))
    else:
        raise CodecError(f"Cannot CBOR encode {type(value).__name__}")


def _cbor_tag_decoder(decoder: Any, tag: Any) -> Any:
    """Custom CBOR tag decoder for the extended value types."""
    if tag.tag == TAG_OBJECT_ID:
        if isinstance(tag.value, bytes) and len(tag.value) == 12:
            return ObjectId(tag.value)
        raise CodecError(f"Invalid ObjectId payload: {tag.value!r}")
    raise CodecError(f"Unknown CBOR tag: {tag.tag}")


def encode(data: Any) -> bytes:
    """
    Encode data to CBOR bytes.

    Args:
        data: Python object to encode

    Returns:
        CBOR-encoded bytes
    """
    try:
        result: bytes = cbor2.dumps(data, default=_cbor_default_encoder, timezone=UTC)
    except CodecError:
        raise
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise CodecError(f"Cannot CBOR encode value: {e}") from e
    return result


def decode(data: bytes) -> Any:
    """
    Decode CBOR bytes to Python objects.

    Args:
        data: CBOR-encoded bytes

    Returns:
        Decoded Python object
    """
    try:
        return cbor2.loads(data, tag_hook=_cbor_tag_decoder)
    except CodecError:
        raise
    except (cbor2.CBORDecodeError, TypeError, ValueError) as e:
        raise CodecError(f"Invalid CBOR payload: {e}") from e
