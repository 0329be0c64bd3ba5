"""
MongoDB Relay Protocol Module.

Implements the wire protocol shared by the gateway and the client:
type-preserving codecs (extended JSON and CBOR), the result envelope and
the closed set of relay operations.
"""

from . import ejson
from .cbor import TAG_OBJECT_ID
from .codec import (
    CBOR_CODEC,
    CBOR_CONTENT_TYPE,
    JSON_CODEC,
    JSON_CONTENT_TYPE,
    NDJSON_CONTENT_TYPE,
    Codec,
    codec_for,
    media_type,
)
from .envelope import Envelope, ErrorInfo, capture, unwrap
from .operations import FindOptions, OperationName, RelayRequest

__all__ = [
    # Codecs
    "ejson",
    "Codec",
    "JSON_CODEC",
    "CBOR_CODEC",
    "JSON_CONTENT_TYPE",
    "CBOR_CONTENT_TYPE",
    "NDJSON_CONTENT_TYPE",
    "codec_for",
    "media_type",
    # CBOR
    "TAG_OBJECT_ID",
    # Envelope
    "Envelope",
    "ErrorInfo",
    "capture",
    "unwrap",
    # Operations
    "OperationName",
    "RelayRequest",
    "FindOptions",
]
