"""
Codec selection by content type.

The gateway branches on the request ``Content-Type`` to pick the decoder and
answers buffered operations with the same codec.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import cbor as cbor_module
from . import ejson

JSON_CONTENT_TYPE = "application/json"
CBOR_CONTENT_TYPE = "application/cbor"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


@dataclass(frozen=True)
class Codec:
    """
    A wire codec bound to the content type it is announced with.

    Attributes:
        content_type: MIME type used in ``Content-Type`` / ``Accept``
        encode: Value -> bytes
        decode: bytes -> Value
    """

    content_type: str
    encode: Callable[[Any], bytes]
    decode: Callable[[bytes], Any]


JSON_CODEC = Codec(JSON_CONTENT_TYPE, ejson.encode, ejson.decode)
CBOR_CODEC = Codec(CBOR_CONTENT_TYPE, cbor_module.encode, cbor_module.decode)

_CODECS = {codec.content_type: codec for codec in (JSON_CODEC, CBOR_CODEC)}


def media_type(content_type: str | None) -> str:
    """Strip parameters (``; charset=utf-8``) and normalise case."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def codec_for(content_type: str | None) -> Codec | None:
    """
    Look up the codec for a content type.

    Returns:
        The matching codec, or None if the content type is not supported.
    """
    return _CODECS.get(media_type(content_type))
