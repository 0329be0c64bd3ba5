"""Tests for the extended JSON codec."""

import json
import re
import uuid
from datetime import UTC, datetime, timedelta, timezone

import pytest
from bson import Decimal128, Int64, ObjectId, Regex, Timestamp

from mongo_relay.exceptions import CodecError
from mongo_relay.protocol import ejson


class TestToWire:
    """Tests for converting domain values to JSON trees."""

    def test_scalars_pass_through(self) -> None:
        """JSON scalars are unchanged."""
        for value in (None, True, 0, 1.5, "text"):
            assert ejson.to_wire(value) == value

    def test_datetime(self) -> None:
        """Datetimes become $date ISO strings in UTC."""
        value = datetime(2012, 12, 12, tzinfo=UTC)
        assert ejson.to_wire(value) == {"$date": "2012-12-12T00:00:00Z"}

    def test_naive_datetime_is_utc(self) -> None:
        """Naive datetimes are treated as UTC."""
        assert ejson.to_wire(datetime(2020, 1, 1, 8, 30)) == {"$date": "2020-01-01T08:30:00Z"}

    def test_offset_datetime_converted_to_utc(self) -> None:
        """Aware datetimes are normalised to UTC."""
        value = datetime(2020, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ejson.to_wire(value) == {"$date": "2020-01-01T08:00:00Z"}

    def test_milliseconds_kept(self) -> None:
        value = datetime(2020, 1, 1, 0, 0, 0, 250000, tzinfo=UTC)
        assert ejson.to_wire(value) == {"$date": "2020-01-01T00:00:00.250Z"}

    def test_object_id(self) -> None:
        """ObjectIds become $oid hex strings."""
        oid = ObjectId("5f9c0b2b6c3b2e1d1c9d9b9b")
        assert ejson.to_wire(oid) == {"$oid": "5f9c0b2b6c3b2e1d1c9d9b9b"}

    def test_bytes(self) -> None:
        """Bytes use the canonical $binary form."""
        assert ejson.to_wire(b"hello") == {"$binary": {"base64": "aGVsbG8=", "subType": "00"}}

    def test_uuid(self) -> None:
        """UUIDs are standard binary subtype 4."""
        value = uuid.UUID("00112233-4455-6677-8899-aabbccddeeff")
        assert ejson.to_wire(value) == {"$binary": {"base64": "ABEiM0RVZneImaq7zN3u/w==", "subType": "04"}}

    def test_decimal128(self) -> None:
        assert ejson.to_wire(Decimal128("1.10")) == {"$numberDecimal": "1.10"}

    def test_relaxed_numbers(self) -> None:
        """Int64 values stay plain JSON numbers."""
        assert ejson.to_wire({"n": Int64(7)}) == {"n": 7}

    def test_nested(self) -> None:
        """Extended values are converted at any depth."""
        oid = ObjectId()
        value = {"a": [{"when": datetime(2021, 5, 1, tzinfo=UTC)}, (1, oid)]}
        assert ejson.to_wire(value) == {
            "a": [{"when": {"$date": "2021-05-01T00:00:00Z"}}, [1, {"$oid": str(oid)}]],
        }

    def test_lookalike_document_is_escaped(self) -> None:
        """A document shaped like a typed value is wrapped in $escape."""
        assert ejson.to_wire({"$date": "not a date"}) == {"$escape": {"$date": "not a date"}}

    def test_escape_key_itself_is_escaped(self) -> None:
        """A document whose only key is $escape is escaped too."""
        assert ejson.to_wire({"$escape": 1}) == {"$escape": {"$escape": 1}}

    def test_reserved_key_among_others_escaped(self) -> None:
        """Any reserved type key marks the document for escaping."""
        assert ejson.to_wire({"$oid": "x", "other": 1}) == {"$escape": {"$oid": "x", "other": 1}}

    def test_query_operators_not_escaped(self) -> None:
        """Ordinary query operators are not type keys."""
        assert ejson.to_wire({"age": {"$gt": 30}}) == {"age": {"$gt": 30}}

    def test_non_string_key_rejected(self) -> None:
        """Mapping keys must be strings."""
        with pytest.raises(CodecError, match="keys must be strings"):
            ejson.to_wire({1: "a"})

    def test_unsupported_type_rejected(self) -> None:
        """Types with no wire form fail."""
        with pytest.raises(CodecError, match="Cannot encode"):
            ejson.to_wire({"value": object()})


class TestFromWire:
    """Tests for converting JSON trees back to domain values."""

    def test_date_string(self) -> None:
        """$date ISO strings decode to aware UTC datetimes."""
        value = ejson.from_wire({"$date": "2012-12-12T00:00:00Z"})
        assert value == datetime(2012, 12, 12, tzinfo=UTC)
        assert value.tzinfo is not None

    def test_date_number_long(self) -> None:
        """Canonical $numberLong milliseconds are accepted."""
        assert ejson.from_wire({"$date": {"$numberLong": "1000"}}) == datetime(1970, 1, 1, 0, 0, 1, tzinfo=UTC)

    def test_date_integer_millis(self) -> None:
        """Integer milliseconds are accepted."""
        assert ejson.from_wire({"$date": 86_400_000}) == datetime(1970, 1, 2, tzinfo=UTC)

    def test_object_id(self) -> None:
        """$oid decodes to ObjectId."""
        assert ejson.from_wire({"$oid": "5f9c0b2b6c3b2e1d1c9d9b9b"}) == ObjectId("5f9c0b2b6c3b2e1d1c9d9b9b")

    def test_binary(self) -> None:
        """Subtype 0 $binary decodes to bytes."""
        assert ejson.from_wire({"$binary": {"base64": "aGVsbG8=", "subType": "00"}}) == b"hello"

    def test_canonical_numbers(self) -> None:
        assert ejson.from_wire({"n": {"$numberInt": "5"}}) == {"n": 5}
        assert ejson.from_wire({"$numberDecimal": "2.50"}) == Decimal128("2.50")

    def test_escaped_document_kept_literal(self) -> None:
        """Escaped documents decode to plain mappings."""
        assert ejson.from_wire({"$escape": {"$date": "not a date"}}) == {"$date": "not a date"}

    def test_escaped_values_still_decoded(self) -> None:
        """Values inside an escaped document are decoded."""
        decoded = ejson.from_wire({"$escape": {"$oid": {"$oid": "5f9c0b2b6c3b2e1d1c9d9b9b"}}})
        assert decoded == {"$oid": ObjectId("5f9c0b2b6c3b2e1d1c9d9b9b")}

    @pytest.mark.parametrize(
        "payload",
        [
            {"$date": "yesterday"},
            {"$date": [1]},
            {"$oid": "xyz"},
            {"$oid": 12},
            {"$binary": "%%%"},
            {"$escape": "nope"},
        ],
    )
    def test_malformed_typed_values(self, payload: dict) -> None:
        """Malformed typed values raise CodecError."""
        with pytest.raises(CodecError):
            ejson.from_wire(payload)


class TestEncodeDecode:
    """Tests for whole-payload encoding."""

    def test_single_line_compact(self) -> None:
        """Payloads are compact and never contain a newline."""
        data = ejson.encode({"text": "line1\nline2", "n": [1, 2]})
        assert b"\n" not in data
        assert data == b'{"text":"line1\\nline2","n":[1,2]}'

    def test_utf8(self) -> None:
        """Non-ASCII text is written as UTF-8."""
        assert ejson.encode({"name": "Zoë"}) == '{"name":"Zoë"}'.encode("utf-8")

    def test_round_trip_document(self) -> None:
        """A document with common BSON types survives a round trip."""
        doc = {
            "_id": ObjectId(),
            "created": datetime(2024, 2, 29, 12, 0, 0, 123000, tzinfo=UTC),
            "blob": b"\x00\x01\xff",
            "nested": {"when": [datetime(1999, 12, 31, 23, 59, 59, tzinfo=UTC)]},
            "literal": {"$oid": "not-an-id"},
        }
        assert ejson.decode(ejson.encode(doc)) == doc

    def test_decimal128_round_trip(self) -> None:
        doc = {"price": Decimal128("1.10")}
        decoded = ejson.decode(ejson.encode(doc))
        assert decoded == doc
        assert str(decoded["price"]) == "1.10"

    def test_uuid_round_trip(self) -> None:
        value = uuid.uuid4()
        assert ejson.decode(ejson.encode({"key": value})) == {"key": value}

    def test_regex_and_timestamp_round_trip(self) -> None:
        doc = {"pattern": Regex("^a", "i"), "ts": Timestamp(1700000000, 3)}
        decoded = ejson.decode(ejson.encode(doc))
        assert decoded["ts"] == Timestamp(1700000000, 3)
        assert isinstance(decoded["pattern"], Regex)
        assert decoded["pattern"].pattern == "^a"
        assert decoded["pattern"].flags == re.IGNORECASE

    def test_regex_query_operator_kept_literal(self) -> None:
        """A $regex query operator reaches the driver unchanged."""
        query = {"name": {"$regex": "^a", "$options": "i"}}
        assert ejson.decode(ejson.encode(query)) == query

    def test_decode_accepts_str(self) -> None:
        """Decoding accepts an already decoded string."""
        assert ejson.decode('{"a":{"$oid":"5f9c0b2b6c3b2e1d1c9d9b9b"}}') == {"a": ObjectId("5f9c0b2b6c3b2e1d1c9d9b9b")}

    def test_invalid_json(self) -> None:
        """Invalid JSON raises CodecError."""
        with pytest.raises(CodecError, match="Invalid extended JSON"):
            ejson.decode(b"{not json")

    def test_invalid_utf8(self) -> None:
        """Invalid UTF-8 raises CodecError."""
        with pytest.raises(CodecError):
            ejson.decode(b'"\xff\xfe"')

    def test_wire_is_plain_json(self) -> None:
        """The encoded form is readable by any JSON parser."""
        raw = json.loads(ejson.encode({"at": datetime(2000, 1, 1, tzinfo=UTC)}))
        assert raw == {"at": {"$date": "2000-01-01T00:00:00Z"}}
