"""
Type definitions for relay operation results.

Provides typed wrappers around the write results the gateway returns,
instead of raw dicts. Wire keys follow the MongoDB driver's camelCase names.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


def _as_mapping(data: Any) -> Mapping[str, Any]:
    return data if isinstance(data, Mapping) else {}


@dataclass
class InsertOneResult:
    """
    Result of an insert_one operation.

    Attributes:
        inserted_id: The _id of the inserted document
        acknowledged: Whether the write was acknowledged
    """

    inserted_id: Any = None
    acknowledged: bool = True

    @classmethod
    def from_result(cls, data: Any) -> "InsertOneResult":
        """Parse from the operation's ``$result``."""
        data = _as_mapping(data)
        return cls(
            inserted_id=data.get("insertedId"),
            acknowledged=bool(data.get("acknowledged", True)),
        )


@dataclass
class InsertManyResult:
    """
    Result of an insert_many operation.

    Attributes:
        inserted_ids: The _ids of the inserted documents, in input order
        acknowledged: Whether the write was acknowledged
    """

    inserted_ids: list[Any] = field(default_factory=list)
    acknowledged: bool = True

    @classmethod
    def from_result(cls, data: Any) -> "InsertManyResult":
        """Parse from the operation's ``$result``."""
        data = _as_mapping(data)
        ids = data.get("insertedIds") or []
        if isinstance(ids, Mapping):
            ids = [ids[k] for k in sorted(ids, key=int)]
        return cls(inserted_ids=list(ids), acknowledged=bool(data.get("acknowledged", True)))

    @property
    def inserted_count(self) -> int:
        """Number of documents inserted."""
        return len(self.inserted_ids)


@dataclass
class UpdateResult:
    """
    Result of an update_one, update_many or replace_one operation.

    Attributes:
        matched_count: Number of documents matched
        modified_count: Number of documents modified
        upserted_id: The _id of the upserted document (if any)
        upserted_count: Number of documents upserted
        acknowledged: Whether the write was acknowledged
    """

    matched_count: int = 0
    modified_count: int = 0
    upserted_id: Any = None
    upserted_count: int = 0
    acknowledged: bool = True

    @classmethod
    def from_result(cls, data: Any) -> "UpdateResult":
        """Parse from the operation's ``$result``."""
        data = _as_mapping(data)
        return cls(
            matched_count=int(data.get("matchedCount", 0)),
            modified_count=int(data.get("modifiedCount", 0)),
            upserted_id=data.get("upsertedId"),
            upserted_count=int(data.get("upsertedCount", 0)),
            acknowledged=bool(data.get("acknowledged", True)),
        )

    @property
    def raw_result(self) -> dict[str, Any]:
        """Return raw result dict for compatibility."""
        return {
            "n": self.matched_count + self.upserted_count,
            "nModified": self.modified_count,
            "ok": 1.0 if self.acknowledged else 0.0,
        }


@dataclass
class DeleteResult:
    """
    Result of a delete_one or delete_many operation.

    Attributes:
        deleted_count: Number of documents deleted
        acknowledged: Whether the write was acknowledged
    """

    deleted_count: int = 0
    acknowledged: bool = True

    @classmethod
    def from_result(cls, data: Any) -> "DeleteResult":
        """Parse from the operation's ``$result``."""
        data = _as_mapping(data)
        return cls(
            deleted_count=int(data.get("deletedCount", 0)),
            acknowledged=bool(data.get("acknowledged", True)),
        )

    @property
    def raw_result(self) -> dict[str, Any]:
        """Return raw result dict for compatibility."""
        return {
            "n": self.deleted_count,
            "ok": 1.0 if self.acknowledged else 0.0,
        }


@dataclass
class BulkWriteResult:
    """
    Result of a bulk_write operation.

    Attributes:
        inserted_count: Number of documents inserted
        matched_count: Number of documents matched for update
        modified_count: Number of documents modified
        deleted_count: Number of documents deleted
        upserted_count: Number of documents upserted
        inserted_ids: Mapping of operation index to inserted _id
        upserted_ids: Mapping of operation index to upserted _id
        acknowledged: Whether the write was acknowledged
    """

    inserted_count: int = 0
    matched_count: int = 0
    modified_count: int = 0
    deleted_count: int = 0
    upserted_count: int = 0
    inserted_ids: dict[int, Any] = field(default_factory=dict)
    upserted_ids: dict[int, Any] = field(default_factory=dict)
    acknowledged: bool = True

    @classmethod
    def from_result(cls, data: Any) -> "BulkWriteResult":
        """Parse from the operation's ``$result``."""
        data = _as_mapping(data)
        return cls(
            inserted_count=int(data.get("insertedCount", 0)),
            matched_count=int(data.get("matchedCount", 0)),
            modified_count=int(data.get("modifiedCount", 0)),
            deleted_count=int(data.get("deletedCount", 0)),
            upserted_count=int(data.get("upsertedCount", 0)),
            inserted_ids={int(k): v for k, v in _as_mapping(data.get("insertedIds")).items()},
            upserted_ids={int(k): v for k, v in _as_mapping(data.get("upsertedIds")).items()},
            acknowledged=bool(data.get("acknowledged", True)),
        )


# Type aliases for clarity
Document = Mapping[str, Any]
Filter = Mapping[str, Any]
Update = Mapping[str, Any] | Sequence[Mapping[str, Any]]
Projection = Mapping[str, Any] | Sequence[str] | None
