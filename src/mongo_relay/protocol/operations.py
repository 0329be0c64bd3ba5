"""
Relay operation names, request messages and query modifiers.

The set of operations is closed: the gateway dispatches on ``OperationName``
through an explicit table and answers any other name with an
``Unknown operation`` envelope.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import ProtocolError


class OperationName(StrEnum):
    """Operations the gateway knows how to run."""

    # Find family, body is {filter, opts}
    FIND = "find"
    FIND_TO_ARRAY = "findToArray"
    FIND_STREAM = "findStream"

    # Reads
    FIND_ONE = "findOne"
    COUNT_DOCUMENTS = "countDocuments"
    ESTIMATED_DOCUMENT_COUNT = "estimatedDocumentCount"
    DISTINCT = "distinct"
    AGGREGATE = "aggregate"

    # Writes
    INSERT_ONE = "insertOne"
    INSERT_MANY = "insertMany"
    UPDATE_ONE = "updateOne"
    UPDATE_MANY = "updateMany"
    REPLACE_ONE = "replaceOne"
    DELETE_ONE = "deleteOne"
    DELETE_MANY = "deleteMany"
    FIND_ONE_AND_UPDATE = "findOneAndUpdate"
    FIND_ONE_AND_REPLACE = "findOneAndReplace"
    FIND_ONE_AND_DELETE = "findOneAndDelete"
    BULK_WRITE = "bulkWrite"

    @classmethod
    def parse(cls, name: str) -> "OperationName | None":
        """Return the operation for a wire name, or None if it is unknown."""
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def is_find_family(self) -> bool:
        """True for operations whose body is ``{filter, opts}``."""
        return self in _FIND_FAMILY

    @property
    def is_cacheable(self) -> bool:
        """True for reads an HTTP cache may serve."""
        return self in _CACHEABLE


_FIND_FAMILY = frozenset({OperationName.FIND, OperationName.FIND_TO_ARRAY, OperationName.FIND_STREAM})
_CACHEABLE = frozenset(
    {
        OperationName.FIND,
        OperationName.FIND_ONE,
        OperationName.COUNT_DOCUMENTS,
        OperationName.ESTIMATED_DOCUMENT_COUNT,
    }
)

_DIRECTIONS = {
    "asc": 1,
    "ascending": 1,
    "desc": -1,
    "descending": -1,
}


def normalize_direction(direction: Any) -> int:
    """
    Normalise a sort direction to 1 or -1.

    Raises:
        ValueError: For anything other than 1, -1 or asc/desc spellings.
    """
    if isinstance(direction, str):
        key = direction.strip().lower()
        if key in _DIRECTIONS:
            return _DIRECTIONS[key]
    elif isinstance(direction, int) and not isinstance(direction, bool) and direction in (1, -1):
        return direction
    raise ValueError(f"Invalid sort direction: {direction!r}")


def normalize_sort(key_or_list: Any, direction: Any = 1) -> tuple[tuple[str, int], ...]:
    """
    Normalise the sort shapes a caller may use.

    Accepts a field name (with ``direction``), a mapping of field to
    direction, a sequence of ``(field, direction)`` pairs, or the
    ``{"sort": field, "direction": dir}`` shape older clients send.
    """
    if isinstance(key_or_list, str):
        return ((key_or_list, normalize_direction(direction)),)
    if isinstance(key_or_list, Mapping):
        if "sort" in key_or_list and set(key_or_list) <= {"sort", "direction"}:
            return normalize_sort(key_or_list["sort"], key_or_list.get("direction") or 1)
        return tuple((str(k), normalize_direction(v)) for k, v in key_or_list.items())
    if isinstance(key_or_list, Sequence):
        pairs: list[tuple[str, int]] = []
        for item in key_or_list:
            if isinstance(item, str):
                pairs.append((item, 1))
            elif isinstance(item, Sequence) and len(item) == 2 and isinstance(item[0], str):
                pairs.append((item[0], normalize_direction(item[1])))
            else:
                raise ValueError(f"Invalid sort specification: {item!r}")
        return tuple(pairs)
    raise ValueError(f"Invalid sort specification: {key_or_list!r}")


class FindOptions(BaseModel):
    """
    Frozen snapshot of cursor modifiers.

    Attributes:
        sort: Ordered ``(field, direction)`` pairs, direction 1 or -1
        limit: Maximum number of documents, absent for unbounded
        skip: Number of documents to skip
        project: Projection document
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sort: tuple[tuple[str, int], ...] | None = None
    limit: int | None = Field(default=None, gt=0)
    skip: int | None = Field(default=None, ge=0)
    project: dict[str, Any] | None = None

    @field_validator("sort", mode="before")
    @classmethod
    def _normalize_sort(cls, value: Any) -> Any:
        if value is None:
            return None
        return normalize_sort(value)

    def replace(self, **changes: Any) -> "FindOptions":
        """Return a validated copy with some modifiers changed."""
        data = self.model_dump(exclude_none=True)
        data.update(changes)
        return type(self).model_validate(data)

    def to_wire(self) -> dict[str, Any]:
        """Convert to the ``opts`` payload, omitting unset modifiers."""
        data = self.model_dump(exclude_none=True)
        if self.sort is not None:
            data["sort"] = [[name, direction] for name, direction in self.sort]
        return data

    @classmethod
    def from_wire(cls, data: Any) -> "FindOptions":
        """Parse the ``opts`` payload. Raises ValueError on invalid modifiers."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError(f"Find options must be an object, got {type(data).__name__}")
        return cls.model_validate(dict(data))


@dataclass(frozen=True)
class RelayRequest:
    """
    One relayed operation.

    Attributes:
        operation: Operation name
        collection: Target collection name
        arguments: ``{"filter", "opts"}`` for the find family, a positional
            list for every other operation
    """

    operation: OperationName
    collection: str
    arguments: Any = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.collection:
            raise ProtocolError("Collection name must not be empty")

    def query_params(self) -> dict[str, str]:
        """Query string parameters identifying the operation."""
        return {"coll": self.collection, "op": self.operation.value}

    @classmethod
    def find(
        cls,
        collection: str,
        filter: Mapping[str, Any] | None = None,
        options: FindOptions | None = None,
        operation: OperationName = OperationName.FIND_TO_ARRAY,
    ) -> "RelayRequest":
        """Create a find-family request."""
        if not operation.is_find_family:
            raise ValueError(f"{operation.value} is not a find operation")
        payload = {
            "filter": dict(filter or {}),
            "opts": (options or FindOptions()).to_wire(),
        }
        return cls(operation=operation, collection=collection, arguments=payload)

    @classmethod
    def positional(cls, operation: OperationName, collection: str, *args: Any) -> "RelayRequest":
        """Create a request with positional arguments, trailing Nones dropped."""
        arguments = list(args)
        while arguments and arguments[-1] is None:
            arguments.pop()
        return cls(operation=operation, collection=collection, arguments=arguments)
