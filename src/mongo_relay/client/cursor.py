"""
Cursor - Immutable query builder over the relay.

Each modifier returns a new cursor holding a frozen ``FindOptions``
snapshot, so a cursor can be shared and refined without affecting other
holders. Nothing is sent until ``to_list``, ``stream`` or ``async for``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from ..protocol.operations import FindOptions, OperationName, RelayRequest, normalize_sort

if TYPE_CHECKING:
    from .connection import RelayConnection, RequestOptions
    from ..types import Filter, Projection

__all__ = ["Cursor", "projection_document"]


def projection_document(projection: Projection) -> dict[str, Any] | None:
    """Convert a list of field names to a projection document."""
    if projection is None:
        return None
    if isinstance(projection, Mapping):
        return dict(projection)
    return {name: 1 for name in projection}


class Cursor:
    """
    Lazy, immutable find cursor.

    Example:
        cursor = collection.find({"status": "active"})
        recent = cursor.sort("created_at", -1).limit(10)

        docs = await recent.to_list()      # one buffered request
        async for doc in recent:           # one streamed request
            print(doc)

        # Leaving early: close the stream as soon as the block exits
        async with aclosing(recent.stream()) as docs:
            async for doc in docs:
                if doc["done"]:
                    break
    """

    __slots__ = ("_connection", "_collection", "_filter", "_options", "_request_options")

    def __init__(
        self,
        connection: RelayConnection,
        collection: str,
        filter: Filter | None = None,
        options: FindOptions | None = None,
        request_options: RequestOptions | None = None,
    ) -> None:
        self._connection = connection
        self._collection = collection
        self._filter: dict[str, Any] = dict(filter or {})
        self._options = options or FindOptions()
        self._request_options = request_options

    @property
    def collection_name(self) -> str:
        return self._collection

    @property
    def filter(self) -> dict[str, Any]:
        """Copy of the query filter."""
        return dict(self._filter)

    @property
    def options(self) -> FindOptions:
        """Frozen snapshot of the modifiers applied so far."""
        return self._options

    def _derive(self, **changes: Any) -> Cursor:
        return Cursor(
            self._connection,
            self._collection,
            self._filter,
            self._options.replace(**changes),
            self._request_options,
        )

    def sort(self, key_or_list: str | list[tuple[str, Any]] | Mapping[str, Any], direction: Any = 1) -> Cursor:
        """
        Return a cursor sorted by the given keys.

        Args:
            key_or_list: Field name, mapping or list of (field, direction) pairs
            direction: 1 / -1 or "asc" / "desc"; only used with a field name

        Raises:
            ValueError: For an invalid direction
        """
        return self._derive(sort=normalize_sort(key_or_list, direction))

    def limit(self, limit: int) -> Cursor:
        """
        Return a cursor returning at most ``limit`` documents.

        Raises:
            ValueError: If limit is not positive
        """
        return self._derive(limit=limit)

    def skip(self, skip: int) -> Cursor:
        """
        Return a cursor skipping the first ``skip`` documents.

        Raises:
            ValueError: If skip is negative
        """
        return self._derive(skip=skip)

    def project(self, projection: Projection) -> Cursor:
        """Return a cursor with a field projection."""
        return self._derive(project=projection_document(projection))

    def _request(self, operation: OperationName) -> RelayRequest:
        return RelayRequest.find(self._collection, self._filter, self._options, operation)

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        """
        Fetch all matching documents in one request.

        Args:
            length: Maximum number of documents to fetch

        Returns:
            List of documents
        """
        cursor = self
        if length is not None:
            current = self._options.limit
            cursor = self._derive(limit=length if current is None else min(current, length))
        result = await self._connection.execute(cursor._request(OperationName.FIND_TO_ARRAY), self._request_options)
        return list(result or [])

    async def stream(self) -> AsyncIterator[dict[str, Any]]:
        """
        Yield matching documents as the gateway streams them.

        The HTTP response stays open until the generator finishes or is
        closed. A consumer that may stop early should wrap the generator in
        ``contextlib.aclosing`` so the response (and the gateway cursor) is
        released when the block exits instead of at garbage collection.
        """
        records = self._connection.stream(self._request(OperationName.FIND_STREAM), self._request_options)
        async with aclosing(records):
            async for document in records:
                yield document

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self.stream()

    def __repr__(self) -> str:
        return f"Cursor(collection={self._collection!r}, filter={self._filter!r}, options={self._options.to_wire()!r})"
