"""
Collection - MongoDB collection operations over the relay.

Provides a PyMongo-style async Collection whose every call becomes one
relayed operation. Driver options are given as snake_case keyword
arguments and sent under their camelCase wire names.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from ..protocol.operations import FindOptions, OperationName, RelayRequest, normalize_sort
from ..types import BulkWriteResult, DeleteResult, InsertManyResult, InsertOneResult, UpdateResult
from .cursor import Cursor, projection_document

if TYPE_CHECKING:
    from ..types import Document, Filter, Projection, Update
    from .connection import RelayConnection, RequestOptions
    from .database import Database

logger = logging.getLogger(__name__)

__all__ = ["Collection"]

# Python keyword argument -> wire option name
_OPTION_NAMES = {
    "projection": "projection",
    "sort": "sort",
    "skip": "skip",
    "limit": "limit",
    "upsert": "upsert",
    "return_document": "returnDocument",
    "array_filters": "arrayFilters",
    "ordered": "ordered",
    "bypass_document_validation": "bypassDocumentValidation",
    "hint": "hint",
    "collation": "collation",
    "comment": "comment",
    "max_time_ms": "maxTimeMS",
    "allow_disk_use": "allowDiskUse",
    "batch_size": "batchSize",
    "let": "let",
}


def wire_options(**kwargs: Any) -> dict[str, Any] | None:
    """
    Build the wire options document from driver-style keyword arguments.

    Arguments left as None are omitted. Returns None when nothing is set.

    Raises:
        TypeError: For an unknown keyword argument
    """
    options: dict[str, Any] = {}
    for key, value in kwargs.items():
        if key not in _OPTION_NAMES:
            raise TypeError(f"Unexpected keyword argument '{key}'")
        if value is None:
            continue
        if key == "sort":
            value = [[name, direction] for name, direction in normalize_sort(value)]
        elif key == "projection":
            value = projection_document(value)
        elif key == "return_document" and isinstance(value, bool):
            # pymongo.ReturnDocument.AFTER is True
            value = "after" if value else "before"
        options[_OPTION_NAMES[key]] = value
    return options or None


class Collection:
    """
    MongoDB collection with async operations relayed over HTTP.

    Example:
        users = db["users"]

        result = await users.insert_one({"name": "Alice"})
        user = await users.find_one({"_id": result.inserted_id})

        async for user in users.find({"status": "active"}).sort("name"):
            print(user)

        await users.update_one({"name": "Alice"}, {"$set": {"status": "vip"}})
    """

    __slots__ = ("_connection", "_database", "_name")

    def __init__(self, connection: RelayConnection, database: Database, name: str) -> None:
        """
        Initialize a collection.

        Args:
            connection: Relay connection used for every call
            database: Parent database
            name: Collection name
        """
        if not name:
            raise ValueError("Collection name must not be empty")
        self._connection = connection
        self._database = database
        self._name = name

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._name

    @property
    def full_name(self) -> str:
        """Get the full collection name (database.collection)."""
        return f"{self._database.name}.{self._name}"

    @property
    def database(self) -> Database:
        """Get the parent database."""
        return self._database

    async def _call(
        self,
        operation: OperationName,
        *args: Any,
        request_options: RequestOptions | None = None,
    ) -> Any:
        request = RelayRequest.positional(operation, self._name, *args)
        return await self._connection.execute(request, request_options)

    # Reads

    def find(
        self,
        filter: Filter | None = None,
        projection: Projection = None,
        *,
        sort: Any = None,
        limit: int | None = None,
        skip: int | None = None,
        request_options: RequestOptions | None = None,
    ) -> Cursor:
        """
        Create a cursor for the matching documents.

        No request is sent until the cursor is consumed.

        Raises:
            ValueError: For invalid modifiers
        """
        options = FindOptions(
            sort=sort,
            limit=limit,
            skip=skip,
            project=projection_document(projection),
        )
        return Cursor(self._connection, self._name, filter, options, request_options)

    async def find_one(
        self,
        filter: Filter | None = None,
        projection: Projection = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """
        Find a single document.

        Returns:
            The first matching document, or None
        """
        options = wire_options(projection=projection, **kwargs)
        return await self._call(OperationName.FIND_ONE, dict(filter or {}), options, request_options=request_options)

    async def count_documents(
        self,
        filter: Filter | None = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> int:
        """Count documents matching the filter."""
        options = wire_options(**kwargs)
        result = await self._call(
            OperationName.COUNT_DOCUMENTS, dict(filter or {}), options, request_options=request_options
        )
        return int(result)

    async def estimated_document_count(
        self,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> int:
        """Estimate the number of documents from collection metadata."""
        result = await self._call(
            OperationName.ESTIMATED_DOCUMENT_COUNT, wire_options(**kwargs), request_options=request_options
        )
        return int(result)

    async def distinct(
        self,
        key: str,
        filter: Filter | None = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> list[Any]:
        """Get the distinct values of a field."""
        result = await self._call(
            OperationName.DISTINCT, key, dict(filter or {}), wire_options(**kwargs), request_options=request_options
        )
        return list(result or [])

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> list[dict[str, Any]]:
        """
        Run an aggregation pipeline.

        Returns:
            All result documents
        """
        stages = [dict(stage) for stage in pipeline]
        result = await self._call(OperationName.AGGREGATE, stages, wire_options(**kwargs), request_options=request_options)
        return list(result or [])

    # Writes

    async def insert_one(
        self,
        document: Document,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> InsertOneResult:
        """
        Insert a single document.

        Returns:
            InsertOneResult with the inserted ID
        """
        result = await self._call(
            OperationName.INSERT_ONE, dict(document), wire_options(**kwargs), request_options=request_options
        )
        return InsertOneResult.from_result(result)

    async def insert_many(
        self,
        documents: Sequence[Document],
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> InsertManyResult:
        """
        Insert multiple documents.

        Returns:
            InsertManyResult with the inserted IDs in input order
        """
        docs = [dict(doc) for doc in documents]
        if not docs:
            raise ValueError("documents must be a non-empty list")
        result = await self._call(OperationName.INSERT_MANY, docs, wire_options(**kwargs), request_options=request_options)
        return InsertManyResult.from_result(result)

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        upsert: bool | None = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        """Update the first document matching the filter."""
        result = await self._call(
            OperationName.UPDATE_ONE,
            dict(filter),
            _update_document(update),
            wire_options(upsert=upsert, **kwargs),
            request_options=request_options,
        )
        return UpdateResult.from_result(result)

    async def update_many(
        self,
        filter: Filter,
        update: Update,
        upsert: bool | None = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        """Update every document matching the filter."""
        result = await self._call(
            OperationName.UPDATE_MANY,
            dict(filter),
            _update_document(update),
            wire_options(upsert=upsert, **kwargs),
            request_options=request_options,
        )
        return UpdateResult.from_result(result)

    async def replace_one(
        self,
        filter: Filter,
        replacement: Document,
        upsert: bool | None = None,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> UpdateResult:
        """Replace the first document matching the filter."""
        result = await self._call(
            OperationName.REPLACE_ONE,
            dict(filter),
            dict(replacement),
            wire_options(upsert=upsert, **kwargs),
            request_options=request_options,
        )
        return UpdateResult.from_result(result)

    async def delete_one(
        self,
        filter: Filter,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> DeleteResult:
        """Delete the first document matching the filter."""
        result = await self._call(
            OperationName.DELETE_ONE, dict(filter), wire_options(**kwargs), request_options=request_options
        )
        return DeleteResult.from_result(result)

    async def delete_many(
        self,
        filter: Filter,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> DeleteResult:
        """Delete every document matching the filter."""
        result = await self._call(
            OperationName.DELETE_MANY, dict(filter), wire_options(**kwargs), request_options=request_options
        )
        return DeleteResult.from_result(result)

    async def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """
        Update a document and return it.

        Returns the document as it was before the update unless
        ``return_document=ReturnDocument.AFTER`` (or "after") is given.
        """
        return await self._call(
            OperationName.FIND_ONE_AND_UPDATE,
            dict(filter),
            _update_document(update),
            wire_options(**kwargs),
            request_options=request_options,
        )

    async def find_one_and_replace(
        self,
        filter: Filter,
        replacement: Document,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Replace a document and return it (before the replacement by default)."""
        return await self._call(
            OperationName.FIND_ONE_AND_REPLACE,
            dict(filter),
            dict(replacement),
            wire_options(**kwargs),
            request_options=request_options,
        )

    async def find_one_and_delete(
        self,
        filter: Filter,
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        """Delete a document and return it."""
        return await self._call(
            OperationName.FIND_ONE_AND_DELETE, dict(filter), wire_options(**kwargs), request_options=request_options
        )

    async def bulk_write(
        self,
        requests: Sequence[Mapping[str, Any]],
        *,
        request_options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> BulkWriteResult:
        """
        Run several writes in one operation.

        Each request is a single-key document in the driver's wire shape,
        e.g. ``{"insertOne": {"document": {...}}}`` or
        ``{"updateOne": {"filter": {...}, "update": {...}, "upsert": True}}``.
        """
        operations = [dict(request) for request in requests]
        if not operations:
            raise ValueError("requests must be a non-empty list")
        result = await self._call(
            OperationName.BULK_WRITE, operations, wire_options(**kwargs), request_options=request_options
        )
        return BulkWriteResult.from_result(result)

    async def create_index(self, keys: Any, **kwargs: Any) -> None:
        """Index management is not relayed; logs a warning and does nothing."""
        logger.warning(f"create_index on {self._name} is not supported over the relay and was ignored")

    def __repr__(self) -> str:
        return f"Collection(database={self._database.name!r}, name={self._name!r})"


def _update_document(update: Update) -> Any:
    if isinstance(update, Mapping):
        return dict(update)
    return [dict(stage) for stage in update]
