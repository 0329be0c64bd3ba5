"""
Gateway operation table.

Maps every ``OperationName`` to a handler running it against an async
MongoDB collection (motor or pymongo's asyncio API) and normalising the
driver's result objects into plain documents the codecs can carry.

Handlers are called as ``handler(collection, *arguments)``; each spec
declares how many positional arguments it accepts.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.operations import DeleteMany, DeleteOne, InsertOne, ReplaceOne, UpdateMany, UpdateOne

from ..protocol.operations import FindOptions, OperationName, normalize_sort

Handler = Callable[..., Awaitable[Any]]

FIND_BODY = "find"
POSITIONAL_BODY = "positional"


@dataclass(frozen=True)
class OperationSpec:
    """
    Entry of the operation table.

    Attributes:
        name: Operation this entry serves
        handler: Coroutine function ``(collection, *args)``
        min_args: Minimum number of positional arguments
        max_args: Maximum number of positional arguments
        body: "find" for a {filter, opts} body, "positional" for an array
    """

    name: OperationName
    handler: Handler
    min_args: int = 0
    max_args: int = 0
    body: str = POSITIONAL_BODY

    def check_arity(self, arguments: list[Any]) -> None:
        """Raise TypeError if the argument count is outside the contract."""
        count = len(arguments)
        if count < self.min_args or count > self.max_args:
            if self.min_args == self.max_args:
                expected = str(self.min_args)
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise TypeError(f"{self.name.value} takes {expected} arguments, got {count}")


# Wire option names (camelCase, as sent by driver-shaped clients) to pymongo keywords
_FIND_ONE_OPTIONS = {
    "projection": "projection",
    "sort": "sort",
    "skip": "skip",
    "hint": "hint",
    "collation": "collation",
    "comment": "comment",
    "maxTimeMS": "max_time_ms",
    "allowDiskUse": "allow_disk_use",
    "let": "let",
}
_COUNT_OPTIONS = {
    "skip": "skip",
    "limit": "limit",
    "hint": "hint",
    "collation": "collation",
    "comment": "comment",
    "maxTimeMS": "maxTimeMS",
}
_ESTIMATED_COUNT_OPTIONS = {"comment": "comment", "maxTimeMS": "maxTimeMS"}
_DISTINCT_OPTIONS = {"collation": "collation", "comment": "comment", "maxTimeMS": "maxTimeMS"}
_AGGREGATE_OPTIONS = {
    "allowDiskUse": "allowDiskUse",
    "maxTimeMS": "maxTimeMS",
    "batchSize": "batchSize",
    "collation": "collation",
    "comment": "comment",
    "hint": "hint",
    "let": "let",
}
_INSERT_ONE_OPTIONS = {"bypassDocumentValidation": "bypass_document_validation", "comment": "comment"}
_INSERT_MANY_OPTIONS = {**_INSERT_ONE_OPTIONS, "ordered": "ordered"}
_DELETE_OPTIONS = {"collation": "collation", "hint": "hint", "let": "let", "comment": "comment"}
_REPLACE_OPTIONS = {**_DELETE_OPTIONS, "upsert": "upsert", "bypassDocumentValidation": "bypass_document_validation"}
_UPDATE_OPTIONS = {**_REPLACE_OPTIONS, "arrayFilters": "array_filters"}
_FIND_ONE_AND_DELETE_OPTIONS = {**_DELETE_OPTIONS, "projection": "projection", "sort": "sort"}
_FIND_ONE_AND_REPLACE_OPTIONS = {
    **_FIND_ONE_AND_DELETE_OPTIONS,
    "upsert": "upsert",
    "returnDocument": "return_document",
}
_FIND_ONE_AND_UPDATE_OPTIONS = {**_FIND_ONE_AND_REPLACE_OPTIONS, "arrayFilters": "array_filters"}
_BULK_WRITE_OPTIONS = {
    "ordered": "ordered",
    "bypassDocumentValidation": "bypass_document_validation",
    "comment": "comment",
    "let": "let",
}


def _return_document(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("before", "after"):
        return ReturnDocument.AFTER if value.lower() == "after" else ReturnDocument.BEFORE
    raise ValueError(f"returnDocument must be 'before' or 'after', got {value!r}")


def driver_kwargs(options: Any, allowed: Mapping[str, str]) -> dict[str, Any]:
    """
    Translate a wire options document into pymongo keyword arguments.

    Raises:
        TypeError: If options is not a document.
        ValueError: For an option the operation does not support.
    """
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        raise TypeError(f"Options must be a document, got {type(options).__name__}")
    kwargs: dict[str, Any] = {}
    for key, value in options.items():
        if key not in allowed:
            raise ValueError(f"Unsupported option: {key}")
        if key == "sort":
            value = list(normalize_sort(value))
        elif key == "returnDocument":
            value = _return_document(value)
        kwargs[allowed[key]] = value
    return kwargs


def _document(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{what} must be a document, got {type(value).__name__}")
    return dict(value)


def _filter(value: Any) -> dict[str, Any]:
    return {} if value is None else _document(value, "filter")


def _update(value: Any) -> Any:
    # Update documents or aggregation pipelines
    if isinstance(value, list):
        return [_document(stage, "update stage") for stage in value]
    return _document(value, "update")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# Result normalisation


def _insert_one_result(result: Any) -> dict[str, Any]:
    return {"acknowledged": result.acknowledged, "insertedId": result.inserted_id}


def _insert_many_result(result: Any) -> dict[str, Any]:
    ids = list(result.inserted_ids)
    return {"acknowledged": result.acknowledged, "insertedCount": len(ids), "insertedIds": ids}


def _update_result(result: Any) -> dict[str, Any]:
    if not result.acknowledged:
        return {"acknowledged": False}
    upserted_id = result.upserted_id
    return {
        "acknowledged": True,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedId": upserted_id,
        "upsertedCount": 0 if upserted_id is None else 1,
    }


def _delete_result(result: Any) -> dict[str, Any]:
    if not result.acknowledged:
        return {"acknowledged": False}
    return {"acknowledged": True, "deletedCount": result.deleted_count}


# Find family


def build_find_cursor(collection: Any, filter: Any, options: FindOptions) -> Any:
    """
    Create a driver cursor with every present modifier applied.

    The projection is passed at creation since driver cursors have no
    later projection hook; sort, limit and skip follow.
    """
    if options.project is not None:
        cursor = collection.find(_filter(filter), projection=options.project)
    else:
        cursor = collection.find(_filter(filter))
    if options.sort:
        cursor = cursor.sort(list(options.sort))
    if options.limit is not None:
        cursor = cursor.limit(options.limit)
    if options.skip is not None:
        cursor = cursor.skip(options.skip)
    return cursor


async def find_to_array(collection: Any, filter: Any = None, options: FindOptions | None = None) -> list[Any]:
    cursor = build_find_cursor(collection, filter, options or FindOptions())
    return list(await cursor.to_list(None))


async def find_stream(collection: Any, filter: Any = None, options: FindOptions | None = None) -> Any:
    """Open the cursor a record stream will pull from."""
    return build_find_cursor(collection, filter, options or FindOptions())


# Reads


async def find_one(collection: Any, filter: Any = None, options: Any = None) -> Any:
    return await collection.find_one(_filter(filter), **driver_kwargs(options, _FIND_ONE_OPTIONS))


async def count_documents(collection: Any, filter: Any = None, options: Any = None) -> int:
    return int(await collection.count_documents(_filter(filter), **driver_kwargs(options, _COUNT_OPTIONS)))


async def estimated_document_count(collection: Any, options: Any = None) -> int:
    return int(await collection.estimated_document_count(**driver_kwargs(options, _ESTIMATED_COUNT_OPTIONS)))


async def distinct(collection: Any, key: Any, filter: Any = None, options: Any = None) -> list[Any]:
    if not isinstance(key, str):
        raise TypeError(f"distinct key must be a string, got {type(key).__name__}")
    return list(await collection.distinct(key, _filter(filter), **driver_kwargs(options, _DISTINCT_OPTIONS)))


async def aggregate(collection: Any, pipeline: Any, options: Any = None) -> list[Any]:
    if not isinstance(pipeline, list):
        raise TypeError(f"pipeline must be an array, got {type(pipeline).__name__}")
    stages = [_document(stage, "pipeline stage") for stage in pipeline]
    # motor returns the cursor directly, pymongo's asyncio API returns a coroutine
    cursor = await _maybe_await(collection.aggregate(stages, **driver_kwargs(options, _AGGREGATE_OPTIONS)))
    return list(await cursor.to_list(None))


# Writes


async def insert_one(collection: Any, document: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.insert_one(_document(document, "document"), **driver_kwargs(options, _INSERT_ONE_OPTIONS))
    return _insert_one_result(result)


async def insert_many(collection: Any, documents: Any, options: Any = None) -> dict[str, Any]:
    if not isinstance(documents, list):
        raise TypeError(f"documents must be an array, got {type(documents).__name__}")
    docs = [_document(doc, "document") for doc in documents]
    result = await collection.insert_many(docs, **driver_kwargs(options, _INSERT_MANY_OPTIONS))
    return _insert_many_result(result)


async def update_one(collection: Any, filter: Any, update: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.update_one(_filter(filter), _update(update), **driver_kwargs(options, _UPDATE_OPTIONS))
    return _update_result(result)


async def update_many(collection: Any, filter: Any, update: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.update_many(_filter(filter), _update(update), **driver_kwargs(options, _UPDATE_OPTIONS))
    return _update_result(result)


async def replace_one(collection: Any, filter: Any, replacement: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.replace_one(
        _filter(filter),
        _document(replacement, "replacement"),
        **driver_kwargs(options, _REPLACE_OPTIONS),
    )
    return _update_result(result)


async def delete_one(collection: Any, filter: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.delete_one(_filter(filter), **driver_kwargs(options, _DELETE_OPTIONS))
    return _delete_result(result)


async def delete_many(collection: Any, filter: Any, options: Any = None) -> dict[str, Any]:
    result = await collection.delete_many(_filter(filter), **driver_kwargs(options, _DELETE_OPTIONS))
    return _delete_result(result)


async def find_one_and_update(collection: Any, filter: Any, update: Any, options: Any = None) -> Any:
    return await collection.find_one_and_update(
        _filter(filter),
        _update(update),
        **driver_kwargs(options, _FIND_ONE_AND_UPDATE_OPTIONS),
    )


async def find_one_and_replace(collection: Any, filter: Any, replacement: Any, options: Any = None) -> Any:
    return await collection.find_one_and_replace(
        _filter(filter),
        _document(replacement, "replacement"),
        **driver_kwargs(options, _FIND_ONE_AND_REPLACE_OPTIONS),
    )


async def find_one_and_delete(collection: Any, filter: Any, options: Any = None) -> Any:
    return await collection.find_one_and_delete(
        _filter(filter),
        **driver_kwargs(options, _FIND_ONE_AND_DELETE_OPTIONS),
    )


_BULK_UPDATE_FIELDS = {"upsert": "upsert", "collation": "collation", "hint": "hint"}


def _bulk_request(index: int, item: Any, inserted_ids: dict[str, Any]) -> Any:
    """Build one pymongo write model from a ``{"insertOne": {...}}``-shaped entry."""
    if not isinstance(item, Mapping) or len(item) != 1:
        raise ValueError(f"bulkWrite operation {index} must have exactly one key")
    kind, spec = next(iter(item.items()))
    spec = _document(spec, f"bulkWrite operation {index}")

    if kind == "insertOne":
        document = _document(spec.get("document"), "document")
        document.setdefault("_id", ObjectId())
        inserted_ids[str(index)] = document["_id"]
        return InsertOne(document)

    extra = {name: spec[key] for key, name in _BULK_UPDATE_FIELDS.items() if key in spec}
    if kind in ("updateOne", "updateMany"):
        if "arrayFilters" in spec:
            extra["array_filters"] = spec["arrayFilters"]
        model = UpdateOne if kind == "updateOne" else UpdateMany
        return model(_filter(spec.get("filter")), _update(spec.get("update")), **extra)
    if kind == "replaceOne":
        return ReplaceOne(_filter(spec.get("filter")), _document(spec.get("replacement"), "replacement"), **extra)
    if kind in ("deleteOne", "deleteMany"):
        extra.pop("upsert", None)
        model = DeleteOne if kind == "deleteOne" else DeleteMany
        return model(_filter(spec.get("filter")), **extra)
    raise ValueError(f"Unknown bulkWrite operation: {kind}")


async def bulk_write(collection: Any, operations: Any, options: Any = None) -> dict[str, Any]:
    if not isinstance(operations, list):
        raise TypeError(f"operations must be an array, got {type(operations).__name__}")
    inserted_ids: dict[str, Any] = {}
    requests = [_bulk_request(i, item, inserted_ids) for i, item in enumerate(operations)]
    result = await collection.bulk_write(requests, **driver_kwargs(options, _BULK_WRITE_OPTIONS))
    if not result.acknowledged:
        return {"acknowledged": False}
    return {
        "acknowledged": True,
        "insertedCount": result.inserted_count,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "deletedCount": result.deleted_count,
        "upsertedCount": result.upserted_count,
        "insertedIds": inserted_ids,
        "upsertedIds": {str(k): v for k, v in (result.upserted_ids or {}).items()},
    }


OPERATIONS: dict[OperationName, OperationSpec] = {
    spec.name: spec
    for spec in (
        OperationSpec(OperationName.FIND, find_to_array, 0, 2, FIND_BODY),
        OperationSpec(OperationName.FIND_TO_ARRAY, find_to_array, 0, 2, FIND_BODY),
        OperationSpec(OperationName.FIND_STREAM, find_stream, 0, 2, FIND_BODY),
        OperationSpec(OperationName.FIND_ONE, find_one, 0, 2),
        OperationSpec(OperationName.COUNT_DOCUMENTS, count_documents, 0, 2),
        OperationSpec(OperationName.ESTIMATED_DOCUMENT_COUNT, estimated_document_count, 0, 1),
        OperationSpec(OperationName.DISTINCT, distinct, 1, 3),
        OperationSpec(OperationName.AGGREGATE, aggregate, 1, 2),
        OperationSpec(OperationName.INSERT_ONE, insert_one, 1, 2),
        OperationSpec(OperationName.INSERT_MANY, insert_many, 1, 2),
        OperationSpec(OperationName.UPDATE_ONE, update_one, 2, 3),
        OperationSpec(OperationName.UPDATE_MANY, update_many, 2, 3),
        OperationSpec(OperationName.REPLACE_ONE, replace_one, 2, 3),
        OperationSpec(OperationName.DELETE_ONE, delete_one, 1, 2),
        OperationSpec(OperationName.DELETE_MANY, delete_many, 1, 2),
        OperationSpec(OperationName.FIND_ONE_AND_UPDATE, find_one_and_update, 2, 3),
        OperationSpec(OperationName.FIND_ONE_AND_REPLACE, find_one_and_replace, 2, 3),
        OperationSpec(OperationName.FIND_ONE_AND_DELETE, find_one_and_delete, 1, 2),
        OperationSpec(OperationName.BULK_WRITE, bulk_write, 1, 2),
    )
}
