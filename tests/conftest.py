"""
Pytest configuration for mongo-relay tests.

Provides an in-memory stand-in for an async MongoDB database (the subset of
the motor / pymongo asyncio API the gateway uses) and fixtures wiring a
gateway, a FastAPI app and a client together through ``httpx.ASGITransport``
so tests run without a MongoDB server or network.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
from bson import ObjectId
from pymongo.errors import InvalidName
from pymongo.operations import DeleteMany, DeleteOne, InsertOne, ReplaceOne, UpdateMany, UpdateOne
from pymongo.results import BulkWriteResult, DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from mongo_relay import RelayGateway, RelayMongoClient, create_app

# ---------------------------------------------------------------------------
# Shared constants (import these in test files)
# ---------------------------------------------------------------------------
TEST_PASSWORD = "relay-test-secret"
RELAY_PATH = "/api/mongo"
RELAY_URL = f"http://relay.test{RELAY_PATH}"


# ---------------------------------------------------------------------------
# In-memory driver
# ---------------------------------------------------------------------------


def _get_field(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$gt" and not (value is not None and value > arg):
                return False
            if op == "$gte" and not (value is not None and value >= arg):
                return False
            if op == "$lt" and not (value is not None and value < arg):
                return False
            if op == "$lte" and not (value is not None and value <= arg):
                return False
            if op == "$ne" and value == arg:
                return False
            if op == "$in" and value not in arg:
                return False
            if op == "$exists" and (value is not None) != bool(arg):
                return False
        return True
    if isinstance(value, list) and not isinstance(condition, list):
        return condition in value
    return value == condition


def matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif not _match_condition(_get_field(doc, key), condition):
            return False
    return True


def apply_update(doc: dict[str, Any], update: dict[str, Any]) -> None:
    for op, fields in update.items():
        for key, value in fields.items():
            if op == "$set":
                doc[key] = copy.deepcopy(value)
            elif op == "$inc":
                doc[key] = doc.get(key, 0) + value
            elif op == "$unset":
                doc.pop(key, None)
            elif op == "$push":
                doc.setdefault(key, []).append(copy.deepcopy(value))
            else:
                raise ValueError(f"Unsupported update operator: {op}")


def project(doc: dict[str, Any], projection: dict[str, Any] | None) -> dict[str, Any]:
    if not projection:
        return copy.deepcopy(doc)
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        result = {k: copy.deepcopy(doc[k]) for k in include if k in doc}
        if projection.get("_id", 1) and "_id" in doc:
            result["_id"] = doc["_id"]
        return result
    return {k: copy.deepcopy(v) for k, v in doc.items() if k not in projection}


def sort_documents(docs: list[dict[str, Any]], keys: list[tuple[str, int]]) -> list[dict[str, Any]]:
    result = list(docs)
    for name, direction in reversed(keys):
        result.sort(key=lambda d: (_get_field(d, name) is not None, _get_field(d, name)), reverse=direction < 0)
    return result


class FakeCursor:
    """Async cursor over a snapshot of matching documents."""

    def __init__(self, docs: list[dict[str, Any]], fail_after: int | None = None):
        self._docs = docs
        self._sort: list[tuple[str, int]] = []
        self._limit = 0
        self._skip = 0
        self._results: list[dict[str, Any]] | None = None
        self._fail_after = fail_after
        self.pulled = 0
        self.closed = False
        self.calls: list[str] = []

    def sort(self, keys: list[tuple[str, int]]) -> FakeCursor:
        self.calls.append("sort")
        self._sort = list(keys)
        return self

    def limit(self, limit: int) -> FakeCursor:
        self.calls.append("limit")
        self._limit = limit
        return self

    def skip(self, skip: int) -> FakeCursor:
        self.calls.append("skip")
        self._skip = skip
        return self

    def _materialize(self) -> list[dict[str, Any]]:
        if self._results is None:
            docs = sort_documents(self._docs, self._sort) if self._sort else list(self._docs)
            docs = docs[self._skip :]
            if self._limit:
                docs = docs[: self._limit]
            self._results = docs
        return self._results

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        docs = self._materialize()
        return list(docs if length is None else docs[:length])

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self) -> FakeCursor:
        return self

    async def __anext__(self) -> dict[str, Any]:
        docs = self._materialize()
        if self._fail_after is not None and self.pulled >= self._fail_after:
            raise RuntimeError("cursor killed")
        if self.closed or self.pulled >= len(docs):
            raise StopAsyncIteration
        doc = docs[self.pulled]
        self.pulled += 1
        return doc


class FakeCollection:
    """In-memory collection with the async driver methods the gateway calls."""

    def __init__(self, name: str):
        self.name = name
        self.documents: list[dict[str, Any]] = []
        self.cursors: list[FakeCursor] = []
        self.find_calls: list[dict[str, Any]] = []
        self.fail_stream_after: int | None = None

    def _matching(self, filter: dict[str, Any], sort: list[tuple[str, int]] | None = None) -> list[dict[str, Any]]:
        docs = [d for d in self.documents if matches(d, filter)]
        return sort_documents(docs, sort) if sort else docs

    def _insert(self, document: dict[str, Any]) -> Any:
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        if any(d["_id"] == doc["_id"] for d in self.documents):
            raise ValueError(f"E11000 duplicate key error collection: {self.name} dup key: {doc['_id']}")
        self.documents.append(doc)
        return doc["_id"]

    def _upsert_document(self, filter: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in filter.items() if not k.startswith("$") and not isinstance(v, dict)}

    def find(self, filter: dict[str, Any] | None = None, projection: dict[str, Any] | None = None) -> FakeCursor:
        self.find_calls.append({"filter": filter, "projection": projection})
        docs = [project(d, projection) for d in self._matching(filter or {})]
        cursor = FakeCursor(docs, fail_after=self.fail_stream_after)
        self.cursors.append(cursor)
        return cursor

    async def find_one(self, filter: dict[str, Any] | None = None, projection: Any = None, sort: Any = None, skip: int = 0, **kwargs: Any) -> Any:
        docs = self._matching(filter or {}, sort)[skip:]
        return project(docs[0], projection) if docs else None

    async def insert_one(self, document: dict[str, Any], **kwargs: Any) -> InsertOneResult:
        return InsertOneResult(self._insert(document), True)

    async def insert_many(self, documents: list[dict[str, Any]], ordered: bool = True, **kwargs: Any) -> InsertManyResult:
        return InsertManyResult([self._insert(d) for d in documents], True)

    def _update(self, filter: dict[str, Any], update: dict[str, Any], many: bool, upsert: bool, replace: bool) -> UpdateResult:
        docs = self._matching(filter)
        if not many:
            docs = docs[:1]
        if not docs:
            if upsert:
                doc = self._upsert_document(filter)
                if replace:
                    doc.update(copy.deepcopy(update))
                else:
                    apply_update(doc, update)
                upserted_id = self._insert(doc)
                return UpdateResult({"n": 1, "nModified": 0, "upserted": upserted_id}, True)
            return UpdateResult({"n": 0, "nModified": 0}, True)
        for doc in docs:
            if replace:
                _id = doc["_id"]
                doc.clear()
                doc.update(copy.deepcopy(update))
                doc["_id"] = _id
            else:
                apply_update(doc, update)
        return UpdateResult({"n": len(docs), "nModified": len(docs)}, True)

    async def update_one(self, filter: dict[str, Any], update: dict[str, Any], upsert: bool = False, **kwargs: Any) -> UpdateResult:
        return self._update(filter, update, many=False, upsert=upsert, replace=False)

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any], upsert: bool = False, **kwargs: Any) -> UpdateResult:
        return self._update(filter, update, many=True, upsert=upsert, replace=False)

    async def replace_one(self, filter: dict[str, Any], replacement: dict[str, Any], upsert: bool = False, **kwargs: Any) -> UpdateResult:
        return self._update(filter, replacement, many=False, upsert=upsert, replace=True)

    def _delete(self, filter: dict[str, Any], many: bool) -> DeleteResult:
        docs = self._matching(filter)
        if not many:
            docs = docs[:1]
        for doc in docs:
            self.documents.remove(doc)
        return DeleteResult({"n": len(docs)}, True)

    async def delete_one(self, filter: dict[str, Any], **kwargs: Any) -> DeleteResult:
        return self._delete(filter, many=False)

    async def delete_many(self, filter: dict[str, Any], **kwargs: Any) -> DeleteResult:
        return self._delete(filter, many=True)

    async def count_documents(self, filter: dict[str, Any], skip: int = 0, limit: int = 0, **kwargs: Any) -> int:
        docs = self._matching(filter)[skip:]
        return len(docs[:limit] if limit else docs)

    async def estimated_document_count(self, **kwargs: Any) -> int:
        return len(self.documents)

    async def distinct(self, key: str, filter: dict[str, Any] | None = None, **kwargs: Any) -> list[Any]:
        values: list[Any] = []
        for doc in self._matching(filter or {}):
            value = _get_field(doc, key)
            if value is not None and value not in values:
                values.append(value)
        return values

    def aggregate(self, pipeline: list[dict[str, Any]], **kwargs: Any) -> FakeCursor:
        # $match / $sort / $limit / $project only
        docs = copy.deepcopy(self.documents)
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$match":
                docs = [d for d in docs if matches(d, arg)]
            elif op == "$sort":
                docs = sort_documents(docs, list(arg.items()))
            elif op == "$limit":
                docs = docs[:arg]
            elif op == "$project":
                docs = [project(d, arg) for d in docs]
            else:
                raise ValueError(f"Unsupported pipeline stage: {op}")
        return FakeCursor(docs)

    async def _find_one_and_modify(
        self,
        filter: dict[str, Any],
        update: dict[str, Any] | None,
        *,
        replace: bool = False,
        delete: bool = False,
        projection: Any = None,
        sort: Any = None,
        upsert: bool = False,
        return_document: bool = False,
    ) -> Any:
        docs = self._matching(filter, sort)
        if not docs:
            if upsert and update is not None:
                result = self._update(filter, update, many=False, upsert=True, replace=replace)
                if return_document:
                    created = next(d for d in self.documents if d["_id"] == result.upserted_id)
                    return project(created, projection)
            return None
        doc = docs[0]
        before = project(doc, projection)
        if delete:
            self.documents.remove(doc)
            return before
        self._update({"_id": doc["_id"]}, update or {}, many=False, upsert=False, replace=replace)
        return project(doc, projection) if return_document else before

    async def find_one_and_update(self, filter: dict[str, Any], update: dict[str, Any], **kwargs: Any) -> Any:
        return await self._find_one_and_modify(filter, update, **kwargs)

    async def find_one_and_replace(self, filter: dict[str, Any], replacement: dict[str, Any], **kwargs: Any) -> Any:
        return await self._find_one_and_modify(filter, replacement, replace=True, **kwargs)

    async def find_one_and_delete(self, filter: dict[str, Any], **kwargs: Any) -> Any:
        return await self._find_one_and_modify(filter, None, delete=True, **kwargs)

    async def bulk_write(self, requests: list[Any], ordered: bool = True, **kwargs: Any) -> BulkWriteResult:
        counts = {"nInserted": 0, "nMatched": 0, "nModified": 0, "nRemoved": 0, "nUpserted": 0, "upserted": []}
        for index, request in enumerate(requests):
            if isinstance(request, InsertOne):
                self._insert(request._doc)
                counts["nInserted"] += 1
            elif isinstance(request, (UpdateOne, UpdateMany, ReplaceOne)):
                result = self._update(
                    request._filter,
                    request._doc,
                    many=isinstance(request, UpdateMany),
                    upsert=bool(request._upsert),
                    replace=isinstance(request, ReplaceOne),
                )
                if result.upserted_id is not None:
                    counts["nUpserted"] += 1
                    counts["upserted"].append({"index": index, "_id": result.upserted_id})
                else:
                    counts["nMatched"] += result.matched_count
                    counts["nModified"] += result.modified_count
            elif isinstance(request, (DeleteOne, DeleteMany)):
                counts["nRemoved"] += self._delete(request._filter, many=isinstance(request, DeleteMany)).deleted_count
            else:
                raise TypeError(f"Unsupported bulk request: {request!r}")
        return BulkWriteResult(counts, True)


class FakeDatabase:
    """In-memory database; records every collection lookup."""

    def __init__(self, name: str = "test"):
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.accessed: list[str] = []

    def __getitem__(self, name: str) -> FakeCollection:
        self.accessed.append(name)
        if "$" in name:
            raise InvalidName(f"collection names must not contain '$': {name!r}")
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep relay settings from the host environment out of tests."""
    for name in ("MONGODB_RELAY_PASSWORD", "MONGODB_RELAY_URL", "MONGODB_RELAY_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def gateway(db: FakeDatabase) -> RelayGateway:
    return RelayGateway(db, password=TEST_PASSWORD)


@pytest.fixture
def app(db: FakeDatabase) -> Any:
    return create_app(db, TEST_PASSWORD, path=RELAY_PATH)


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[RelayMongoClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with RelayMongoClient(RELAY_URL, TEST_PASSWORD, transport=transport) as client:
        yield client
