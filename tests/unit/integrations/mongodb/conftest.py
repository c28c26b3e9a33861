"""Dict-backed stand-ins for pymongo's async collection and client."""

import copy
from collections import defaultdict
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson.decimal128 import Decimal128
from pymongo.errors import DuplicateKeyError

from tipstream.integrations.mongodb import MongoConfiguration, MongoProjectionStore

COLLECTIONS = ("posts", "creators", "tips", "delegations", "orphans", "checkpoints")


def _value(value: Any) -> Any:
    return value.to_decimal() if isinstance(value, Decimal128) else value


def _add(current: Any, delta: Any) -> Any:
    if isinstance(current, Decimal128) or isinstance(delta, Decimal128):
        return Decimal128(Decimal(_value(current or 0)) + Decimal(_value(delta)))
    return (current or 0) + delta


def matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    for key, expected in filter.items():
        if isinstance(expected, dict) and "$ne" in expected:
            if doc.get(key) == expected["$ne"]:
                return False
        elif doc.get(key) != expected:
            return False
    return True


def apply_update(doc: dict[str, Any], update: dict[str, Any], inserting: bool) -> None:
    if inserting:
        doc.update(update.get("$setOnInsert", {}))
    doc.update(update.get("$set", {}))
    for key, delta in update.get("$inc", {}).items():
        doc[key] = _add(doc.get(key), delta)
    for key, value in update.get("$pull", {}).items():
        doc[key] = [item for item in doc.get(key, []) if item != value]


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self.docs = docs

    def sort(self, keys: list[tuple[str, int]]) -> "FakeCursor":
        for key, direction in reversed(keys):
            self.docs.sort(key=lambda d: _value(d.get(key)), reverse=direction < 0)
        return self

    def skip(self, count: int) -> "FakeCursor":
        self.docs = self.docs[count:]
        return self

    def limit(self, count: int) -> "FakeCursor":
        self.docs = self.docs[:count]
        return self

    async def __aiter__(self):
        for doc in self.docs:
            yield doc


class FakeCollection:
    """Enough of ``AsyncCollection`` for the store's write paths.

    ``fail_next(method, error)`` makes the next call of ``method`` raise
    without touching any document.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: dict[Any, dict[str, Any]] = {}
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.sessions: list[Any] = []

    def fail_next(self, method: str, error: Exception) -> None:
        self.failures[method].append(error)

    def _call(self, method: str, session: Any = None) -> None:
        self.sessions.append(session)
        if self.failures[method]:
            raise self.failures[method].pop(0)

    async def create_index(self, keys: Any, **kwargs: Any) -> str:
        return "index"

    async def find_one(
        self, filter: dict[str, Any], projection: Any = None, session: Any = None
    ) -> dict[str, Any] | None:
        self._call("find_one", session)
        for doc in self.docs.values():
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    def find(self, filter: dict[str, Any]) -> FakeCursor:
        return FakeCursor([copy.deepcopy(d) for d in self.docs.values() if matches(d, filter)])

    async def count_documents(self, filter: dict[str, Any]) -> int:
        return sum(1 for doc in self.docs.values() if matches(doc, filter))

    async def insert_one(self, document: dict[str, Any], session: Any = None) -> None:
        self._call("insert_one", session)
        if document["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key error")
        self.docs[document["_id"]] = copy.deepcopy(document)

    async def update_one(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        upsert: bool = False,
        session: Any = None,
    ) -> SimpleNamespace:
        self._call("update_one", session)
        for doc in self.docs.values():
            if matches(doc, filter):
                apply_update(doc, update, inserting=False)
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = {k: v for k, v in filter.items() if not isinstance(v, dict)}
        if doc["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key error")
        apply_update(doc, update, inserting=True)
        self.docs[doc["_id"]] = doc
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    async def delete_one(self, filter: dict[str, Any]) -> None:
        for key, doc in list(self.docs.items()):
            if matches(doc, filter):
                del self.docs[key]
                return


class FakeSession:
    def __init__(self) -> None:
        self.transactions = 0

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        pass

    async def with_transaction(self, callback):
        self.transactions += 1
        return await callback(self)


class FakeClient:
    def __init__(self) -> None:
        self.session = FakeSession()
        self.admin = MagicMock()
        self.admin.command = AsyncMock(return_value={"setName": "rs0", "ok": 1})

    def start_session(self) -> FakeSession:
        return self.session


def fake_config(**settings: Any) -> MongoConfiguration:
    """A configuration whose cached client and collections are fakes."""
    config = MongoConfiguration(**settings)
    config.__dict__["client"] = FakeClient()
    for name in COLLECTIONS:
        config.__dict__[name] = FakeCollection(name)
    return config


@pytest.fixture
def make_fake_config():
    return fake_config


@pytest.fixture
def fake_mongo_config() -> MongoConfiguration:
    return fake_config()


@pytest.fixture
def fake_mongo_store(fake_mongo_config: MongoConfiguration) -> MongoProjectionStore:
    return MongoProjectionStore(fake_mongo_config)
