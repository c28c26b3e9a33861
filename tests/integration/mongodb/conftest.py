"""Pytest fixtures for MongoDB integration tests."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import cache
from typing import Any

import pytest
import pytest_asyncio
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from tipstream.integrations.mongodb import (
    MongoCheckpointBackend,
    MongoConfiguration,
    MongoProjectionStore,
)

# Assumes a MongoDB container is running locally on port 27017
LOCAL_MONGO_URI = "mongodb://localhost:27017"


@cache
def mongo_available() -> bool:
    client: MongoClient = MongoClient(LOCAL_MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
    except PyMongoError:
        return False
    finally:
        client.close()
    return True


@cache
def replica_set_available() -> bool:
    client: MongoClient = MongoClient(LOCAL_MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        hello = client.admin.command("hello")
    except PyMongoError:
        return False
    finally:
        client.close()
    return "setName" in hello


@asynccontextmanager
async def create_config(
    request: pytest.FixtureRequest, prefix: str = "test", **settings: Any
) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration on a fresh database."""
    if not mongo_available():
        pytest.skip(f"MongoDB is not reachable at {LOCAL_MONGO_URI}")
    db_name = f"{prefix}_{request.node.name}"[:63]
    for char in "[]-/\\. \"$":
        db_name = db_name.replace(char, "_")
    config = MongoConfiguration(uri=LOCAL_MONGO_URI, database=db_name, **settings)
    await config.client.drop_database(config.database)
    try:
        yield config
    finally:
        await config.on_shutdown()


@pytest_asyncio.fixture
async def mongo_config(request: pytest.FixtureRequest) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration pointing to local MongoDB."""
    async with create_config(request) as config:
        yield config


@pytest_asyncio.fixture
async def mongo_store(mongo_config: MongoConfiguration) -> MongoProjectionStore:
    """Create a MongoProjectionStore with its indexes in place."""
    store = MongoProjectionStore(mongo_config)
    await store.on_startup()
    return store


@pytest_asyncio.fixture
async def mongo_checkpoints(mongo_config: MongoConfiguration) -> MongoCheckpointBackend:
    return MongoCheckpointBackend(mongo_config)


@pytest_asyncio.fixture
async def mongo_transactional_store(
    request: pytest.FixtureRequest,
) -> AsyncIterator[MongoProjectionStore]:
    """A store running its multi-collection writes in transactions."""
    if mongo_available() and not replica_set_available():
        pytest.skip("MongoDB transactions need a replica set")
    async with create_config(request, prefix="txn", use_transactions=True) as config:
        store = MongoProjectionStore(config)
        await store.on_startup()
        yield store
