"""MongoDB configuration using pydantic-settings."""

from functools import cached_property
from typing import Any

from pydantic_settings import BaseSettings
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient


class MongoConfiguration(BaseSettings):
    """Configuration and factory for MongoDB resources.

    Implements the HasLifecycle protocol so the application can close the
    client on shutdown.

    All settings can be configured via environment variables with the
    TIPSTREAM_MONGO_ prefix. For example:
    - TIPSTREAM_MONGO_URI=mongodb://localhost:27017
    - TIPSTREAM_MONGO_DATABASE=tipping
    - TIPSTREAM_MONGO_USE_TRANSACTIONS=true

    The configuration also acts as a factory, providing lazy-initialized
    properties for the MongoDB client, database, and collections.

    Attributes:
        uri: MongoDB connection URI.
        database: Database name to use.
        posts_collection: Collection name for posts.
        creators_collection: Collection name for per-creator totals.
        tips_collection: Collection name for the immutable tip log.
        delegations_collection: Collection name for auto-tip delegations.
        orphans_collection: Collection name for events buffered until their
            post exists.
        checkpoints_collection: Collection name for ingestion checkpoints.
        use_transactions: Wrap multi-document writes in a transaction.
            Requires a replica set or sharded cluster.

    Example:
        >>> config = MongoConfiguration()
        >>> store = MongoProjectionStore(config)
        >>> app = ApplicationBuilder().register_resource(config).use_store(store).build()
        >>> async with app:  # closes the client on exit
        ...     ...
    """

    # Connection settings
    uri: str = "mongodb://localhost:27017"
    database: str = "tipstream"

    # Collection names
    posts_collection: str = "posts"
    creators_collection: str = "creators"
    tips_collection: str = "tips"
    delegations_collection: str = "delegations"
    orphans_collection: str = "orphan_events"
    checkpoints_collection: str = "checkpoints"

    use_transactions: bool = False

    model_config = {"env_prefix": "TIPSTREAM_MONGO_"}

    @cached_property
    def client(self) -> AsyncMongoClient[dict[str, Any]]:
        """Get the MongoDB async client.

        The client is lazily created and cached for reuse. Datetimes are
        returned timezone aware (UTC).
        """
        return AsyncMongoClient(self.uri, tz_aware=True)

    @cached_property
    def db(self) -> AsyncDatabase[dict[str, Any]]:
        """Get the MongoDB async database."""
        return self.client[self.database]

    @cached_property
    def posts(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.posts_collection]

    @cached_property
    def creators(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.creators_collection]

    @cached_property
    def tips(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.tips_collection]

    @cached_property
    def delegations(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.delegations_collection]

    @cached_property
    def orphans(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.orphans_collection]

    @cached_property
    def checkpoints(self) -> AsyncCollection[dict[str, Any]]:
        return self.db[self.checkpoints_collection]

    # HasLifecycle protocol implementation

    async def on_startup(self) -> None:
        """Called when the application starts.

        No-op for MongoDB - connections are established lazily.
        """
        pass

    async def on_shutdown(self) -> None:
        """Close the MongoDB client if it was created."""
        if "client" in self.__dict__:
            await self.client.close()
