"""MongoDB collection wrapper with index management and query helpers.

This module provides an IndexedCollection class that wraps a MongoDB
AsyncCollection with lazy index creation and the handful of operations the
projection store needs. Every write accepts an optional session so it can
take part in a multi-document transaction.
"""

from collections.abc import AsyncIterator
from enum import IntEnum
from typing import Any

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.collection import AsyncCollection


class IndexDirection(IntEnum):
    """Sort direction for MongoDB index fields."""

    ASC = ASCENDING
    """Ascending order (1)."""

    DESC = DESCENDING
    """Descending order (-1)."""


class IndexSpec(BaseModel):
    """Specification for a MongoDB index.

    Example:
        >>> # Tips of a post, newest first
        >>> IndexSpec(
        ...     keys=[
        ...         ("post_id", IndexDirection.ASC),
        ...         ("block_number", IndexDirection.DESC),
        ...         ("log_index", IndexDirection.DESC),
        ...     ]
        ... )
    """

    model_config = {"arbitrary_types_allowed": True}

    keys: list[tuple[str, IndexDirection]]
    """(field_name, direction) tuples."""

    unique: bool = False
    """If True, enforce uniqueness."""

    async def apply(self, collection: AsyncCollection[dict[str, Any]]) -> None:
        """Apply this index specification to a collection."""
        kwargs: dict[str, Any] = {}
        if self.unique:
            kwargs["unique"] = True
        await collection.create_index(self.keys, **kwargs)


class UpdateResult(BaseModel):
    """Result of an update operation."""

    matched_count: int
    """Number of documents matched by the filter."""

    modified_count: int
    """Number of documents modified."""

    upserted_id: Any | None = None
    """ID of upserted document, if any."""


class IndexedCollection:
    """A MongoDB collection wrapper with automatic index management.

    IndexedCollection wraps an AsyncCollection and handles:
    - Lazy index creation (indexes created on first use)
    - Common query patterns (find one, find many, count, aggregation)
    - Insert/update/delete operations, optionally inside a session

    The store translates between records and documents; this class only
    talks to MongoDB.

    Example:
        >>> tips = IndexedCollection(
        ...     config.tips,
        ...     indexes=[IndexSpec(keys=[("tipper", IndexDirection.ASC)])],
        ... )
        >>> await tips.insert_one(doc)  # indexes are created first
    """

    def __init__(
        self,
        collection: AsyncCollection[dict[str, Any]],
        indexes: list[IndexSpec] | None = None,
    ) -> None:
        self._collection = collection
        self._indexes = indexes or []
        self._indexes_created = False

    @property
    def name(self) -> str:
        return self._collection.name

    async def ensure_indexes(self) -> None:
        """Create indexes if not already created.

        Called automatically by other methods, but can be called
        explicitly for eager initialization.
        """
        if self._indexes_created:
            return

        for index in self._indexes:
            await index.apply(self._collection)

        self._indexes_created = True

    # ========== Find Operations ==========

    async def find_one(
        self,
        filter: dict[str, Any],
        projection: dict[str, Any] | None = None,
        session: AsyncClientSession | None = None,
    ) -> dict[str, Any] | None:
        await self.ensure_indexes()
        result: dict[str, Any] | None = await self._collection.find_one(
            filter, projection=projection, session=session
        )
        return result

    async def find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Find documents matching the filter.

        Args:
            filter: MongoDB query filter.
            sort: Optional list of (field, direction) tuples.
            skip: Number of leading documents to skip.
            limit: Optional maximum number of documents to return.

        Yields:
            Matching documents.
        """
        await self.ensure_indexes()

        cursor = self._collection.find(filter)

        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)

        async for doc in cursor:
            yield doc

    async def count_documents(self, filter: dict[str, Any] | None = None) -> int:
        await self.ensure_indexes()
        return await self._collection.count_documents(filter or {})

    async def aggregate(self, pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Run an aggregation pipeline and collect the results."""
        await self.ensure_indexes()
        cursor = await self._collection.aggregate(pipeline)
        return [doc async for doc in cursor]

    # ========== Write Operations ==========

    async def insert_one(
        self,
        document: dict[str, Any],
        session: AsyncClientSession | None = None,
    ) -> None:
        """Insert a single document.

        Raises:
            pymongo.errors.DuplicateKeyError: If the ``_id`` (or another
                unique key) already exists.
        """
        await self.ensure_indexes()
        await self._collection.insert_one(document, session=session)

    async def update_one(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        upsert: bool = False,
        session: AsyncClientSession | None = None,
    ) -> UpdateResult:
        """Update a single document.

        Args:
            filter: MongoDB query filter.
            update: Update operations (e.g., {"$inc": {...}}).
            upsert: If True, insert if no matching document exists.
            session: Optional session the write belongs to.

        Returns:
            UpdateResult with matched/modified counts and upserted_id.
        """
        await self.ensure_indexes()
        result = await self._collection.update_one(filter, update, upsert=upsert, session=session)
        return UpdateResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=result.upserted_id,
        )

    async def find_one_and_update(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Atomically update one document and return it after the update."""
        await self.ensure_indexes()
        result: dict[str, Any] | None = await self._collection.find_one_and_update(
            filter, update, return_document=ReturnDocument.AFTER
        )
        return result

    async def replace_one(
        self,
        filter: dict[str, Any],
        replacement: dict[str, Any],
        upsert: bool = False,
    ) -> None:
        await self.ensure_indexes()
        await self._collection.replace_one(filter, replacement, upsert=upsert)

    async def delete_one(self, filter: dict[str, Any]) -> None:
        await self.ensure_indexes()
        await self._collection.delete_one(filter)
