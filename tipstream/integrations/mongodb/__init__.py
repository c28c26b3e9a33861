"""MongoDB integration for the tipstream projection engine.

This module provides MongoDB implementations of the ProjectionStore and
CheckpointBackend interfaces using the async PyMongo driver.

Usage:
    >>> from tipstream.integrations.mongodb import (
    ...     MongoCheckpointBackend,
    ...     MongoConfiguration,
    ...     MongoProjectionStore,
    ... )
    >>>
    >>> config = MongoConfiguration(uri="mongodb://localhost:27017", database="tipping")
    >>> store = MongoProjectionStore(config)
    >>> checkpoints = MongoCheckpointBackend(config)
"""

from .checkpoint import MongoCheckpointBackend
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration
from .store import MongoProjectionStore

__all__ = [
    "IndexDirection",
    "IndexSpec",
    "IndexedCollection",
    "MongoCheckpointBackend",
    "MongoConfiguration",
    "MongoProjectionStore",
]
