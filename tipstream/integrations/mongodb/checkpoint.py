"""MongoDB implementation of CheckpointBackend."""

from datetime import datetime

from pydantic import BaseModel

from ...application.events import Checkpoint, CheckpointBackend
from .collection import IndexedCollection
from .config import MongoConfiguration


class CheckpointDocument(BaseModel):
    """Checkpoint document representation for MongoDB storage."""

    source_name: str
    block_number: int
    log_index: int
    events_processed: int
    updated_at: datetime

    @classmethod
    def from_value(cls, checkpoint: Checkpoint) -> "CheckpointDocument":
        """Create a document from a checkpoint."""
        return cls(
            source_name=checkpoint.source_name,
            block_number=checkpoint.block_number,
            log_index=checkpoint.log_index,
            events_processed=checkpoint.events_processed,
            updated_at=checkpoint.updated_at,
        )

    def to_value(self) -> Checkpoint:
        """Convert the document back to a checkpoint."""
        return Checkpoint(
            source_name=self.source_name,
            block_number=self.block_number,
            log_index=self.log_index,
            events_processed=self.events_processed,
            updated_at=self.updated_at,
        )


class MongoCheckpointBackend(CheckpointBackend):
    """MongoDB storage for ingestion checkpoints.

    One document per source, keyed by source name and overwritten on every
    save.
    """

    def __init__(self, config: MongoConfiguration) -> None:
        self.collection = IndexedCollection(config.checkpoints)

    async def load_checkpoint(self, source_name: str) -> Checkpoint | None:
        doc = await self.collection.find_one({"_id": source_name})
        if doc is None:
            return None
        return CheckpointDocument.model_validate(doc).to_value()

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        doc = CheckpointDocument.from_value(checkpoint).model_dump()
        await self.collection.replace_one(
            {"_id": checkpoint.source_name},
            {"_id": checkpoint.source_name, **doc},
            upsert=True,
        )
