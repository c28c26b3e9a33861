"""Checkpoint backend for tracking ingestion progress and resumability."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class Checkpoint:
    """Position of the last event an ingestion run fully applied.

    Sources resume from ``block_number`` (inclusive). Re-delivering the
    events of that block is safe because every reducer is idempotent.

    Attributes:
        source_name: Name of the event source (one checkpoint per source)
        block_number: Block of the last applied event
        log_index: Log index of the last applied event within its block
        events_processed: Total events processed (for logging)
        updated_at: When the checkpoint was written

    Example:
        >>> checkpoint = Checkpoint(
        ...     source_name="social-tipping",
        ...     block_number=1_204_331,
        ...     log_index=4,
        ...     events_processed=1500,
        ...     updated_at=utc_now(),
        ... )
    """

    source_name: str
    block_number: int
    log_index: int
    events_processed: int
    updated_at: datetime


class CheckpointBackend(ABC):
    """Abstract interface for persisting ingestion checkpoints.

    Implementations should handle:
    - Atomic updates (checkpoint saves should be all-or-nothing)
    - Persistence (checkpoints survive process restarts)
    """

    @abstractmethod
    async def load_checkpoint(self, source_name: str) -> Checkpoint | None:
        """Load the latest checkpoint for a source.

        Args:
            source_name: Name of the source to load the checkpoint for

        Returns:
            The checkpoint if it exists, None if this is the first run
        """
        ...

    @abstractmethod
    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Save a checkpoint, replacing any existing one for the same source.

        Args:
            checkpoint: The checkpoint data to persist
        """
        ...


class InMemoryCheckpointBackend(CheckpointBackend):
    """In-memory checkpoint storage for testing.

    Not suitable for production use as checkpoints are lost on restart.
    """

    def __init__(self) -> None:
        self._checkpoints: dict[str, Checkpoint] = {}

    async def load_checkpoint(self, source_name: str) -> Checkpoint | None:
        return self._checkpoints.get(source_name)

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.source_name] = checkpoint
