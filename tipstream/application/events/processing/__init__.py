from .checkpoint import Checkpoint, CheckpointBackend, InMemoryCheckpointBackend
from .config import IngestionConfiguration
from .executor import RETRYABLE_EXCEPTIONS, IngestionExecutor
from .processor import EventProcessor

__all__ = [
    "Checkpoint",
    "CheckpointBackend",
    "EventProcessor",
    "InMemoryCheckpointBackend",
    "IngestionConfiguration",
    "IngestionExecutor",
    "RETRYABLE_EXCEPTIONS",
]
