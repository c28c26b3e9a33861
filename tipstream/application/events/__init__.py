from .decoding import EventDecoder
from .processing import (
    RETRYABLE_EXCEPTIONS,
    Checkpoint,
    CheckpointBackend,
    EventProcessor,
    InMemoryCheckpointBackend,
    IngestionConfiguration,
    IngestionExecutor,
)
from .source import EventSource, InMemoryEventSource, RawEvent

__all__ = [
    "Checkpoint",
    "CheckpointBackend",
    "EventDecoder",
    "EventProcessor",
    "EventSource",
    "InMemoryCheckpointBackend",
    "InMemoryEventSource",
    "IngestionConfiguration",
    "IngestionExecutor",
    "RETRYABLE_EXCEPTIONS",
    "RawEvent",
]
