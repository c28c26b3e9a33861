from .application import Application, ApplicationBuilder, HasLifecycle
from .events import (
    RETRYABLE_EXCEPTIONS,
    Checkpoint,
    CheckpointBackend,
    EventDecoder,
    EventProcessor,
    EventSource,
    InMemoryCheckpointBackend,
    InMemoryEventSource,
    IngestionConfiguration,
    IngestionExecutor,
    RawEvent,
)
from .projections import QueryFacade, TippingProjector, TippingQueries
from .store import InMemoryProjectionStore, ProjectionStore

__all__ = [
    "Application",
    "ApplicationBuilder",
    "Checkpoint",
    "CheckpointBackend",
    "EventDecoder",
    "EventProcessor",
    "EventSource",
    "HasLifecycle",
    "InMemoryCheckpointBackend",
    "InMemoryEventSource",
    "InMemoryProjectionStore",
    "IngestionConfiguration",
    "IngestionExecutor",
    "ProjectionStore",
    "QueryFacade",
    "RETRYABLE_EXCEPTIONS",
    "RawEvent",
    "TippingProjector",
    "TippingQueries",
]
