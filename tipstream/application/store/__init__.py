from .base import ProjectionStore
from .memory import InMemoryProjectionStore

__all__ = ["InMemoryProjectionStore", "ProjectionStore"]
