"""Exceptions raised by the ingestion and projection layers."""

from collections.abc import Mapping
from typing import Any


class TipstreamError(Exception):
    """Base class for all tipstream errors."""

    pass


class MalformedEventError(TipstreamError):
    """Raised when a raw event is missing required fields or has the wrong shape.

    The ingestion loop logs the offending payload and skips the single event;
    it never halts the stream.

    Attributes:
        raw: The raw event as received from the source, kept for manual replay.
    """

    def __init__(self, message: str, raw: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.raw = dict(raw) if raw is not None else {}


class ProjectionStoreError(TipstreamError):
    """Raised when the projection store cannot complete a write or read.

    The ingestion loop retries these with backoff and does not advance past
    the event until the write succeeds.
    """

    pass


class ChainSourceError(TipstreamError):
    """Raised when the chain log feed cannot be reached or read."""

    pass
