"""Event source interfaces and the in-memory implementation.

This module provides:
- EventSource: Abstract interface for consuming raw contract events in order
- InMemoryEventSource: Simple list-backed implementation for tests and replays
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, TypeAlias

from ...domain import ChainEvent

RawEvent: TypeAlias = Mapping[str, Any] | ChainEvent[Any]
"""A raw event as delivered by a source: a mapping or an already-typed envelope."""


class EventSource(ABC):
    """Abstract interface for consuming contract events.

    An EventSource delivers events strictly in block order
    (``block_number``, then ``log_index``) with at-least-once semantics:
    the same log may be delivered again after a restart or a reorg-safe
    re-scan, so consumers must apply events idempotently.

    Gaps (a skipped block range) cannot be detected from event content;
    backfilling them is an operational concern outside the source.
    """

    @abstractmethod
    async def depth(self) -> int:
        """Get the number of events that can be read without blocking.

        Note:
            This is a snapshot value used for lag reporting.
        """
        ...

    @abstractmethod
    async def next(self) -> RawEvent | None:
        """Retrieve the next event, advancing the source position.

        Returns:
            The next raw event, or None once the source is closed or
            exhausted.

        Note:
            Implementations may wait for new events. Waiting must be
            cancellable so the ingestion loop can shut down.
        """
        ...

    async def resume_from(self, block_number: int) -> None:
        """Restart delivery at ``block_number`` (inclusive).

        Called once before the first ``next()`` when a checkpoint exists.
        Sources that always replay from the beginning may ignore it; replay
        is safe because consumers are idempotent.
        """
        pass

    async def on_startup(self) -> None:
        """Called when the application starts."""
        pass

    async def on_shutdown(self) -> None:
        """Called when the application shuts down. Closes the source."""
        await self.close()

    async def close(self) -> None:
        """Stop delivering events; pending ``next()`` calls return None."""
        pass


class InMemoryEventSource(EventSource):
    """List-backed event source.

    Stores published events in a single ordered list and hands them out one
    at a time. By default the source ends when the list is exhausted; with
    ``follow=True`` it waits for further ``publish`` calls until closed.

    This is a minimal implementation - it doesn't support:
    - Persistence (events are lost on restart)
    - Multiple independent readers (one read position)
    """

    def __init__(self, events: Iterable[RawEvent] = (), follow: bool = False) -> None:
        """Initialize the source.

        Args:
            events: Events available immediately.
            follow: Wait for new events instead of ending at the tail.
        """
        self.events_in_order: list[RawEvent] = list(events)
        self.index = 0
        self.follow = follow
        self._closed = False
        self._changed = asyncio.Condition()

    async def publish(self, *events: RawEvent) -> None:
        """Append events to the end of the stream."""
        async with self._changed:
            self.events_in_order.extend(events)
            self._changed.notify_all()

    async def depth(self) -> int:
        return len(self.events_in_order) - self.index

    async def next(self) -> RawEvent | None:
        async with self._changed:
            while self.index >= len(self.events_in_order):
                if self._closed or not self.follow:
                    return None
                await self._changed.wait()
            event = self.events_in_order[self.index]
            self.index += 1
            return event

    async def close(self) -> None:
        async with self._changed:
            self._closed = True
            self._changed.notify_all()
