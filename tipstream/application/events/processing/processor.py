"""Event processors for building read models from contract events.

This module provides the infrastructure for the projection side:
- EventProcessor: Base class routing ChainEvents to typed handler methods
- IngestionExecutor: Runtime loop feeding a processor from an EventSource
"""

import inspect
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from ....domain import ChainEvent
from ....routing import setup_event_handling

if TYPE_CHECKING:
    from ....routing import MessageRouter


class EventProcessor:
    """Base class for building read models from contract events.

    Subclass EventProcessor and use the @handles_event decorator to declare
    which payload types the processor is interested in. Routing is set up
    from the handler annotations when the subclass is defined:

    - Annotate with the payload type (``event: TipSent``) to receive the
      payload only
    - Annotate with ``ChainEvent[TipSent]`` to receive the full envelope
      (tx hash, log index, block number and time)

    Payload types without a handler are ignored, unless the subclass lists
    them in ``required_event_types``; in that case a missing handler is a
    TypeError at class definition time.

    Attributes:
        _event_router: Class-level routing table (set by __init_subclass__)
        required_event_types: Payload types every subclass must handle

    Example:
        >>> class TipCounter(EventProcessor):
        ...     def __init__(self) -> None:
        ...         self.tips = 0
        ...
        ...     @handles_event
        ...     async def on_tip(self, event: TipSent) -> None:
        ...         self.tips += 1
        >>>
        >>> await TipCounter().handle(chain_event)
    """

    _event_router: ClassVar["MessageRouter"]
    required_event_types: ClassVar[Iterable[type]] = ()

    def __init_subclass__(cls, **kwargs: object) -> None:
        """Set up the event routing table when a subclass is defined.

        Raises:
            TypeError: If a payload type in ``required_event_types`` has no
                registered handler.
        """
        super().__init_subclass__(**kwargs)
        cls._event_router = setup_event_handling(cls)
        missing = [
            t.__name__
            for t in cls.required_event_types
            if t not in cls._event_router.handled_types
        ]
        if missing:
            raise TypeError(f"{cls.__name__} has no handler for: {', '.join(sorted(missing))}")

    @classmethod
    def handled_event_types(cls) -> frozenset[type]:
        """Payload types this processor has handlers for."""
        return cls._event_router.handled_types

    async def handle(self, event: ChainEvent[Any]) -> object:
        """Route an event to its registered handler method.

        Handlers may be sync or async; coroutines are awaited.

        Args:
            event: The decoded event envelope

        Returns:
            The return value of the handler method (typically None)
        """
        result = self._event_router.route(self, event.data, event_wrapper=event)
        if inspect.iscoroutine(result):
            return await result
        return result
