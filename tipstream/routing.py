import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import singledispatch
from typing import Any, TypeVar, get_args, get_origin

from pydantic import BaseModel

T = TypeVar("T")

# Marker for handlers that want the ChainEvent envelope, not just payload
_WANTS_EVENT_WRAPPER_ATTR = "_wants_event_wrapper"


class DefaultHandler(ABC):
    """Base handler for unregistered message types."""

    __slots__ = ("base_type", "operation_name")

    def __init__(self, base_type: type, operation_name: str):
        """Initialize the default handler.

        Args:
            base_type: The base type for messages (e.g., Query,
                BaseModel).
            operation_name: Name of the operation for error
                messages.
        """
        self.base_type = base_type
        self.operation_name = operation_name

    @abstractmethod
    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
        """Handle an unregistered message type.

        Args:
            message: The message to handle.
            instance: The instance handling the message.
            *args: Additional positional arguments (ignored).
            **kwargs: Additional keyword arguments (ignored).

        Returns:
            The result of handling the message.
        """
        ...


class RaiseHandler(DefaultHandler):
    """Raise NotImplementedError for unregistered message types."""

    __slots__ = ()

    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError(
            f"No {self.operation_name} registered for "
            f"{self.base_type.__name__} type {type(message).__name__}"
        )


class IgnoreHandler(DefaultHandler):
    """Silently ignore unregistered message types."""

    __slots__ = ()

    def __call__(self, message: Any, instance: Any, *args: Any, **kwargs: Any) -> Any:
        pass


def _extract_handler_type(func: Callable[..., Any], param_index: int = 1) -> tuple[type, bool]:
    """Extract the type annotation from a handler method.

    For event handlers, this also detects if the handler wants the envelope
    (annotated as `ChainEvent[T]`) or just the payload (annotated as `T`).

    Args:
        func: The handler method to inspect.
        param_index: Index of the parameter to extract
            (0=self, 1=first arg, etc.)

    Returns:
        A tuple of (payload_type, wants_wrapper):
        - payload_type: The inner type to route on (e.g., TipSent)
        - wants_wrapper: True if annotated as ChainEvent[T], False if just T

    Raises:
        ValueError: If the parameter lacks a type annotation.
    """
    func_name = getattr(func, "__name__", repr(func))
    sig = inspect.signature(func)
    params = list(sig.parameters.values())

    if len(params) <= param_index:
        raise ValueError(f"Handler {func_name} must have at least {param_index + 1} parameters")

    param = params[param_index]
    if param.annotation is inspect.Parameter.empty:
        raise ValueError(
            f"Handler {func_name} parameter '{param.name}' must have a type annotation"
        )
    annotation = param.annotation

    from .domain import ChainEvent  # Import here to avoid circular dependency

    origin = get_origin(annotation)
    if origin is ChainEvent:
        args = get_args(annotation)
        if args:
            return (args[0], True)
        raise ValueError(
            f"Handler {func_name}: ChainEvent type must have a type"
            " argument, e.g., ChainEvent[TipSent]"
        )

    # Pydantic builds a concrete subclass for ChainEvent[T] at runtime
    if isinstance(annotation, type) and issubclass(annotation, ChainEvent):
        metadata = getattr(annotation, "__pydantic_generic_metadata__", None)
        if metadata:
            pydantic_origin = metadata.get("origin")
            pydantic_args = metadata.get("args", ())
            if pydantic_origin is ChainEvent and pydantic_args:
                return (pydantic_args[0], True)
        raise ValueError(
            f"Handler {func_name}: ChainEvent type must have a type"
            " argument, e.g., ChainEvent[TipSent]"
        )

    return (annotation, False)


class MessageRouter:
    """Generic router for dispatching messages to type-specific handlers.

    This class uses singledispatch to route messages (events, queries) to
    registered handler methods based on their type annotations.

    Event handlers receive either the payload or the full ChainEvent
    envelope depending on their annotation.
    """

    __slots__ = ("_dispatch", "_handled_types")

    def __init__(self, default_handler: DefaultHandler):
        """Initialize the message router.

        Args:
            default_handler: Handler for unregistered message types.
        """

        @singledispatch
        def dispatch(message: object, instance: object, *args: Any, **kwargs: Any) -> object:
            kwargs.pop("event_wrapper", None)
            return default_handler(message, instance, *args, **kwargs)

        self._dispatch = dispatch
        self._handled_types: set[type] = set()

    @property
    def handled_types(self) -> frozenset[type]:
        """Message types with an explicitly registered handler."""
        return frozenset(self._handled_types)

    def register(
        self,
        message_type: type,
        handler: Callable[..., object],
        wants_wrapper: bool = False,
    ) -> None:
        """Register a handler for a specific message type.

        Args:
            message_type: The message class this handler processes.
            handler: The method to call when handling this message type.
            wants_wrapper: If True, handler receives the ChainEvent passed
                via the 'event_wrapper' kwarg. If False, receives the payload.
        """
        if message_type in self._handled_types:
            # Subclass overrides were registered first while walking the MRO
            return
        self._handled_types.add(message_type)

        if wants_wrapper:

            def wrapper(
                msg: object, inst: object, *args: Any, h: Any = handler, **kwargs: Any
            ) -> object:
                event_wrapper = kwargs.pop("event_wrapper", None)
                if event_wrapper is not None:
                    return h(inst, event_wrapper, *args, **kwargs)
                return h(inst, msg, *args, **kwargs)

            self._dispatch.register(message_type)(wrapper)
        else:

            def payload_wrapper(
                msg: object, inst: object, *args: Any, h: Any = handler, **kwargs: Any
            ) -> object:
                kwargs.pop("event_wrapper", None)
                return h(inst, msg, *args, **kwargs)

            self._dispatch.register(message_type)(payload_wrapper)

    def route(self, instance: Any, message: Any, *args: Any, **kwargs: Any) -> object:
        """Route a message to its registered handler.

        Args:
            instance: The instance to call the handler on (self).
            message: The message to route (the payload for events).
            *args: Additional positional arguments to pass to handler.
            **kwargs: Additional keyword arguments to pass to handler.
                For events, pass event_wrapper=<ChainEvent> to provide the
                full envelope to handlers that want it.

        Returns:
            The result of the handler method.
        """
        return self._dispatch(message, instance, *args, **kwargs)


class HandlerDecorator:
    """Marks methods as handlers for the message type in their annotation."""

    def __init__(self, marker_attr: str, type_attr: str):
        """Initialize the decorator.

        Args:
            marker_attr: Attribute name to mark decorated methods
                (e.g., '_is_event_handler').
            type_attr: Attribute name to store the message type
                (e.g., '_handles_event_type').
        """
        self.marker_attr = marker_attr
        self.type_attr = type_attr

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        message_type, wants_wrapper = _extract_handler_type(func, param_index=1)
        setattr(func, self.type_attr, message_type)
        setattr(func, self.marker_attr, True)
        setattr(func, _WANTS_EVENT_WRAPPER_ATTR, wants_wrapper)
        return func


handles_event = HandlerDecorator("_is_event_handler", "_handles_event_type")
handles_query = HandlerDecorator("_is_query_handler", "_handles_query_type")

handles_event.__doc__ = """Decorator marking a method as an event \
handler (for event processors).

The payload type is extracted from the method's type annotation. Annotate
with ChainEvent[T] to receive the envelope (tx hash, log index, block time).

Example:
    >>> class MyProjector(EventProcessor):
    ...     @handles_event
    ...     async def on_tip(self, event: ChainEvent[TipSent]) -> None:
    ...         await self.store.apply_tip(...)
"""

handles_query.__doc__ = """Decorator marking a method as a query \
handler (for the query facade).

The query type is extracted from the method's type annotation. Query
handlers return the response type declared by the Query's generic parameter.

Example:
    >>> class TippingQueries(QueryFacade):
    ...     @handles_query
    ...     async def get_post(self, query: GetPost) -> PostDetail | None:
    ...         ...
"""


def setup_routing(
    cls: type,
    marker_attr: str,
    type_attr: str,
    default_handler: DefaultHandler,
) -> MessageRouter:
    """Set up message routing for a class.

    Scans the class hierarchy for methods decorated with the specified
    marker and registers them with a MessageRouter. Handlers defined on a
    subclass take precedence over handlers for the same type further up
    the MRO.

    Args:
        cls: The class to set up routing for.
        marker_attr: Attribute name marking decorated methods.
        type_attr: Attribute name storing the message type.
        default_handler: Handler for unregistered message types.

    Returns:
        A configured MessageRouter.
    """
    router = MessageRouter(default_handler)

    for klass in cls.__mro__:
        for value in klass.__dict__.values():
            if getattr(value, marker_attr, None):
                message_type = getattr(value, type_attr)
                wants_wrapper = getattr(value, _WANTS_EVENT_WRAPPER_ATTR, False)
                router.register(message_type, value, wants_wrapper=wants_wrapper)

    return router


def setup_event_handling(cls: type) -> MessageRouter:
    """Set up event handling for a class.

    Args:
        cls: The class to set up routing for.

    Returns:
        A configured MessageRouter for event handlers.
    """
    return setup_routing(
        cls,
        marker_attr="_is_event_handler",
        type_attr="_handles_event_type",
        default_handler=IgnoreHandler(BaseModel, "handler"),
    )


def setup_query_routing(cls: type) -> MessageRouter:
    """Set up query routing for a query facade class.

    Args:
        cls: The facade class to set up routing for.

    Returns:
        A configured MessageRouter for query handlers.
    """
    from .domain import Query  # Import here to avoid circular dependency

    return setup_routing(
        cls,
        marker_attr="_is_query_handler",
        type_attr="_handles_query_type",
        default_handler=RaiseHandler(Query, "handler"),
    )
