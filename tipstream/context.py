import contextvars
from dataclasses import dataclass, replace
from typing import Any

from ulid import ULID


@dataclass(frozen=True)
class IngestionContext:
    """Immutable context describing the event currently being ingested.

    IngestionContext ties every log line written while an event is applied
    back to the ingestion run and to the chain log that caused it.

    Attributes:
        run_id: Unique ID of the ingestion run (one per executor start).
            Remains constant for every event processed by that run.
        event_id: ``tx_hash-log_index`` of the event being applied.
        block_number: Block that included the event.

    Examples:
        Create a new context when an ingestion run starts:

        >>> ctx = IngestionContext.create()

        Derive the context for one event:

        >>> event_ctx = ctx.for_event(event.event_id, event.block_number)
        >>> # run_id stays the same
    """

    run_id: ULID | None = None
    event_id: str | None = None
    block_number: int | None = None

    @classmethod
    def create(cls, run_id: ULID | None = None) -> "IngestionContext":
        """Create a new context for an ingestion run.

        Args:
            run_id: Optional run ID. If not provided, a new ULID is generated.

        Returns:
            A new IngestionContext instance.
        """
        return cls(run_id=run_id if run_id is not None else ULID())

    def for_event(self, event_id: str, block_number: int | None = None) -> "IngestionContext":
        """Create a child context for applying one event.

        Args:
            event_id: The id of the event being applied.
            block_number: The block that included the event.

        Returns:
            A new IngestionContext with the event coordinates set.
        """
        return replace(self, event_id=event_id, block_number=block_number)

    def as_log_extra(self) -> dict[str, Any]:
        """Render the populated fields as a ``logging`` ``extra`` mapping."""
        extra: dict[str, Any] = {}
        if self.run_id is not None:
            extra["run_id"] = str(self.run_id)
        if self.event_id is not None:
            extra["event_id"] = self.event_id
        if self.block_number is not None:
            extra["block_number"] = self.block_number
        return extra


_context: contextvars.ContextVar[IngestionContext | None] = contextvars.ContextVar(
    "ingestion_context", default=None
)


def get_context() -> IngestionContext:
    """Get the current ingestion context.

    If no context has been set, returns an empty IngestionContext with all
    fields None.
    """
    ctx = _context.get()
    if ctx is None:
        return IngestionContext()
    return ctx


def set_context(context: IngestionContext) -> None:
    """Set the current ingestion context."""
    _context.set(context)


def clear_context() -> None:
    """Clear the current ingestion context."""
    _context.set(None)


def log_extra(**fields: Any) -> dict[str, Any]:
    """Merge the current context into a ``logging`` ``extra`` mapping.

    Example:
        >>> LOGGER.warning("Tip references unknown post", extra=log_extra(post_id="99"))
    """
    extra = get_context().as_log_extra()
    extra.update(fields)
    return extra
