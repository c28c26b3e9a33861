from datetime import datetime, timezone
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T", bound=BaseModel)


def utc_now() -> datetime:
    """Get the current UTC timestamp.

    Returns:
        Current datetime with UTC timezone information

    Note:
        Used as the default clock for time-windowed queries so that every
        window is computed in UTC regardless of system timezone.
    """
    return datetime.now(tz=timezone.utc)


def make_event_id(tx_hash: str, log_index: int) -> str:
    """Build the globally unique id of a contract log.

    Args:
        tx_hash: Hash of the emitting transaction.
        log_index: Position of the log within the transaction receipt.

    Returns:
        ``"<tx_hash>-<log_index>"``
    """
    return f"{tx_hash}-{log_index}"


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
"""Datetime normalised to aware UTC."""


class ChainEvent(BaseModel, Generic[T]):
    """Immutable record of one log emitted by the tipping contract.

    ChainEvent is the envelope the ingestion path hands to the projector.
    It combines the chain coordinates of a log (transaction hash, log index,
    block number and block time) with a strongly-typed payload. Events are:

    - **Immutable**: the envelope is frozen once decoded
    - **Ordered**: ``(block_number, log_index)`` orders events on chain
    - **Typed**: the generic parameter T is the payload schema
    - **Identifiable**: ``event_id`` is unique across the whole chain

    Type Parameters:
        T: Pydantic BaseModel subclass defining the payload schema

    Attributes:
        tx_hash: Hash of the transaction that emitted the log
        log_index: Position of the log inside that transaction
        block_number: Block that included the transaction
        block_timestamp: Block time (UTC)
        data: Typed payload (e.g. PostCreated, TipSent)

    Examples:
        >>> event = ChainEvent(
        ...     tx_hash="0xabc",
        ...     log_index=0,
        ...     block_number=12,
        ...     block_timestamp=1_700_000_000,
        ...     data=TipSent(post_id="1", tipper="0xb", creator="0xa", amount=1000),
        ... )
        >>> event.event_id
        '0xabc-0'
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    tx_hash: str = Field(min_length=1, description="Hash of the emitting transaction")
    log_index: int = Field(ge=0, description="Log position within the transaction")
    block_number: int = Field(default=0, ge=0, description="Block including the log")
    block_timestamp: UtcDatetime = Field(
        default_factory=utc_now,
        description="Block time (UTC timezone)",
    )
    data: T = Field(description="Typed event payload conforming to schema T")

    @property
    def event_id(self) -> str:
        """Idempotency key of this event: ``tx_hash-log_index``."""
        return make_event_id(self.tx_hash, self.log_index)
