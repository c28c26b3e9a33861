"""Payload schemas for the events emitted by the tipping contract.

The payloads form a closed, discriminated union (``AnyPayload``): every
variant carries a literal ``kind`` tag, so decoding a raw log is a single
validation step and a projector can be checked for exhaustiveness against
``PAYLOAD_TYPES``.
"""

from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
)
from pydantic.alias_generators import to_camel

from .event import UtcDatetime


def _coerce_post_id(value: Any) -> Any:
    # uint256 ids arrive as ints from the chain and as strings from JSON
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


PostId = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^\d+$"),
    BeforeValidator(_coerce_post_id),
]
"""Chain-assigned post id as a decimal string."""

Address = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_lower=True, pattern=r"^0x[0-9a-fA-F]+$"),
]
"""Account address, normalised to lower case."""

Amount = Annotated[int, Field(ge=0)]
"""Native-asset amount in minor units (wei)."""


class EventPayload(BaseModel):
    """Base class for contract event payloads."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PostCreated(EventPayload):
    kind: Literal["PostCreated"] = "PostCreated"
    post_id: PostId
    creator: Address
    content: str
    timestamp: UtcDatetime


class TipSent(EventPayload):
    kind: Literal["TipSent"] = "TipSent"
    post_id: PostId
    tipper: Address
    creator: Address
    amount: Amount


class AutoTipEnabled(EventPayload):
    """A tipper authorised an automatic tip once a post reaches a threshold.

    ``delegation_id`` is the stable identity later carried by the matching
    revoke / execute events. When the feed does not supply one, the id of
    the enabling event itself is used.
    """

    kind: Literal["AutoTipEnabled"] = "AutoTipEnabled"
    post_id: PostId
    tipper: Address
    threshold: Amount
    amount: Amount
    delegation_id: str | None = None


class AutoTipRevoked(EventPayload):
    kind: Literal["AutoTipRevoked"] = "AutoTipRevoked"
    post_id: PostId
    tipper: Address
    delegation_id: str = Field(min_length=1)


class AutoTipExecuted(EventPayload):
    """A delegation fired.

    The tip amount applied is always the delegation's stored amount;
    ``amount`` and ``creator`` are informational when present.
    """

    kind: Literal["AutoTipExecuted"] = "AutoTipExecuted"
    post_id: PostId
    tipper: Address
    delegation_id: str = Field(min_length=1)
    creator: Address | None = None
    amount: Amount | None = None


AnyPayload = Annotated[
    PostCreated | TipSent | AutoTipEnabled | AutoTipRevoked | AutoTipExecuted,
    Field(discriminator="kind"),
]

PAYLOAD_TYPES: tuple[type[EventPayload], ...] = (
    PostCreated,
    TipSent,
    AutoTipEnabled,
    AutoTipRevoked,
    AutoTipExecuted,
)

EVENT_KINDS: frozenset[str] = frozenset(t.__name__ for t in PAYLOAD_TYPES)

PAYLOAD_ADAPTER: TypeAdapter[AnyPayload] = TypeAdapter(AnyPayload)
