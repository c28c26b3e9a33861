"""Decoding of raw contract events into typed ChainEvent envelopes."""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ...domain import EVENT_KINDS, PAYLOAD_ADAPTER, ChainEvent, MalformedEventError

_ENVELOPE_FIELDS = {
    "tx_hash": ("tx_hash", "txHash", "transactionHash"),
    "log_index": ("log_index", "logIndex"),
    "block_number": ("block_number", "blockNumber"),
    "block_timestamp": ("block_timestamp", "blockTimestamp"),
}


class EventDecoder:
    """Validate raw events into the closed set of ChainEvent payloads.

    A raw event is a mapping shaped like::

        {
            "kind": "TipSent",
            "tx_hash": "0x...",
            "log_index": 3,
            "block_number": 1200,
            "block_timestamp": 1700000000,
            "payload": {"postId": "1", "tipper": "0x...", ...},
        }

    Envelope keys may be snake_case or camelCase. ``kind`` may sit at the top
    level or inside ``payload``. Already-typed ChainEvents pass through
    unchanged.

    Examples:
        >>> decoder = EventDecoder()
        >>> event = decoder.decode(raw)
        >>> type(event.data).__name__
        'TipSent'
    """

    def decode(self, raw: Mapping[str, Any] | ChainEvent[Any]) -> ChainEvent[Any]:
        """Decode one raw event.

        Args:
            raw: Mapping from the source, or an already-decoded ChainEvent.

        Returns:
            The typed event envelope.

        Raises:
            MalformedEventError: If a required field is missing, a value has
                the wrong shape, or the kind is unknown.
        """
        if isinstance(raw, ChainEvent):
            return raw
        if not isinstance(raw, Mapping):
            raise MalformedEventError(f"Raw event must be a mapping, got {type(raw).__name__}")

        payload = raw.get("payload")
        if not isinstance(payload, Mapping):
            raise MalformedEventError("Raw event has no payload mapping", raw)

        payload = dict(payload)
        kind = payload.get("kind", raw.get("kind"))
        if kind not in EVENT_KINDS:
            raise MalformedEventError(f"Unknown event kind: {kind!r}", raw)
        payload["kind"] = kind

        envelope: dict[str, Any] = {}
        for field, keys in _ENVELOPE_FIELDS.items():
            for key in keys:
                if key in raw:
                    envelope[field] = raw[key]
                    break

        try:
            data = PAYLOAD_ADAPTER.validate_python(payload)
            return ChainEvent(data=data, **envelope)
        except ValidationError as err:
            raise MalformedEventError(f"Invalid {kind} event: {err}", raw) from err
