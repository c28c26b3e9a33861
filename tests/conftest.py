"""Central test fixtures for the tipping projection."""

from datetime import datetime, timedelta, timezone

import pytest

from tipstream.application import (
    InMemoryCheckpointBackend,
    InMemoryProjectionStore,
    TippingProjector,
    TippingQueries,
)

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)

CREATOR = "0xa"
TIPPER = "0xb"
OTHER_CREATOR = "0xc"


def raw_event(
    kind: str,
    payload: dict,
    tx_hash: str = "0xt1",
    log_index: int = 0,
    block_number: int = 1,
    block_timestamp: datetime | None = None,
) -> dict:
    """Build a raw event mapping as a source would deliver it."""
    return {
        "kind": kind,
        "tx_hash": tx_hash,
        "log_index": log_index,
        "block_number": block_number,
        "block_timestamp": (block_timestamp or NOW - timedelta(hours=1)).isoformat(),
        "payload": payload,
    }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryProjectionStore:
    """Create an in-memory projection store."""
    return InMemoryProjectionStore()


@pytest.fixture
def projector(store: InMemoryProjectionStore) -> TippingProjector:
    """Create a projector writing to the in-memory store."""
    return TippingProjector(store)


@pytest.fixture
def queries(store: InMemoryProjectionStore) -> TippingQueries:
    """Create a query facade with a fixed clock."""
    return TippingQueries(store, clock=lambda: NOW)


@pytest.fixture
def checkpoints() -> InMemoryCheckpointBackend:
    return InMemoryCheckpointBackend()


@pytest.fixture
def make_raw():
    """Factory for raw event mappings."""
    return raw_event
