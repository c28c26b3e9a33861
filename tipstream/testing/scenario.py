from collections.abc import Callable, Hashable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel

from tipstream.application import ProjectionStore, TippingProjector
from tipstream.domain import ChainEvent, Creator, Delegation, Post, Tip

from .core import Scenario, StateMatches

GENESIS = datetime(2024, 1, 1, tzinfo=timezone.utc)


class ProjectionScenario(Scenario[Any]):
    """A scenario for testing the tipping projector against a store.

    Bare payloads are wrapped in a ChainEvent with a fresh transaction
    hash, one block per event, starting at ``GENESIS``. Pass a ChainEvent
    to control its coordinates, e.g. to deliver the same log twice.

        >>> async with ProjectionScenario() as scenario:
        ...     scenario.given(
        ...         PostCreated(post_id="1", creator="0xa", content="gm", timestamp=GENESIS),
        ...         TipSent(post_id="1", tipper="0xb", creator="0xa", amount=1000),
        ...     )
        ...     scenario.should_have_post("1", lambda p: p.tip_count == 1)
        ...     scenario.should_have_creator("0xa", lambda c: c.total_earnings == 1000)
    """

    def __init__(
        self,
        store: ProjectionStore | None = None,
        projector: TippingProjector | None = None,
    ):
        super().__init__()
        self.store = store or (projector.store if projector else ProjectionStore.in_memory())
        self.projector = projector or TippingProjector(self.store)

    async def perform_actions(self) -> None:
        for block, event in enumerate(self.events, start=1):
            if not isinstance(event, ChainEvent):
                event = as_chain_event(event, block)
            try:
                await self.projector.handle(event)
            except Exception as e:
                self.errors.append(e)

    def should_have_post(
        self, post_id: str, predicate: Callable[[Post], bool] = lambda _: True
    ) -> "ProjectionScenario":
        self.expectations.append(
            StateMatches(("post", post_id), lambda p: p is not None and predicate(p))
        )
        return self

    def should_not_have_post(self, post_id: str) -> "ProjectionScenario":
        self.expectations.append(StateMatches(("post", post_id), lambda p: p is None))
        return self

    def should_have_creator(
        self, address: str, predicate: Callable[[Creator], bool] = lambda _: True
    ) -> "ProjectionScenario":
        self.expectations.append(
            StateMatches(("creator", address), lambda c: c is not None and predicate(c))
        )
        return self

    def should_not_have_creator(self, address: str) -> "ProjectionScenario":
        self.expectations.append(StateMatches(("creator", address), lambda c: c is None))
        return self

    def should_have_delegation(
        self, delegation_id: str, predicate: Callable[[Delegation], bool] = lambda _: True
    ) -> "ProjectionScenario":
        self.expectations.append(
            StateMatches(("delegation", delegation_id), lambda d: d is not None and predicate(d))
        )
        return self

    def should_have_tips(
        self, post_id: str, predicate: Callable[[list[Tip]], bool]
    ) -> "ProjectionScenario":
        self.expectations.append(StateMatches(("tips", post_id), predicate))
        return self

    async def get_state(self, state_key: Hashable) -> Any:
        kind, key = state_key  # type: ignore[misc]
        if kind == "post":
            return await self.store.get_post(key)
        if kind == "creator":
            return await self.store.get_creator(key)
        if kind == "delegation":
            return await self.store.get_delegation(key)
        if kind == "tips":
            return await self.store.find_tips(post_id=key)
        return None


def as_chain_event(
    payload: BaseModel,
    block_number: int,
    log_index: int = 0,
    tx_hash: str | None = None,
) -> ChainEvent[Any]:
    """Wrap a payload in an envelope at ``block_number`` (one second per block)."""
    return ChainEvent(
        tx_hash=tx_hash or f"0x{block_number:064x}",
        log_index=log_index,
        block_number=block_number,
        block_timestamp=GENESIS + timedelta(seconds=block_number),
        data=payload,
    )
