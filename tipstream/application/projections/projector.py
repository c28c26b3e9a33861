"""The tipping projector: one idempotent reducer per contract event."""

import logging
from typing import Any, Literal

from ...context import log_extra
from ...domain import (
    PAYLOAD_TYPES,
    AutoTipEnabled,
    AutoTipExecuted,
    AutoTipRevoked,
    ChainEvent,
    Delegation,
    DelegationCloseReason,
    Post,
    PostCreated,
    Tip,
    TipOutcome,
    TipSent,
)
from ...routing import handles_event
from ..events.processing import EventProcessor, IngestionConfiguration
from ..store import ProjectionStore

LOGGER = logging.getLogger(__name__)


class TippingProjector(EventProcessor):
    """Folds contract events into posts, creators, delegations and tips.

    Every reducer is idempotent: applying an event twice leaves the store
    exactly as applying it once. Counters only ever grow and a closed
    delegation is never reopened.

    Expected inconsistencies are logged and skipped, never raised:

    - a duplicate event id (tip log, delegation id, post id)
    - a tip for a post that does not exist yet, which is buffered and
      replayed when the post arrives (``orphan_policy="buffer"``) or
      dropped (``"drop"``)
    - a revoke or execution for an unknown or already-closed delegation

    Storage failures propagate so the ingestion loop can retry the event.

    Example:
        >>> projector = TippingProjector(ProjectionStore.in_memory())
        >>> await projector.handle(post_created)
        >>> await projector.handle(tip_sent)
    """

    required_event_types = PAYLOAD_TYPES

    def __init__(
        self,
        store: ProjectionStore,
        config: IngestionConfiguration | None = None,
    ) -> None:
        self.store = store
        self.orphan_policy: Literal["buffer", "drop"] = (
            config or IngestionConfiguration()
        ).orphan_policy

    async def record_engagement(self, post_id: str, by: int = 1) -> Post | None:
        """Increment a post's engagement counter.

        Args:
            post_id: The post that was interacted with.
            by: Amount to add, at least 1.

        Returns:
            The updated post, or None if the post is unknown.

        Raises:
            ValueError: If ``by`` is not positive.
        """
        if by < 1:
            raise ValueError("Engagement can only increase")
        post = await self.store.increment_engagement(str(post_id), by)
        if post is None:
            LOGGER.warning("Engagement for unknown post", extra=log_extra(post_id=post_id))
        return post

    @handles_event
    async def on_post_created(self, event: ChainEvent[PostCreated]) -> None:
        data = event.data
        created = await self.store.create_post(
            Post(
                post_id=data.post_id,
                creator=data.creator,
                content=data.content,
                created_at=data.timestamp,
            )
        )
        if not created:
            LOGGER.debug("Post already exists", extra=log_extra(post_id=data.post_id))

        # Runs on replays too, in case a previous attempt stopped half way
        await self._release_orphans(data.post_id)

    @handles_event
    async def on_tip_sent(self, event: ChainEvent[TipSent]) -> None:
        data = event.data
        await self._apply_tip(
            event,
            Tip(
                tip_id=event.event_id,
                post_id=data.post_id,
                tipper=data.tipper,
                creator=data.creator,
                amount=data.amount,
                tipped_at=event.block_timestamp,
                block_number=event.block_number,
                log_index=event.log_index,
            ),
        )

    @handles_event
    async def on_auto_tip_enabled(self, event: ChainEvent[AutoTipEnabled]) -> None:
        data = event.data
        delegation_id = data.delegation_id or event.event_id
        inserted = await self.store.insert_delegation(
            Delegation(
                delegation_id=delegation_id,
                post_id=data.post_id,
                tipper=data.tipper,
                threshold=data.threshold,
                amount=data.amount,
                created_at=event.block_timestamp,
                created_by_event=event.event_id,
            )
        )
        if not inserted:
            LOGGER.debug(
                "Delegation already exists", extra=log_extra(delegation_id=delegation_id)
            )
            return
        if await self.store.get_post(data.post_id) is None:
            LOGGER.warning(
                "Delegation references unknown post",
                extra=log_extra(delegation_id=delegation_id, post_id=data.post_id),
            )

    @handles_event
    async def on_auto_tip_revoked(self, event: ChainEvent[AutoTipRevoked]) -> None:
        data = event.data
        closed = await self.store.close_delegation(
            data.delegation_id,
            DelegationCloseReason.REVOKED,
            closed_by_event=event.event_id,
            closed_at=event.block_timestamp,
        )
        if not closed:
            await self._explain_unclosed(data.delegation_id, event.event_id)

    @handles_event
    async def on_auto_tip_executed(self, event: ChainEvent[AutoTipExecuted]) -> None:
        data = event.data
        extra = log_extra(delegation_id=data.delegation_id, post_id=data.post_id)

        delegation = await self.store.get_delegation(data.delegation_id)
        if delegation is None:
            LOGGER.warning("Execution of unknown delegation", extra=extra)
            return
        if not delegation.active and delegation.closed_by_event != event.event_id:
            LOGGER.warning(
                "Execution of closed delegation",
                extra={**extra, "closed_by_event": delegation.closed_by_event},
            )
            return
        if data.amount is not None and data.amount != delegation.amount:
            LOGGER.warning(
                "Executed amount differs from delegation, using delegation amount",
                extra={**extra, "event_amount": data.amount, "amount": delegation.amount},
            )

        post = await self.store.get_post(delegation.post_id)
        if post is None:
            await self._orphan(event, delegation.post_id)
        else:
            await self._apply_tip(
                event,
                Tip(
                    tip_id=event.event_id,
                    post_id=delegation.post_id,
                    tipper=delegation.tipper,
                    creator=data.creator or post.creator,
                    amount=delegation.amount,
                    tipped_at=event.block_timestamp,
                    block_number=event.block_number,
                    log_index=event.log_index,
                    delegation_id=delegation.delegation_id,
                ),
            )

        # Closing after the tip lets a redelivered execution finish the tip
        await self.store.close_delegation(
            delegation.delegation_id,
            DelegationCloseReason.EXECUTED,
            closed_by_event=event.event_id,
            closed_at=event.block_timestamp,
        )

    async def _apply_tip(self, event: ChainEvent[Any], tip: Tip) -> TipOutcome:
        outcome = await self.store.apply_tip(tip)
        if outcome is TipOutcome.DUPLICATE:
            LOGGER.debug("Tip already applied", extra=log_extra(tip_id=tip.tip_id))
        elif outcome is TipOutcome.MISSING_POST:
            await self._orphan(event, tip.post_id)
        return outcome

    async def _orphan(self, event: ChainEvent[Any], post_id: str) -> None:
        extra = log_extra(post_id=post_id, kind=type(event.data).__name__)
        if self.orphan_policy == "drop":
            LOGGER.warning("Event references unknown post, dropped", extra=extra)
            return
        if await self.store.park_orphan(event, post_id):
            LOGGER.warning("Event references unknown post, buffered", extra=extra)

    async def _release_orphans(self, post_id: str) -> None:
        for parked in await self.store.take_orphans(post_id):
            LOGGER.info(
                "Replaying buffered event",
                extra=log_extra(post_id=post_id, orphan_id=parked.event_id),
            )
            await self.handle(parked)
            await self.store.discard_orphan(parked.event_id)

    async def _explain_unclosed(self, delegation_id: str, event_id: str) -> None:
        delegation = await self.store.get_delegation(delegation_id)
        extra = log_extra(delegation_id=delegation_id)
        if delegation is None:
            LOGGER.warning("Revoke of unknown delegation", extra=extra)
        elif delegation.closed_by_event == event_id:
            LOGGER.debug("Delegation already closed by this event", extra=extra)
        else:
            LOGGER.warning(
                "Delegation already closed",
                extra={**extra, "closed_by_event": delegation.closed_by_event},
            )
