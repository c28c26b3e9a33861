"""Tests for annotation-based event and query routing."""

import pytest

from tipstream.application import EventProcessor, QueryFacade
from tipstream.domain import ChainEvent, PostCreated, Query, TipSent
from tipstream.routing import handles_event, handles_query


def tip_event(amount: int = 1000) -> ChainEvent[TipSent]:
    return ChainEvent(
        tx_hash="0xt1",
        log_index=0,
        block_number=7,
        data=TipSent(post_id="1", tipper="0xb", creator="0xa", amount=amount),
    )


class PayloadRecorder(EventProcessor):
    def __init__(self) -> None:
        self.received: list[object] = []

    @handles_event
    async def on_tip(self, event: TipSent) -> None:
        self.received.append(event)


class EnvelopeRecorder(EventProcessor):
    def __init__(self) -> None:
        self.received: list[object] = []

    @handles_event
    async def on_tip(self, event: ChainEvent[TipSent]) -> None:
        self.received.append(event)


class SyncRecorder(EventProcessor):
    def __init__(self) -> None:
        self.amounts: list[int] = []

    @handles_event
    def on_tip(self, event: TipSent) -> int:
        self.amounts.append(event.amount)
        return event.amount


@pytest.mark.asyncio
async def test_payload_annotation_receives_payload():
    processor = PayloadRecorder()
    event = tip_event()

    await processor.handle(event)

    assert processor.received == [event.data]


@pytest.mark.asyncio
async def test_envelope_annotation_receives_chain_event():
    processor = EnvelopeRecorder()
    event = tip_event()

    await processor.handle(event)

    assert processor.received == [event]
    assert processor.received[0].block_number == 7


@pytest.mark.asyncio
async def test_sync_handlers_are_supported():
    processor = SyncRecorder()

    result = await processor.handle(tip_event(amount=5))

    assert result == 5
    assert processor.amounts == [5]


@pytest.mark.asyncio
async def test_unhandled_event_types_are_ignored():
    processor = PayloadRecorder()
    event = ChainEvent(
        tx_hash="0xt2",
        log_index=0,
        data=PostCreated(post_id="1", creator="0xa", content="gm", timestamp=0),
    )

    assert await processor.handle(event) is None
    assert processor.received == []


def test_handled_event_types():
    assert PayloadRecorder.handled_event_types() == frozenset({TipSent})


def test_subclass_handler_overrides_parent():
    class Parent(EventProcessor):
        @handles_event
        def on_tip(self, event: TipSent) -> str:
            return "parent"

    class Child(Parent):
        @handles_event
        def on_tip_again(self, event: TipSent) -> str:
            return "child"

    assert Child._event_router.route(Child(), tip_event().data) == "child"


def test_missing_required_handler_fails_at_class_definition():
    with pytest.raises(TypeError, match="PostCreated"):

        class Incomplete(EventProcessor):
            required_event_types = (TipSent, PostCreated)

            @handles_event
            async def on_tip(self, event: TipSent) -> None:
                pass


def test_handler_without_annotation_is_rejected():
    with pytest.raises(ValueError, match="type annotation"):

        class Broken(EventProcessor):
            @handles_event
            async def on_anything(self, event) -> None:
                pass


def test_bare_chain_event_annotation_is_rejected():
    with pytest.raises(ValueError, match="type argument"):

        class Broken(EventProcessor):
            @handles_event
            async def on_anything(self, event: ChainEvent) -> None:
                pass


class Ping(Query[str]):
    pass


class Unanswered(Query[str]):
    pass


class PingFacade(QueryFacade):
    @handles_query
    async def ping(self, query: Ping) -> str:
        return "pong"


@pytest.mark.asyncio
async def test_query_is_routed_to_handler():
    assert await PingFacade().query(Ping()) == "pong"


@pytest.mark.asyncio
async def test_unregistered_query_raises():
    with pytest.raises(NotImplementedError, match="Unanswered"):
        await PingFacade().query(Unanswered())
