"""Tests for wiring and running the application."""

import pytest

from tipstream.application import (
    ApplicationBuilder,
    InMemoryEventSource,
    InMemoryProjectionStore,
    IngestionConfiguration,
)
from tipstream.domain.query import GetCreator, GetPost, ListPosts


class RecordingResource:
    def __init__(self, name: str, calls: list[str]) -> None:
        self.name = name
        self.calls = calls

    async def on_startup(self) -> None:
        self.calls.append(f"start {self.name}")

    async def on_shutdown(self) -> None:
        self.calls.append(f"stop {self.name}")


class RecordingStore(InMemoryProjectionStore):
    def __init__(self, calls: list[str]) -> None:
        super().__init__()
        self.calls = calls

    async def on_startup(self) -> None:
        self.calls.append("start store")

    async def on_shutdown(self) -> None:
        self.calls.append("stop store")


def history(make_raw):
    return [
        make_raw(
            "PostCreated",
            {"postId": "1", "creator": "0xa", "content": "gm", "timestamp": 1_700_000_000},
            tx_hash="0xp1",
            block_number=1,
        ),
        make_raw(
            "TipSent",
            {"postId": "1", "tipper": "0xb", "creator": "0xa", "amount": 1000},
            tx_hash="0xt1",
            block_number=2,
        ),
    ]


@pytest.mark.asyncio
async def test_build_defaults_to_in_memory_components():
    app = ApplicationBuilder().build()

    assert isinstance(app.store, InMemoryProjectionStore)
    assert isinstance(app.executor.source, InMemoryEventSource)
    assert app.projector.store is app.store
    assert app.queries.store is app.store


@pytest.mark.asyncio
async def test_ingests_and_answers_queries(make_raw):
    app = ApplicationBuilder().use_source(InMemoryEventSource(history(make_raw))).build()

    async with app:
        await app.run_ingestion()
        detail = await app.query(GetPost(post_id="1"))
        creator = await app.query(GetCreator(address="0xa"))

    assert detail.post.total_tips == 1000
    assert creator.total_earnings == 1000


@pytest.mark.asyncio
async def test_record_engagement_reaches_queries(make_raw):
    app = ApplicationBuilder().use_source(InMemoryEventSource(history(make_raw))).build()

    async with app:
        await app.run_ingestion()
        await app.record_engagement("1", by=3)
        page = await app.query(ListPosts())

    assert page.items[0].engagement == 3


@pytest.mark.asyncio
async def test_lifecycle_order():
    calls: list[str] = []
    app = (
        ApplicationBuilder()
        .register_resource(RecordingResource("connection", calls))
        .use_store(RecordingStore(calls))
        .build()
    )

    async with app:
        calls.append("running")

    assert calls == ["start connection", "start store", "running", "stop store", "stop connection"]


@pytest.mark.asyncio
async def test_shared_resources_are_started_once():
    calls: list[str] = []
    store = RecordingStore(calls)
    app = ApplicationBuilder().register_resource(store).use_store(store).build()

    async with app:
        pass

    assert calls == ["start store", "stop store"]


def test_register_resource_requires_lifecycle():
    with pytest.raises(TypeError, match="HasLifecycle"):
        ApplicationBuilder().register_resource(object())


def test_config_reaches_projector():
    app = ApplicationBuilder().use_config(IngestionConfiguration(orphan_policy="drop")).build()

    assert app.projector.orphan_policy == "drop"


@pytest.mark.asyncio
async def test_stop_ends_ingestion(make_raw):
    source = InMemoryEventSource(history(make_raw), follow=True)
    app = ApplicationBuilder().use_source(source).build()

    app.stop()
    async with app:
        await app.run_ingestion()

    assert app.executor.events_processed == 0
