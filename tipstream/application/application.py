import logging
from types import TracebackType
from typing import Any, Protocol, TypeVar, runtime_checkable

from ..domain import Post, Query, utc_now
from .events import (
    CheckpointBackend,
    EventDecoder,
    EventSource,
    InMemoryCheckpointBackend,
    InMemoryEventSource,
    IngestionConfiguration,
    IngestionExecutor,
)
from .projections import TippingProjector, TippingQueries
from .projections.queries import Clock
from .store import ProjectionStore

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class HasLifecycle(Protocol):
    async def on_startup(self) -> None:
        """Called when the application is started."""
        ...

    async def on_shutdown(self) -> None:
        """Called when the application is shutdown."""
        ...


class Application:
    """The wired projection engine.

    Owns one projector, one query facade and one ingestion executor over a
    shared projection store. Use it as an async context manager so that
    every component with a lifecycle is started and shut down.

    Example:
        >>> app = ApplicationBuilder().use_source(source).build()
        >>> async with app:
        ...     await app.run_ingestion()
        ...     page = await app.query(ListPosts())
    """

    def __init__(
        self,
        store: ProjectionStore,
        projector: TippingProjector,
        queries: TippingQueries,
        executor: IngestionExecutor[TippingProjector],
        resources: list[Any],
    ) -> None:
        self.store = store
        self.projector = projector
        self.queries = queries
        self.executor = executor
        self.resources = resources

    async def query(self, query: Query[T]) -> T:
        """Answer a read query from the projection."""
        return await self.queries.query(query)

    async def record_engagement(self, post_id: str, by: int = 1) -> Post | None:
        """Increment a post's engagement counter."""
        return await self.projector.record_engagement(post_id, by)

    async def run_ingestion(self) -> None:
        """Apply events from the source until it ends or ``stop()`` is called."""
        await self.executor.run()

    def stop(self) -> None:
        """Stop ingestion after the in-flight event."""
        self.executor.stop()

    async def startup(self) -> None:
        """Call ``on_startup`` on every component, in registration order."""
        for resource in self.resources:
            await resource.on_startup()

    async def shutdown(self) -> None:
        """Call ``on_shutdown`` on every component, in reverse order."""
        for resource in reversed(self.resources):
            await resource.on_shutdown()

    async def __aenter__(self) -> "Application":
        await self.startup()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_value: BaseException | None,
        _traceback: TracebackType | None,
    ) -> None:
        await self.shutdown()


class ApplicationBuilder:
    """Builder for creating Application instances.

    Every collaborator is injected explicitly; anything not provided falls
    back to its in-memory implementation.

    Example:
        >>> mongo = MongoConfiguration()
        >>> app = (
        ...     ApplicationBuilder()
        ...     .register_resource(mongo)
        ...     .use_store(MongoProjectionStore(mongo))
        ...     .use_checkpoints(MongoCheckpointBackend(mongo))
        ...     .use_source(Web3LogSource(ChainConfiguration()))
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self.store: ProjectionStore | None = None
        self.source: EventSource | None = None
        self.checkpoints: CheckpointBackend | None = None
        self.config: IngestionConfiguration | None = None
        self.decoder: EventDecoder | None = None
        self.clock: Clock = utc_now
        self.resources: list[Any] = []

    def use_store(self, store: ProjectionStore) -> "ApplicationBuilder":
        self.store = store
        return self

    def use_source(self, source: EventSource) -> "ApplicationBuilder":
        self.source = source
        return self

    def use_checkpoints(self, checkpoints: CheckpointBackend) -> "ApplicationBuilder":
        self.checkpoints = checkpoints
        return self

    def use_config(self, config: IngestionConfiguration) -> "ApplicationBuilder":
        self.config = config
        return self

    def use_decoder(self, decoder: EventDecoder) -> "ApplicationBuilder":
        self.decoder = decoder
        return self

    def use_clock(self, clock: Clock) -> "ApplicationBuilder":
        """Set the clock used to compute query time windows."""
        self.clock = clock
        return self

    def register_resource(self, resource: HasLifecycle) -> "ApplicationBuilder":
        """Register an extra component whose lifecycle the application manages.

        Resources start before, and shut down after, the store, checkpoint
        backend and source.
        """
        if not isinstance(resource, HasLifecycle):
            raise TypeError(f"{type(resource).__name__} does not implement HasLifecycle")
        self.resources.append(resource)
        return self

    def build(self) -> Application:
        """Wire the configured components into an Application."""
        config = self.config or IngestionConfiguration()
        store = self.store or ProjectionStore.in_memory()
        source = self.source or InMemoryEventSource()
        checkpoints = self.checkpoints or InMemoryCheckpointBackend()

        projector = TippingProjector(store, config)
        executor = IngestionExecutor(
            source=source,
            processor=projector,
            checkpoints=checkpoints,
            config=config,
            decoder=self.decoder,
        )

        resources: list[Any] = []
        for component in (*self.resources, store, checkpoints, source):
            if isinstance(component, HasLifecycle) and not any(
                component is seen for seen in resources
            ):
                resources.append(component)

        LOGGER.debug(
            "Application built",
            extra={
                "store": type(store).__name__,
                "source": type(source).__name__,
                "checkpoints": type(checkpoints).__name__,
            },
        )
        return Application(
            store=store,
            projector=projector,
            queries=TippingQueries(store, clock=self.clock),
            executor=executor,
            resources=resources,
        )
