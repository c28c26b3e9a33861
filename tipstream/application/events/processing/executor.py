import asyncio
import logging
from contextlib import suppress
from typing import Any, Generic, TypeVar

from pymongo.errors import PyMongoError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from ....context import IngestionContext, clear_context, log_extra, set_context
from ....domain import ChainEvent, MalformedEventError, ProjectionStoreError, utc_now
from ..decoding import EventDecoder
from ..source import EventSource, RawEvent
from .checkpoint import Checkpoint, CheckpointBackend
from .config import IngestionConfiguration
from .processor import EventProcessor

LOGGER = logging.getLogger(__name__)

P = TypeVar("P", bound=EventProcessor)

# Failures worth waiting out: the event is retried, ingestion does not advance
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ProjectionStoreError,
    PyMongoError,
    ConnectionError,
    TimeoutError,
)


class IngestionExecutor(Generic[P]):
    """Single-consumer loop feeding chain events into an event processor.

    The executor is the only writer of the projection. It pulls one raw
    event from the source, decodes it, awaits its full application and only
    then pulls the next one, so events are applied strictly in delivery
    order.

    **Failures:**
    - Malformed events (decode or reducer) are logged with their raw
      payload and skipped.
    - Storage failures (``RETRYABLE_EXCEPTIONS``) are retried with
      exponential backoff. Ingestion stalls on the failing event until the
      write succeeds, ``max_attempts`` is exhausted (the error is re-raised
      to halt for an operator) or the executor is stopped.
    - Anything else propagates.

    **Checkpoints:**
    The position of the last applied event is saved every
    ``checkpoint_every`` events and when the loop ends. On start the source
    is resumed from the saved block.

    **Shutdown:**
    ``stop()`` stops pulling new events. The in-flight event is allowed to
    finish, then the final checkpoint is written and ``run()`` returns.

    Example:
        >>> executor = IngestionExecutor(
        ...     source=source,
        ...     processor=TippingProjector(store),
        ...     checkpoints=InMemoryCheckpointBackend(),
        ...     config=IngestionConfiguration(),
        ... )
        >>> await executor.run()  # until the source is exhausted or stop()
    """

    def __init__(
        self,
        source: EventSource,
        processor: P,
        checkpoints: CheckpointBackend,
        config: IngestionConfiguration | None = None,
        decoder: EventDecoder | None = None,
    ) -> None:
        self.source = source
        self.processor = processor
        self.checkpoints = checkpoints
        self.config = config or IngestionConfiguration()
        self.decoder = decoder or EventDecoder()
        self._stopping = asyncio.Event()
        self._position: tuple[int, int] | None = None
        self._events_processed = 0
        self._since_checkpoint = 0

    @property
    def events_processed(self) -> int:
        return self._events_processed

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        """Ask the loop to finish the in-flight event and return."""
        self._stopping.set()

    async def run(self) -> None:
        """Run until the source is exhausted or ``stop()`` is called.

        Raises:
            Any exception that is neither malformed input nor a storage
            failure, and storage failures once ``max_attempts`` is exhausted.
        """
        run_context = IngestionContext.create()
        await self._resume()
        LOGGER.info(
            "Ingestion started",
            extra={**run_context.as_log_extra(), "source": self.config.source_name},
        )

        try:
            while not self._stopping.is_set():
                raw = await self._next_or_stop()
                if raw is None:
                    break
                try:
                    await self.process(raw, run_context)
                except RETRYABLE_EXCEPTIONS:
                    if not self._stopping.is_set():
                        raise
                    LOGGER.warning(
                        "Stopped while retrying event, it will be redelivered",
                        extra=run_context.as_log_extra(),
                    )
                    break
        finally:
            await self.save_checkpoint()
            LOGGER.info(
                "Ingestion stopped",
                extra={
                    **run_context.as_log_extra(),
                    "events_processed": self._events_processed,
                },
            )

    async def process(self, raw: RawEvent, run_context: IngestionContext | None = None) -> bool:
        """Decode and apply one raw event.

        Returns:
            True if the event was handed to the processor, False if it was
            skipped as malformed.
        """
        run_context = run_context or IngestionContext.create()
        try:
            event = self.decoder.decode(raw)
        except MalformedEventError as err:
            self._skip_malformed(err, run_context)
            return False

        set_context(run_context.for_event(event.event_id, event.block_number))
        try:
            await self._apply_with_retry(event)
        except MalformedEventError as err:
            self._skip_malformed(err, run_context)
            return False
        finally:
            clear_context()

        await self._advance(event)
        return True

    async def save_checkpoint(self) -> None:
        """Persist the position of the last applied event, if any."""
        if self._position is None:
            return
        block_number, log_index = self._position
        await self.checkpoints.save_checkpoint(
            Checkpoint(
                source_name=self.config.source_name,
                block_number=block_number,
                log_index=log_index,
                events_processed=self._events_processed,
                updated_at=utc_now(),
            )
        )
        self._since_checkpoint = 0
        LOGGER.debug(
            "Checkpoint saved",
            extra={"block_number": block_number, "log_index": log_index},
        )

    async def _resume(self) -> None:
        checkpoint = await self.checkpoints.load_checkpoint(self.config.source_name)
        if checkpoint is None:
            return
        self._position = (checkpoint.block_number, checkpoint.log_index)
        self._events_processed = checkpoint.events_processed
        await self.source.resume_from(checkpoint.block_number)
        LOGGER.info(
            "Resuming from checkpoint",
            extra={
                "block_number": checkpoint.block_number,
                "log_index": checkpoint.log_index,
            },
        )

    async def _next_or_stop(self) -> RawEvent | None:
        next_event = asyncio.ensure_future(self.source.next())
        stopped = asyncio.ensure_future(self._stopping.wait())
        done, _ = await asyncio.wait({next_event, stopped}, return_when=asyncio.FIRST_COMPLETED)
        if next_event in done:
            stopped.cancel()
            return next_event.result()

        next_event.cancel()
        with suppress(asyncio.CancelledError):
            await next_event
        return None

    async def _apply_with_retry(self, event: ChainEvent[Any]) -> None:
        stop = stop_when_event_set(self._stopping)
        if self.config.max_attempts is not None:
            stop = stop | stop_after_attempt(self.config.max_attempts)

        retrying = AsyncRetrying(
            stop=stop,
            wait=wait_exponential(
                multiplier=self.config.retry_initial_seconds,
                max=self.config.retry_max_seconds,
            ),
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
            sleep=self._backoff,
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.processor.handle(event)

    async def _backoff(self, seconds: float) -> None:
        # Wakes early when stop() is called
        with suppress(TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        LOGGER.warning(
            "Storage failure, retrying event",
            extra=log_extra(
                attempt=retry_state.attempt_number,
                delay=retry_state.next_action.sleep if retry_state.next_action else None,
                error=repr(error),
            ),
        )

    def _skip_malformed(self, err: MalformedEventError, run_context: IngestionContext) -> None:
        LOGGER.error(
            "Skipping malformed event",
            extra={**run_context.as_log_extra(), "error": str(err), "raw": err.raw},
        )
        self._events_processed += 1

    async def _advance(self, event: ChainEvent[Any]) -> None:
        self._position = (event.block_number, event.log_index)
        self._events_processed += 1
        self._since_checkpoint += 1
        if self._since_checkpoint >= self.config.checkpoint_every:
            await self.save_checkpoint()
