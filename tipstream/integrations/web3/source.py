"""Event source reading the tipping contract's logs with web3.py."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from contextlib import suppress
from functools import cached_property
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import MismatchedABI, Web3Exception

from ...application.events import EventSource, RawEvent
from ...domain import ChainSourceError
from .abi import EVENT_NAMES, TIPPING_EVENTS_ABI, delegation_id
from .config import ChainConfiguration

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RPC_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    OSError,
    TimeoutError,
    Web3Exception,
)


class Web3LogSource(EventSource):
    """Polls ``eth_getLogs`` for the tipping contract and yields raw events.

    Blocks are scanned in ranges of at most ``block_range`` blocks and only
    up to ``confirmations`` blocks behind the chain head. Logs of a range
    are delivered in ``(block_number, log_index)`` order with their block
    time attached. Once caught up the source waits ``poll_interval_seconds``
    between polls until it is closed.

    RPC calls are retried with exponential backoff; once
    ``rpc_max_attempts`` is exhausted ``ChainSourceError`` is raised.

    Example:
        >>> source = Web3LogSource(ChainConfiguration(rpc_url="https://..."))
        >>> raw = await source.next()
        >>> raw["kind"], raw["payload"]["postId"]
        ('PostCreated', 1)
    """

    def __init__(self, config: ChainConfiguration, w3: AsyncWeb3 | None = None) -> None:
        self.config = config
        self._w3 = w3
        self._next_block = config.start_block
        self._buffer: deque[RawEvent] = deque()
        self._closed = asyncio.Event()

    @property
    def w3(self) -> AsyncWeb3:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self.config.rpc_url))
        return self._w3

    @cached_property
    def contract(self) -> Any:
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.config.contract_address),
            abi=TIPPING_EVENTS_ABI,
        )

    @property
    def next_block(self) -> int:
        """First block that has not been scanned yet."""
        return self._next_block

    async def resume_from(self, block_number: int) -> None:
        self._next_block = block_number
        self._buffer.clear()

    async def depth(self) -> int:
        return len(self._buffer)

    async def next(self) -> RawEvent | None:
        while not self._buffer:
            if self._closed.is_set():
                return None
            if not await self.poll():
                await self._wait(self.config.poll_interval_seconds)
        return self._buffer.popleft()

    async def poll(self) -> bool:
        """Scan the next block range.

        Returns:
            True if a range was scanned, False if no confirmed block is
            available yet.

        Raises:
            ChainSourceError: If the RPC endpoint keeps failing.
        """
        head = await self._rpc(lambda: self.w3.eth.block_number) - self.config.confirmations
        if head < self._next_block:
            return False

        from_block = self._next_block
        to_block = min(head, from_block + self.config.block_range - 1)
        logs = await self._rpc(
            lambda: self.w3.eth.get_logs(
                {
                    "address": AsyncWeb3.to_checksum_address(self.config.contract_address),
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            )
        )

        timestamps: dict[int, int] = {}
        for log in sorted(logs, key=lambda entry: (entry["blockNumber"], entry["logIndex"])):
            raw = self._decode_log(log)
            if raw is None:
                continue
            block_number = raw["block_number"]
            if block_number not in timestamps:
                block = await self._rpc(lambda: self.w3.eth.get_block(block_number))
                timestamps[block_number] = block["timestamp"]
            raw["block_timestamp"] = timestamps[block_number]
            self._buffer.append(raw)

        self._next_block = to_block + 1
        LOGGER.debug(
            "Scanned block range",
            extra={"from_block": from_block, "to_block": to_block, "events": len(self._buffer)},
        )
        return True

    async def close(self) -> None:
        self._closed.set()
        if self._w3 is not None and hasattr(self._w3.provider, "disconnect"):
            await self._w3.provider.disconnect()

    def _decode_log(self, log: Mapping[str, Any]) -> dict[str, Any] | None:
        for name in EVENT_NAMES:
            try:
                decoded = getattr(self.contract.events, name)().process_log(log)
            except MismatchedABI:
                continue
            return to_raw_event(name, decoded)

        LOGGER.debug(
            "Ignoring log with unknown topic",
            extra={"block_number": log.get("blockNumber"), "log_index": log.get("logIndex")},
        )
        return None

    async def _rpc(self, call: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.rpc_max_attempts),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type(RPC_RETRYABLE_EXCEPTIONS),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await call()
        except RPC_RETRYABLE_EXCEPTIONS as err:
            raise ChainSourceError(f"RPC call failed: {err!r}") from err
        return result

    async def _wait(self, seconds: float) -> None:
        with suppress(TimeoutError):
            await asyncio.wait_for(self._closed.wait(), timeout=seconds)


def to_raw_event(name: str, decoded: Mapping[str, Any]) -> dict[str, Any]:
    """Turn a web3 decoded log into the raw event shape the decoder reads.

    ``autoTipId`` is folded into ``delegationId``; every other argument is
    passed through under its ABI name.
    """
    args = dict(decoded["args"])
    payload: dict[str, Any] = {k: v for k, v in args.items() if k != "autoTipId"}
    if "autoTipId" in args:
        payload["delegationId"] = delegation_id(args["postId"], args["autoTipId"])
    payload["kind"] = name
    return {
        "kind": name,
        "tx_hash": AsyncWeb3.to_hex(decoded["transactionHash"]),
        "log_index": decoded["logIndex"],
        "block_number": decoded["blockNumber"],
        "payload": payload,
    }
