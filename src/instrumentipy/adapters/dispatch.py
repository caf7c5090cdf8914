"""Bounded queue plus background worker that batches telemetry to a sink.

Producers call :meth:`QueueDispatcher.submit`, which never blocks and never
raises. A background asyncio task drains the queue in batches and awaits the
delivery coroutine. When the queue is full the overflow policy decides what
is dropped; nothing is ever back-pressured onto the caller.
"""

import asyncio
import threading
from collections import deque
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Generic, TypeVar

from instrumentipy.core.logs import log_diagnostic, log_exception

T = TypeVar("T")


class OverflowPolicy(StrEnum):
    """What to drop when a dispatcher queue is full.

    DROP_NEWEST rejects the item being submitted. DROP_OLDEST evicts the
    oldest queued item to make room for it.
    """

    DROP_NEWEST = "drop_newest"
    DROP_OLDEST = "drop_oldest"


class QueueDispatcher(Generic[T]):
    """Batches submitted items to an async delivery function.

    The queue is guarded by a private lock held only for the append or pop,
    so producers on other threads (stdlib logging handlers) are safe and
    concurrent requests never wait on delivery.

    Args:
        name: Label used in diagnostics.
        deliver: Coroutine function receiving one batch. Exceptions it raises
            are logged and counted, never retried.
        max_size: Queue capacity.
        batch_size: Maximum items per delivery.
        flush_interval: Seconds between periodic drains.
        overflow: Policy applied when the queue is full.
    """

    def __init__(
        self,
        name: str,
        deliver: Callable[[list[T]], Awaitable[None]],
        max_size: int = 10000,
        batch_size: int = 20,
        flush_interval: float = 1.0,
        overflow: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
    ) -> None:
        if max_size <= 0 or batch_size <= 0:
            raise ValueError("max_size and batch_size must be positive")
        self.name = name
        self._deliver = deliver
        self.max_size = max_size
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.overflow = OverflowPolicy(overflow)
        self._items: deque[T] = deque()
        self._lock = threading.Lock()
        self._drain_lock: asyncio.Lock | None = None
        self._wakeup: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self.submitted = 0
        self.delivered = 0
        self.dropped = 0
        self.failed_batches = 0

    @property
    def pending(self) -> int:
        """Number of items waiting for delivery."""
        with self._lock:
            return len(self._items)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, item: T) -> bool:
        """Queue an item without blocking.

        Returns:
            True if the item was queued, False if it was dropped.
        """
        evicted = False
        with self._lock:
            self.submitted += 1
            if len(self._items) >= self.max_size:
                self.dropped += 1
                if self.overflow is OverflowPolicy.DROP_NEWEST:
                    accepted = False
                else:
                    self._items.popleft()
                    self._items.append(item)
                    accepted = evicted = True
            else:
                self._items.append(item)
                accepted = True
            full_batch = len(self._items) >= self.batch_size
        if not accepted or evicted:
            log_diagnostic(
                "%s queue full (%d items), dropped %s item",
                self.name,
                self.max_size,
                "newest" if not accepted else "oldest",
            )
        if full_batch:
            self._notify()
        return accepted

    def _notify(self) -> None:
        loop, wakeup = self._loop, self._wakeup
        if loop is None or wakeup is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            # Loop shutting down; the final drain picks the items up.
            pass

    def _take(self, limit: int) -> list[T]:
        with self._lock:
            count = min(limit, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def _get_drain_lock(self) -> asyncio.Lock:
        if self._drain_lock is None:
            self._drain_lock = asyncio.Lock()
        return self._drain_lock

    async def flush(self) -> None:
        """Deliver everything queued so far, batch by batch."""
        async with self._get_drain_lock():
            while batch := self._take(self.batch_size):
                await self._deliver_batch(batch)

    async def _deliver_batch(self, batch: list[T]) -> None:
        try:
            await self._deliver(batch)
        except Exception:
            self.failed_batches += 1
            log_exception(
                "%s dispatcher failed to deliver %d items", self.name, len(batch)
            )
        else:
            self.delivered += len(batch)

    async def _run(self) -> None:
        assert self._wakeup is not None
        while not self._stopping:
            try:
                await asyncio.wait_for(self._wakeup.wait(), self.flush_interval)
            except TimeoutError:
                pass
            self._wakeup.clear()
            await self.flush()

    def start(self) -> None:
        """Start the background worker on the running event loop."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-dispatcher")

    async def stop(self, flush: bool = True, timeout: float = 5.0) -> None:
        """Stop the worker, optionally delivering what is still queued.

        Args:
            flush: Deliver pending items before returning.
            timeout: Upper bound in seconds for the final delivery. A sink
                that hangs past it is abandoned and reported.
        """
        self._stopping = True
        if self._task is not None:
            if self._wakeup is not None:
                self._wakeup.set()
            try:
                await asyncio.wait_for(self._task, timeout)
            except TimeoutError:
                log_diagnostic("%s dispatcher did not stop within %ss", self.name, timeout)
            self._task = None
        if flush:
            try:
                await asyncio.wait_for(self.flush(), timeout)
            except TimeoutError:
                log_diagnostic(
                    "%s dispatcher abandoned %d items at shutdown",
                    self.name,
                    self.pending,
                )
        self._loop = None
        self._wakeup = None
