"""Shared asyncio runtime for a pipeline run.

RunContext:
    Single cancellation signal for the whole run. Fired explicitly with
    cancel() or by the run deadline. Every suspension point (semaphore
    acquisition, rate-limiter wait, network call, cool-down) goes through
    guard() or sleep() so it observes the signal.

Ticker:
    Periodic tick source shared by all workers of a pool. Ticks nobody is
    waiting for are dropped.

fan_out:
    Bounded fan-out/fan-in. At most max_concurrency workers are alive at
    once; their outcomes are collected in one queue sized to the batch.

Example:
    >>> ctx = RunContext(timeout=1800)
    >>> outcomes = await fan_out(ctx, urls, fetch_one, 5, on_cancel=cancelled_result)
    >>> ctx.close()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from errors import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RunContext:
    """Cancellable execution context with an optional deadline."""

    def __init__(self, timeout: float | None = None):
        """Create the context. Must be called from a running event loop.

        Args:
            timeout: Deadline in seconds for the whole run (None or <= 0 disables it)
        """
        self._event = asyncio.Event()
        self._reason = ""
        self._timer: asyncio.TimerHandle | None = None
        if timeout and timeout > 0:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(
                timeout, self.cancel, f"run deadline exceeded after {timeout:g}s"
            )

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the cancellation signal. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.warning("Run cancelled | reason=%s", reason)

    def ensure_not_cancelled(self) -> None:
        """Raise CancellationError if the signal has fired."""
        if self._event.is_set():
            raise CancellationError(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await something, giving up as soon as the run is cancelled.

        The wrapped awaitable is cancelled when the signal wins the race.

        Raises:
            CancellationError: If the run was cancelled first
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancellationError(self._reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise CancellationError(self._reason)

    async def sleep(self, delay: float) -> None:
        """Cancellable sleep used for cool-down periods."""
        if delay <= 0:
            self.ensure_not_cancelled()
            return
        await self.guard(asyncio.sleep(delay))

    def close(self) -> None:
        """Release the deadline timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class Ticker:
    """Shared periodic tick, used as a rate limiter across workers.

    Usage:
        >>> async with Ticker(2.0) as ticker:
        ...     await ticker.wait()
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None

    async def __aenter__(self) -> "Ticker":
        if self.interval > 0:
            self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self._queue.full():
                self._queue.put_nowait(None)

    async def wait(self) -> None:
        """Block until the next tick (returns at once when rate limiting is off)."""
        if self.interval <= 0:
            return
        await self._queue.get()


async def fan_out(
    ctx: RunContext,
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    max_concurrency: int,
    on_cancel: Callable[[int, T, CancellationError], R],
) -> list[R]:
    """Run worker over every item with bounded concurrency.

    The dispatcher acquires a slot before creating each task, so no more
    than max_concurrency workers exist at any time. Workers must report
    failures through their return value rather than raising. If the run is
    cancelled while the dispatcher waits for a slot, on_cancel produces the
    outcome for every item not yet dispatched.

    Args:
        ctx: Run context observed while waiting for slots
        items: Units of work
        worker: Coroutine function called as worker(index, item)
        max_concurrency: Maximum number of live workers (>= 1)
        on_cancel: Builds the outcome for an item skipped by cancellation

    Returns:
        One outcome per item, in the order they were emitted.
    """
    semaphore = asyncio.Semaphore(max_concurrency)
    results: asyncio.Queue[R] = asyncio.Queue(maxsize=len(items))
    tasks: list[asyncio.Task] = []

    async def run(index: int, item: T) -> None:
        try:
            results.put_nowait(await worker(index, item))
        finally:
            semaphore.release()

    try:
        for index, item in enumerate(items):
            try:
                await ctx.guard(semaphore.acquire())
            except CancellationError as e:
                for rest in range(index, len(items)):
                    results.put_nowait(on_cancel(rest, items[rest], e))
                break
            tasks.append(asyncio.create_task(run(index, item)))

        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    outcomes: list[R] = []
    while not results.empty():
        outcomes.append(results.get_nowait())
    return outcomes
