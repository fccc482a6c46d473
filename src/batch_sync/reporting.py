"""Result aggregation and progress reporting."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic

from .core.protocols import TItem, TOutput

if TYPE_CHECKING:
    from .base import JobResult

logger = logging.getLogger(__name__)


class ResultAggregator(Generic[TItem, TOutput]):
    """
    Collects terminal results from concurrent workers.

    ``record()`` is atomic, so counts stay consistent no matter how many
    workers finish at once.
    """

    def __init__(self):
        self._results: list["JobResult[TItem, TOutput]"] = []
        self.succeeded = 0
        self.failed = 0
        self._first_admitted_at: float | None = None
        self._last_finished_at: float | None = None
        self._lock = asyncio.Lock()

    async def mark_admitted(self) -> None:
        """Note that a worker has started on an item."""
        async with self._lock:
            if self._first_admitted_at is None:
                self._first_admitted_at = time.monotonic()

    async def record(self, result: "JobResult[TItem, TOutput]") -> int:
        """
        Record a terminal result.

        Returns:
            Number of results recorded so far, this one included
        """
        async with self._lock:
            self._results.append(result)
            if result.success:
                self.succeeded += 1
            else:
                self.failed += 1
            self._last_finished_at = time.monotonic()
            return len(self._results)

    async def results(self) -> list["JobResult[TItem, TOutput]"]:
        async with self._lock:
            return list(self._results)

    async def duration(self) -> float:
        """Seconds from first admission to the last terminal state (0.0 if none)."""
        async with self._lock:
            if self._first_admitted_at is None or self._last_finished_at is None:
                return 0.0
            return max(0.0, self._last_finished_at - self._first_admitted_at)


class ProgressReporter:
    """
    Delivers progress notifications from one dedicated task.

    Workers push terminal events with ``report()``; a single drain task owns
    the completed counter and calls the callback in order, so ``completed``
    runs 1..total without gaps and the callback never runs concurrently with
    itself. Sync callbacks run in a worker thread, async ones are awaited.

    ``timeout`` cancels a slow async callback. A thread cannot be cancelled,
    so a slow sync callback is only reported and the next notification waits
    for it to return.
    """

    def __init__(
        self,
        callback: Callable[[int, int, Any], Awaitable[None] | None] | None,
        timeout: float | None = None,
    ):
        self.callback = callback
        self.timeout = timeout
        self.completed = 0
        self._is_async = False
        if callback is not None:
            self._is_async = inspect.iscoroutinefunction(callback) or (
                callable(callback) and inspect.iscoroutinefunction(callback.__call__)
            )
        self._events: asyncio.Queue[tuple[int, Any] | None] | None = None
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the drain task. No-op without a callback."""
        if self.callback is None or self._task is not None:
            return
        self._events = asyncio.Queue()
        self._task = asyncio.create_task(self._drain())

    def report(self, total: int, item: Any) -> None:
        """Queue a notification for one item that reached a terminal state."""
        if self._events is None:
            return
        self._events.put_nowait((total, item))

    async def close(self) -> None:
        """Deliver every queued notification, then stop the drain task."""
        if self._task is None or self._events is None:
            return
        self._events.put_nowait(None)
        await self._task
        self._task = None
        self._events = None

    async def abort(self) -> None:
        """Stop the drain task without delivering pending notifications."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(asyncio.gather(self._task, return_exceptions=True), timeout=2.0)
            except TimeoutError:
                logger.warning("⚠️  Progress reporter did not cancel in time")
        self._task = None
        self._events = None

    async def _drain(self) -> None:
        assert self._events is not None
        while True:
            event = await self._events.get()
            if event is None:
                return
            total, item = event
            self.completed += 1
            await self._invoke(self.completed, total, item)

    async def _invoke(self, completed: int, total: int, item: Any) -> None:
        assert self.callback is not None
        try:
            if self._is_async:
                awaitable = self.callback(completed, total, item)
                if self.timeout is None:
                    await awaitable  # type: ignore[misc]
                    return
                call_start = time.monotonic()
                try:
                    await asyncio.wait_for(awaitable, timeout=self.timeout)  # type: ignore[arg-type]
                except TimeoutError:
                    if time.monotonic() - call_start < self.timeout:
                        raise
                    logger.warning(
                        "⚠️  Progress callback exceeded timeout of %.2fs; continuing without waiting.",
                        self.timeout,
                    )
                return

            thread_call = asyncio.ensure_future(
                asyncio.to_thread(self.callback, completed, total, item)
            )
            if self.timeout is None:
                await thread_call
                return
            call_start = time.monotonic()
            try:
                await asyncio.wait_for(asyncio.shield(thread_call), timeout=self.timeout)
            except TimeoutError:
                if time.monotonic() - call_start < self.timeout:
                    raise
                # The thread keeps running; the next notification waits for it
                logger.warning(
                    "⚠️  Progress callback exceeded timeout of %.2fs; waiting for it to return "
                    "before the next notification.",
                    self.timeout,
                )
                await thread_call
        except Exception as exc:
            logger.warning(f"⚠️  Progress callback failed: {exc}")
