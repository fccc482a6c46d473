"""Base classes and interfaces for batch sync processing."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, NamedTuple

from .core.protocols import TItem, TOutput
from .core.quota import RateLimitSnapshot
from .reporting import ProgressReporter, ResultAggregator
from .strategies import RateLimitState

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Terminal state of one item."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobResult(Generic[TItem, TOutput]):
    """
    Result of processing a single item.

    Attributes:
        item: The item exactly as submitted
        index: Submission position within the batch (0-based)
        status: Terminal status
        output: Value returned by the processing function if successful
        error: "<ErrorType>: <message>" if failed
        error_kind: Error category (rate_limit, transient, permanent, timeout, cancelled)
        attempts: Number of processing attempts made
        duration: Seconds from admission to terminal state
    """

    item: TItem
    index: int
    status: JobStatus
    output: TOutput | None = None
    error: str | None = None
    error_kind: str | None = None
    attempts: int = 0
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is JobStatus.SUCCEEDED


@dataclass
class FailedItem(Generic[TItem]):
    """One entry of BatchResult.errors."""

    item: TItem
    error: str
    error_kind: str | None
    attempts: int


@dataclass
class BatchResult(Generic[TItem, TOutput]):
    """
    Result of processing a batch of items.

    Counts are derived from ``results`` so ``succeeded + failed == total``
    always holds.

    Attributes:
        results: Per-item results in submission order
        duration: Seconds from first admission to last terminal state
        rate_limit: Final snapshot of the shared rate limit state
        cancelled: True if the run was stopped before every item was admitted
        total: Total number of items in the batch
        succeeded: Number of successful items
        failed: Number of failed items
        errors: Failed items in submission order
    """

    results: list[JobResult[TItem, TOutput]]
    duration: float = 0.0
    rate_limit: RateLimitSnapshot | None = None
    cancelled: bool = False
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[FailedItem[TItem]] = field(default_factory=list)

    def __post_init__(self):
        """Calculate summary statistics from results."""
        self.results = sorted(self.results, key=lambda r: r.index)
        self.total = len(self.results)
        self.succeeded = sum(1 for r in self.results if r.success)
        self.failed = self.total - self.succeeded
        self.errors = [
            FailedItem(
                item=r.item,
                error=r.error or "",
                error_kind=r.error_kind,
                attempts=r.attempts,
            )
            for r in self.results
            if not r.success
        ]


# Type alias for progress callback function (completed, total, item)
ProgressCallbackFunc = Callable[[int, int, Any], Awaitable[None] | None]


class QueuedItem(NamedTuple):
    """Queue entry pairing an item with its submission index."""

    index: int
    item: Any


@dataclass
class ProcessingStats:
    """Statistics for batch processing."""

    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    start_time: float | None = None
    error_counts: dict[str, int] = field(default_factory=dict)
    retry_count: int = 0
    rate_limit_count: int = 0

    def copy(self) -> dict[str, Any]:
        """Return a dictionary copy of the stats."""
        return {
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "start_time": self.start_time,
            "error_counts": self.error_counts.copy(),
            "retry_count": self.retry_count,
            "rate_limit_count": self.rate_limit_count,
        }


class BatchProcessor(ABC, Generic[TItem, TOutput]):
    """
    Abstract base class for batch processing strategies.

    Owns the work queue, the worker lifecycle, result aggregation and progress
    reporting. Subclasses decide how a single item is processed.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        progress_callback: ProgressCallbackFunc | None = None,
        progress_callback_timeout: float | None = None,
        rate_limit_threshold: int = 10,
    ):
        """
        Initialize the batch processor.

        Args:
            max_concurrent: Number of concurrent workers
            progress_callback: Optional callback(completed, total, item) invoked once per item
            progress_callback_timeout: Maximum seconds to wait for progress callback (None = no limit)
            rate_limit_threshold: Remaining quota at or below which attempts are throttled
        """
        self.max_concurrent = max_concurrent
        self.progress_callback = progress_callback
        self.progress_callback_timeout = progress_callback_timeout
        self.rate_limit_threshold = rate_limit_threshold

        self._queue: asyncio.Queue[QueuedItem | None] = asyncio.Queue()
        self._aggregator: ResultAggregator[TItem, TOutput] = ResultAggregator()
        self._reporter = ProgressReporter(progress_callback, timeout=progress_callback_timeout)
        self._stats = ProcessingStats()
        self._stats_lock = asyncio.Lock()
        self._workers: list[asyncio.Task] = []
        self._executor: ThreadPoolExecutor | None = None
        self._stop_requested = False
        self._next_index = 0
        self.rate_limit_state = RateLimitState(threshold=rate_limit_threshold)

    async def __aenter__(self):
        """Context manager entry - returns self for use in async with."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures cleanup of resources."""
        await self.cleanup()
        return False  # Don't suppress exceptions

    async def cleanup(self):
        """
        Clean up resources: cancel pending workers and clear queue.

        This method should be called when you're done with the processor,
        or use the processor as an async context manager.
        """
        if self._workers:
            logger.debug(f"Cleaning up {len(self._workers)} workers")
            for worker in self._workers:
                if not worker.done():
                    worker.cancel()

            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._workers, return_exceptions=True), timeout=2.0
                )
            except TimeoutError:
                logger.warning("Some workers did not cancel within timeout")

        while not self._queue.empty():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except asyncio.QueueEmpty:
                break

        await self._reporter.abort()
        self._shutdown_executor()

    def _shutdown_executor(self) -> None:
        """Release the blocking-call threads. Calls still running are not interrupted."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    async def add_work(self, item: TItem) -> None:
        """
        Add an item to the processing queue.

        Args:
            item: Opaque work item, passed verbatim to the processing function
        """
        await self._queue.put(QueuedItem(self._next_index, item))
        self._next_index += 1
        async with self._stats_lock:
            self._stats.total += 1

    async def add_many(self, items: Iterable[TItem]) -> None:
        """Queue every item of ``items`` in order."""
        for item in items:
            await self.add_work(item)

    def request_stop(self) -> None:
        """
        Stop admitting new items.

        Items already being processed run to completion. Items still queued
        are recorded as failed with error kind "cancelled".
        """
        if not self._stop_requested:
            logger.warning("⚠️  Stop requested: draining in-flight items, no new items will start")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def get_stats(self) -> dict[str, Any]:
        """Get processor statistics (thread-safe)."""
        async with self._stats_lock:
            return self._stats.copy()

    async def process_all(self) -> BatchResult[TItem, TOutput]:
        """
        Process all items in the queue.

        Returns:
            BatchResult containing all results and statistics
        """
        self._stats.start_time = time.time()
        await self._on_batch_started()

        self._reporter.start()

        # One thread per worker so blocking processing functions get the full pool
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="batch-sync"
        )

        self._workers = [
            asyncio.create_task(self._worker(worker_id))
            for worker_id in range(self.max_concurrent)
        ]

        try:
            await self._queue.join()
        except asyncio.CancelledError:
            logger.warning("⚠️  Batch cancelled, cancelling workers")
            await self.cleanup()
            raise
        finally:
            for _ in range(self.max_concurrent):
                self._queue.put_nowait(None)

        logger.info("✓ Queue processing complete, waiting for workers to finish...")

        try:
            await asyncio.wait_for(asyncio.gather(*self._workers), timeout=30.0)
            logger.info(f"✓ All {len(self._workers)} workers finished successfully")
        except TimeoutError:
            logger.error(
                "⚠️  Workers did not finish within 30 seconds after queue.join(). "
                "Cancelling workers and proceeding..."
            )
            for worker in self._workers:
                if not worker.done():
                    worker.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._workers, return_exceptions=True), timeout=5.0
                )
            except TimeoutError:
                logger.error("⚠️  Some workers could not be cancelled")

        await self._reporter.close()
        self._shutdown_executor()

        result = BatchResult(
            results=await self._aggregator.results(),
            duration=await self._aggregator.duration(),
            rate_limit=await self.rate_limit_state.snapshot(),
            cancelled=self._stop_requested,
        )
        await self._on_batch_completed(result)
        return result

    async def _record_result(self, result: JobResult[TItem, TOutput]) -> None:
        """Store a terminal result and queue its progress notification."""
        await self._aggregator.record(result)

        async with self._stats_lock:
            self._stats.processed += 1
            if result.success:
                self._stats.succeeded += 1
            else:
                self._stats.failed += 1
                error_type = (result.error or "Unknown").split(":")[0]
                self._stats.error_counts[error_type] = (
                    self._stats.error_counts.get(error_type, 0) + 1
                )
            total = self._stats.total

        self._reporter.report(total, result.item)

    async def _on_batch_started(self) -> None:
        """Hook called before workers start."""
        pass

    async def _on_batch_completed(self, result: BatchResult[TItem, TOutput]) -> None:
        """Hook called after the BatchResult is built."""
        pass

    @abstractmethod
    async def _worker(self, worker_id: int):
        """
        Worker coroutine that processes items from the queue.

        Args:
            worker_id: Unique identifier for this worker
        """
        pass

    @abstractmethod
    async def _process_item(self, queued: QueuedItem) -> JobResult[TItem, TOutput]:
        """
        Process a single item to a terminal result.

        Args:
            queued: Queue entry holding the item and its index

        Returns:
            Terminal result for the item
        """
        pass
