"""Parallel batch processor"""

import asyncio
import inspect
import logging
import time
from typing import Any, Generic

from .base import (
    BatchProcessor,
    BatchResult,
    JobResult,
    JobStatus,
    ProgressCallbackFunc,
    QueuedItem,
)
from .core import ProcessFunc, ProcessorConfig, extract_rate_limit
from .core.protocols import TItem, TOutput
from .dry_run import DryRunSimulator
from .observers import ProcessingEvent, ProcessorObserver
from .strategies import (
    BackoffStrategy,
    ConfigurationError,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    ExponentialBackoffStrategy,
    FrameworkTimeoutError,
)
from .strategies.errors import CANCELLED, PERMANENT, describe_error

logger = logging.getLogger(__name__)


def _label(item: Any, limit: int = 80) -> str:
    """Short printable form of an opaque item for log lines."""
    text = repr(item)
    return text if len(text) <= limit else f"{text[: limit - 3]}..."


class ParallelBatchProcessor(BatchProcessor[TItem, TOutput], Generic[TItem, TOutput]):
    """
    Batch processor that runs a fixed pool of workers over a shared queue.

    Each worker takes the next item (FIFO), waits out any preemptive quota
    throttle, calls the processing function, and retries rate-limited and
    transient failures with exponential backoff. Every item ends as exactly
    one JobResult; per-item errors never escape ``process_all()``.
    """

    def __init__(
        self,
        process_fn: ProcessFunc[TItem, TOutput] | None = None,
        config: ProcessorConfig | None = None,
        *,
        max_concurrent: int | None = None,
        error_classifier: ErrorClassifier | None = None,
        backoff_strategy: BackoffStrategy | None = None,
        observers: list[ProcessorObserver] | None = None,
        progress_callback: ProgressCallbackFunc | None = None,
        dry_run_simulator: DryRunSimulator | None = None,
    ):
        """
        Initialize the parallel batch processor.

        Args:
            process_fn: Processing function called with each item (sync or async).
                Optional only in dry-run mode.
            config: Processor configuration object
            max_concurrent: Overrides config.max_concurrent if given
            error_classifier: Strategy for classifying errors (default: DefaultErrorClassifier)
            backoff_strategy: Retry delay policy (default: exponential from config.rate_limit)
            observers: List of observers for events
            progress_callback: Optional callback(completed, total, item), called once per item
            dry_run_simulator: Simulated call used when config.dry_run is set

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        if config is None:
            config = ProcessorConfig()
        if max_concurrent is not None:
            config.max_concurrent = max_concurrent

        config.validate()

        if process_fn is None and not config.dry_run:
            raise ConfigurationError(
                "process_fn is required unless dry_run is enabled. "
                "Pass the function that syncs one item, or set config.dry_run=True."
            )
        if process_fn is not None and not callable(process_fn):
            raise ConfigurationError(
                f"process_fn must be callable (got {type(process_fn).__name__}). "
                f"Pass a function or coroutine function taking one item."
            )

        super().__init__(
            config.max_concurrent,
            progress_callback=progress_callback,
            progress_callback_timeout=config.progress_callback_timeout,
            rate_limit_threshold=config.rate_limit.threshold,
        )
        self.config = config
        self.process_fn = process_fn
        self._process_fn_is_async = process_fn is not None and (
            inspect.iscoroutinefunction(process_fn)
            or inspect.iscoroutinefunction(getattr(process_fn, "__call__", None))
        )

        self.error_classifier = error_classifier or DefaultErrorClassifier()
        self.backoff_strategy = backoff_strategy or ExponentialBackoffStrategy(
            base_delay=config.rate_limit.retry_delay,
            max_delay=config.rate_limit.max_delay,
        )
        self.observers = observers or []
        self.dry_run_simulator = dry_run_simulator or DryRunSimulator(
            latency=config.dry_run_latency
        )

    async def _emit_event(self, event: ProcessingEvent, data: dict | None = None) -> None:
        """Emit event to all observers."""
        if not self.observers:
            return

        event_data = data or {}
        for observer in self.observers:
            try:
                await asyncio.wait_for(
                    observer.on_event(event, event_data),
                    timeout=5.0,  # 5 second timeout for observer callbacks
                )
            except TimeoutError:
                logger.warning(f"⚠️  Observer callback timed out after 5s for event {event.name}")
            except Exception as e:
                logger.warning(f"⚠️  Observer error: {e}")

    async def _on_batch_started(self) -> None:
        stats = await self.get_stats()
        rate_limit = self.config.rate_limit
        logger.info(
            f"ℹ️  Starting batch of {stats['total']} items with {self.max_concurrent} workers "
            f"(quota {rate_limit.requests_per_hour}/hour, throttle at <= {rate_limit.threshold} remaining, "
            f"max {rate_limit.max_retries} retries{', DRY-RUN' if self.config.dry_run else ''})"
        )
        await self._emit_event(
            ProcessingEvent.BATCH_STARTED,
            {
                "total": stats["total"],
                "max_concurrent": self.max_concurrent,
                "dry_run": self.config.dry_run,
            },
        )

    async def _on_batch_completed(self, result: BatchResult[TItem, TOutput]) -> None:
        status = "✓" if result.failed == 0 else "✗"
        logger.info(
            f"{status} Batch complete: {result.succeeded}/{result.total} succeeded, "
            f"{result.failed} failed in {result.duration:.2f}s"
            f"{' (stopped early)' if result.cancelled else ''}"
        )
        await self._emit_event(
            ProcessingEvent.BATCH_COMPLETED,
            {
                "total": result.total,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "duration": result.duration,
                "cancelled": result.cancelled,
            },
        )

    async def _worker(self, worker_id: int):
        """Worker coroutine that processes items from the queue."""
        logger.debug(f"✓ Worker {worker_id} started and waiting for work")
        await self._emit_event(ProcessingEvent.WORKER_STARTED, {"worker_id": worker_id})

        while True:
            try:
                queued = await self._queue.get()
            except asyncio.CancelledError:
                logger.info(f"⚠️  Worker {worker_id} cancelled while waiting for work")
                raise

            if queued is None:  # Sentinel value
                self._queue.task_done()
                logger.debug(f"✓ Worker {worker_id} finished (no more work)")
                await self._emit_event(ProcessingEvent.WORKER_STOPPED, {"worker_id": worker_id})
                return

            try:
                if self._stop_requested:
                    result = self._cancelled_result(queued)
                    await self._emit_event(
                        ProcessingEvent.ITEM_CANCELLED, {"item": queued.item, "index": queued.index}
                    )
                else:
                    logger.debug(f"ℹ️  [Worker {worker_id}] Picked up {_label(queued.item)} from queue")
                    await self._aggregator.mark_admitted()
                    result = await self._run_item(queued, worker_id)

                await self._record_result(result)
            finally:
                self._queue.task_done()

            status = "✓" if result.success else "✗"
            logger.info(
                f"{status} [Worker {worker_id}] Completed {_label(queued.item)} "
                f"({result.status.value}, {result.attempts} attempt(s))"
            )
            await self._log_progress()

    async def _run_item(self, queued: QueuedItem, worker_id: int) -> JobResult[TItem, TOutput]:
        """Process one item, converting anything unexpected into a failed result."""
        started = time.monotonic()
        try:
            return await self._process_item(queued, worker_id)
        except Exception as e:
            # Bug in a collaborator (classifier, backoff strategy); keep the batch going
            logger.error(
                f"✗ Worker {worker_id} hit an unexpected error processing {_label(queued.item)}: "
                f"{describe_error(e, 200)}"
            )
            await self._emit_event(
                ProcessingEvent.ITEM_FAILED,
                {"item": queued.item, "error_kind": "internal", "attempts": 1},
            )
            return JobResult(
                item=queued.item,
                index=queued.index,
                status=JobStatus.FAILED,
                error=describe_error(e),
                error_kind="internal",
                attempts=1,
                duration=time.monotonic() - started,
            )

    def _cancelled_result(self, queued: QueuedItem) -> JobResult[TItem, TOutput]:
        return JobResult(
            item=queued.item,
            index=queued.index,
            status=JobStatus.FAILED,
            error="CancelledError: batch stopped before item was started",
            error_kind=CANCELLED,
            attempts=0,
        )

    async def _log_progress(self) -> None:
        """Log a progress line every ``progress_interval`` items (thread-safe read of stats)."""
        async with self._stats_lock:
            should_log = self._stats.processed % self.config.progress_interval == 0
            if should_log:
                stats_snapshot = self._stats.copy()

        if not should_log:
            return

        elapsed = time.time() - stats_snapshot["start_time"]
        items_per_sec = stats_snapshot["processed"] / elapsed if elapsed > 0 else 0

        error_breakdown = ""
        if stats_snapshot["error_counts"]:
            error_strs = [f"{err}: {count}" for err, count in stats_snapshot["error_counts"].items()]
            error_breakdown = f" | Errors: {', '.join(error_strs)}"

        quota = ""
        if self.rate_limit_state.remaining is not None:
            quota = f" | Quota remaining: {self.rate_limit_state.remaining}"

        logger.info(
            f"ℹ️  Progress: {stats_snapshot['processed']}/{stats_snapshot['total']} "
            f"({stats_snapshot['processed'] / max(stats_snapshot['total'], 1) * 100:.1f}%) | "
            f"Succeeded: {stats_snapshot['succeeded']}, Failed: {stats_snapshot['failed']}, "
            f"Retries: {stats_snapshot['retry_count']}"
            f"{error_breakdown} | {items_per_sec:.2f} items/sec{quota}"
        )

    async def _throttle_if_needed(self, item: TItem, worker_id: int) -> None:
        """Wait while the shared quota is at or below the threshold and not yet reset."""
        delay = await self.rate_limit_state.throttle_delay(
            cooldown=self.config.rate_limit.throttle_cooldown
        )
        if delay <= 0:
            return

        logger.warning(
            f"🚫  [Worker {worker_id}] Quota low ({self.rate_limit_state.remaining} remaining, "
            f"threshold {self.rate_limit_state.threshold}). Pausing {delay:.1f}s before {_label(item)}"
        )
        await self._emit_event(
            ProcessingEvent.THROTTLE_STARTED,
            {"item": item, "worker_id": worker_id, "delay": delay},
        )

        started = time.monotonic()
        await asyncio.sleep(delay)
        duration = time.monotonic() - started

        await self.rate_limit_state.record_throttle(duration)
        await self._emit_event(
            ProcessingEvent.THROTTLE_ENDED,
            {"item": item, "worker_id": worker_id, "duration": duration},
        )

    async def _fold_quota(self, source: Any) -> None:
        """Apply any quota report carried by a result or exception."""
        info = extract_rate_limit(source)
        if info is not None:
            await self.rate_limit_state.update(info)

    def _classify(self, exception: BaseException) -> ErrorInfo:
        try:
            return self.error_classifier.classify(exception)
        except Exception as e:
            logger.warning(
                f"⚠️  Error classifier failed on {type(exception).__name__}: {e}. Treating as permanent."
            )
            return ErrorInfo(
                is_retryable=False,
                is_rate_limit=False,
                is_timeout=False,
                error_category=PERMANENT,
            )

    async def _call(self, item: TItem, attempt: int) -> Any:
        """Run one attempt: the real processing function, or the simulator in dry-run mode."""
        thread_call: asyncio.Future | None = None
        if self.config.dry_run:
            call = self.dry_run_simulator(item, attempt)
        elif self._process_fn_is_async:
            call = self.process_fn(item)  # type: ignore[misc]
        else:
            # Blocking I/O runs on the batch's own thread pool, one thread per worker
            loop = asyncio.get_running_loop()
            thread_call = loop.run_in_executor(self._executor, self.process_fn, item)  # type: ignore[arg-type]
            call = thread_call

        timeout = self.config.timeout_per_item
        if timeout is None:
            return await call

        call_start = time.monotonic()
        try:
            if thread_call is not None:
                # A thread can't be interrupted; don't let wait_for cancel the future
                return await asyncio.wait_for(asyncio.shield(thread_call), timeout=timeout)
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as e:
            elapsed = time.monotonic() - call_start
            if elapsed < timeout:
                # Raised by the processing function itself
                raise
            logger.error(
                f"⏱ TIMEOUT for {_label(item)} after {elapsed:.1f}s "
                f"(limit: {timeout}s, attempt {attempt})"
            )
            if thread_call is not None:
                await self._wait_abandoned(thread_call, item)
            raise FrameworkTimeoutError(
                f"Attempt {attempt} exceeded timeout_per_item ({timeout}s)"
            ) from e

    async def _wait_abandoned(self, thread_call: asyncio.Future, item: TItem) -> None:
        """Hold the worker slot until a timed-out blocking call returns; its outcome is discarded."""
        try:
            await thread_call
        except Exception as e:
            logger.debug(f"Timed-out call for {_label(item)} later failed: {describe_error(e, 200)}")
        else:
            logger.debug(f"Timed-out call for {_label(item)} finished; result discarded")

    async def _process_item(  # type: ignore[override]
        self, queued: QueuedItem, worker_id: int = 0
    ) -> JobResult[TItem, TOutput]:
        """Drive one item through attempts and retries to a terminal result."""
        item = queued.item
        start_time = time.monotonic()
        max_attempts = self.config.rate_limit.max_attempts

        await self._emit_event(
            ProcessingEvent.ITEM_STARTED,
            {"item": item, "index": queued.index, "worker_id": worker_id},
        )

        last_error: BaseException | None = None
        last_info: ErrorInfo | None = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            await self._throttle_if_needed(item, worker_id)

            if self.config.enable_detailed_logging:
                logger.info(f"ℹ️  [Worker {worker_id}] Attempt {attempt}/{max_attempts} for {_label(item)}")

            try:
                output = await self._call(item, attempt)
            except Exception as e:
                last_error = e
                await self._fold_quota(e)
                last_info = self._classify(e)

                if last_info.is_rate_limit:
                    async with self._stats_lock:
                        self._stats.rate_limit_count += 1
                    await self.rate_limit_state.record_rate_limit_hit()
                    await self._emit_event(
                        ProcessingEvent.RATE_LIMIT_HIT,
                        {"item": item, "worker_id": worker_id, "attempt": attempt},
                    )

                if not last_info.is_retryable:
                    logger.error(
                        f"✗ PERMANENT FAILURE for {_label(item)}:\n"
                        f"  Error type: {type(e).__name__}\n"
                        f"  Error message: {str(e)[:500]}\n"
                        f"  This error will NOT be retried (not retryable)"
                    )
                    break

                if attempt >= max_attempts:
                    logger.error(
                        f"✗ ALL {max_attempts} ATTEMPTS EXHAUSTED for {_label(item)}:\n"
                        f"  Final error type: {type(e).__name__}\n"
                        f"  Final error message: {str(e)[:500]}"
                    )
                    break

                delay = self.backoff_strategy.delay_for(attempt, last_info)
                logger.warning(
                    f"⚠️  Attempt {attempt}/{max_attempts} failed for {_label(item)}: "
                    f"{type(e).__name__} - {str(e)[:150]}. Retrying in {delay:.1f}s..."
                )
                async with self._stats_lock:
                    self._stats.retry_count += 1
                await self._emit_event(
                    ProcessingEvent.RETRY_SCHEDULED,
                    {
                        "item": item,
                        "attempt": attempt,
                        "retry_number": attempt,
                        "delay": delay,
                        "error_kind": last_info.error_category,
                    },
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                continue

            await self._fold_quota(output)
            duration = time.monotonic() - start_time

            if attempt > 1:
                logger.info(
                    f"✓ SUCCESS on attempt {attempt} for {_label(item)} "
                    f"(after {attempt - 1} failure(s), took {duration:.1f}s)"
                )

            await self._emit_event(
                ProcessingEvent.ITEM_COMPLETED,
                {"item": item, "duration": duration, "attempts": attempt},
            )
            return JobResult(
                item=item,
                index=queued.index,
                status=JobStatus.SUCCEEDED,
                output=output,
                attempts=attempt,
                duration=duration,
            )

        assert last_error is not None and last_info is not None
        await self._emit_event(
            ProcessingEvent.ITEM_FAILED,
            {
                "item": item,
                "error_type": type(last_error).__name__,
                "error_kind": last_info.error_category,
                "attempts": attempt,
            },
        )
        return JobResult(
            item=item,
            index=queued.index,
            status=JobStatus.FAILED,
            error=describe_error(last_error),
            error_kind=last_info.error_category,
            attempts=attempt,
            duration=time.monotonic() - start_time,
        )
