"""Tests for edge cases and error conditions."""

import asyncio
import threading
import time

import pytest

from batch_sync import (
    ParallelBatchProcessor,
    PermanentError,
    ProcessorConfig,
    RateLimitConfig,
    TransientError,
    run_batch,
)
from batch_sync.testing import MockProcessor


@pytest.mark.asyncio
async def test_empty_batch():
    """Test processing with no work items."""

    mock = MockProcessor()
    result = await run_batch([], mock, ProcessorConfig(max_concurrent=2))

    assert result.total == 0
    assert result.succeeded == 0
    assert result.failed == 0
    assert result.results == []
    assert result.errors == []
    assert result.duration == 0.0
    assert not result.cancelled
    assert mock.call_count == 0


@pytest.mark.asyncio
async def test_single_item():
    """A single item runs through the full pipeline."""

    mock = MockProcessor(latency=0.01)
    result = await run_batch(["only"], mock, ProcessorConfig(max_concurrent=5))

    assert result.total == 1
    assert result.succeeded == 1
    assert result.results[0].output.output == "synced only"
    assert result.duration > 0


@pytest.mark.asyncio
async def test_all_items_fail():
    """Every item failing still yields a complete result set."""

    async def reject(item):
        raise PermanentError(f"item {item} rejected by API")

    result = await run_batch(range(6), reject, ProcessorConfig(max_concurrent=3))

    assert result.total == 6
    assert result.succeeded == 0
    assert result.failed == 6
    assert [e.item for e in result.errors] == list(range(6))
    assert all(e.attempts == 1 for e in result.errors)
    assert result.errors[4].error == "PermanentError: item 4 rejected by API"


@pytest.mark.asyncio
async def test_items_passed_verbatim():
    """The processing function receives the exact objects that were submitted."""

    items = [{"path": f"issues/{i}.md"} for i in range(4)]
    received = []

    async def push(item):
        received.append(item)
        return item["path"]

    result = await run_batch(items, push, ProcessorConfig(max_concurrent=2))

    assert result.succeeded == 4
    assert all(any(r is original for r in received) for original in items)
    for job, original in zip(result.results, items):
        assert job.item is original


@pytest.mark.asyncio
async def test_duplicate_items_are_separate_jobs():
    """Equal items are processed once per submission."""

    calls = []

    async def push(item):
        calls.append(item)
        await asyncio.sleep(0.001)
        return item

    result = await run_batch(["same", "same", "same"], push, ProcessorConfig(max_concurrent=2))

    assert result.total == 3
    assert result.succeeded == 3
    assert calls == ["same", "same", "same"]
    assert [r.index for r in result.results] == [0, 1, 2]


@pytest.mark.asyncio
async def test_none_item():
    """None is a valid item and is not confused with the stop sentinel."""

    async def push(item):
        return "null" if item is None else str(item)

    result = await run_batch([None, 1, None], push, ProcessorConfig(max_concurrent=2))

    assert result.total == 3
    assert result.succeeded == 3
    assert [r.output for r in result.results] == ["null", "1", "null"]


@pytest.mark.asyncio
async def test_request_stop_drains_in_flight_items():
    """After request_stop, queued items are reported cancelled and nothing new starts."""

    mock = MockProcessor(latency=0.02)
    processor = None

    async def on_progress(completed, total, item):
        if completed == 4:
            processor.request_stop()

    processor = ParallelBatchProcessor(
        mock, ProcessorConfig(max_concurrent=2), progress_callback=on_progress
    )
    await processor.add_many(range(20))
    result = await processor.process_all()

    assert result.cancelled
    assert processor.stop_requested
    assert result.total == 20
    assert result.succeeded + result.failed == 20
    assert result.succeeded >= 4
    assert result.succeeded < 20

    cancelled = [r for r in result.results if r.error_kind == "cancelled"]
    assert cancelled
    assert all(r.attempts == 0 for r in cancelled)
    assert all(r.error.startswith("CancelledError") for r in cancelled)
    # Cancelled items were never handed to the processing function
    called = {item for item, _ in mock.calls}
    assert not called & {r.item for r in cancelled}


@pytest.mark.asyncio
async def test_cancelling_process_all_propagates():
    """Cancelling the task running process_all cancels the workers and re-raises."""

    mock = MockProcessor(latency=0.1)
    processor = ParallelBatchProcessor(mock, ProcessorConfig(max_concurrent=2))
    await processor.add_many(range(20))

    task = asyncio.create_task(processor.process_all())
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert all(worker.done() for worker in processor._workers)
    assert mock.call_count < 20


@pytest.mark.asyncio
async def test_timeout_per_item():
    """Attempts running past timeout_per_item fail with a timeout and are retried."""

    mock = MockProcessor(latency=0.5)
    config = ProcessorConfig(
        max_concurrent=1,
        timeout_per_item=0.05,
        rate_limit=RateLimitConfig(retry_delay=0.01, max_retries=1),
    )

    result = await run_batch(["slow"], mock, config)

    job = result.results[0]
    assert not job.success
    assert job.error_kind == "timeout"
    assert job.attempts == 2
    assert job.error.startswith("FrameworkTimeoutError:")
    assert result.duration < 0.5


@pytest.mark.slow
@pytest.mark.asyncio
async def test_timed_out_blocking_call_keeps_its_slot():
    """A timed-out sync call still counts against max_concurrent until its thread returns."""

    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def push(item):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.3)
        with lock:
            state["active"] -= 1
        return item

    config = ProcessorConfig(
        max_concurrent=2,
        timeout_per_item=0.05,
        rate_limit=RateLimitConfig(retry_delay=0.01, max_retries=1),
    )

    result = await run_batch(range(4), push, config)

    assert state["peak"] <= 2
    assert result.failed == 4
    for job in result.results:
        assert job.error_kind == "timeout"
        assert job.attempts == 2
        assert job.error.startswith("FrameworkTimeoutError:")


@pytest.mark.asyncio
async def test_timeout_raised_by_function_is_not_relabelled():
    """A TimeoutError from the processing function itself keeps its type."""

    async def push(item):
        raise TimeoutError("upstream read timed out")

    config = ProcessorConfig(
        timeout_per_item=5.0,
        rate_limit=RateLimitConfig(max_retries=0),
    )
    result = await run_batch(["x"], push, config)

    job = result.results[0]
    assert job.error == "TimeoutError: upstream read timed out"
    assert job.error_kind == "timeout"


@pytest.mark.asyncio
async def test_error_message_is_truncated():
    """Long error messages are capped in the result."""

    async def push(item):
        raise PermanentError("x" * 2000)

    result = await run_batch(["big"], push, ProcessorConfig())

    error = result.results[0].error
    assert error.startswith("PermanentError: ")
    assert len(error) == len("PermanentError: ") + 500


@pytest.mark.asyncio
async def test_sync_function_exceptions_are_classified():
    """Errors raised from a sync function in a thread are handled like async ones."""

    attempts = {"n": 0}

    def push(item):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise TransientError("connection reset")
        return "ok"

    config = ProcessorConfig(rate_limit=RateLimitConfig(retry_delay=0.01))
    result = await run_batch(["a"], push, config)

    assert result.results[0].success
    assert result.results[0].attempts == 2


@pytest.mark.asyncio
async def test_context_manager_cleanup():
    """The async context manager cleans up workers on exit."""

    mock = MockProcessor(latency=0.001)

    async with ParallelBatchProcessor(mock, ProcessorConfig(max_concurrent=3)) as processor:
        await processor.add_many(range(5))
        result = await processor.process_all()

    assert result.succeeded == 5
    assert all(worker.done() for worker in processor._workers)
    assert processor._queue.empty()
    assert processor._executor is None
