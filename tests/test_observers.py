"""Tests for processor observers and metrics export."""

import json
from collections import Counter

import pytest

from batch_sync import (
    MetricsObserver,
    ParallelBatchProcessor,
    PermanentError,
    ProcessingEvent,
    ProcessorConfig,
    RateLimitConfig,
    RateLimitError,
    TransientError,
)
from batch_sync.observers import BaseObserver
from batch_sync.testing import MockProcessor, combine, fail_item


class RecordingObserver(BaseObserver):
    """Keeps every event it sees."""

    def __init__(self):
        self.events = []

    async def on_event(self, event, data):
        self.events.append((event, data))

    def count(self, event):
        return Counter(e for e, _ in self.events)[event]


class ExplodingObserver(BaseObserver):
    async def on_event(self, event, data):
        raise RuntimeError("observer bug")


def fast_config(max_concurrent: int = 2) -> ProcessorConfig:
    return ProcessorConfig(
        max_concurrent=max_concurrent,
        rate_limit=RateLimitConfig(retry_delay=0.01, max_retries=3),
    )


@pytest.mark.asyncio
async def test_event_sequence():
    """Lifecycle events fire the expected number of times."""

    recorder = RecordingObserver()
    mock = MockProcessor(
        latency=0.001,
        fail_with=combine(
            fail_item(2, lambda: TransientError("503"), times=1),
            fail_item(4, lambda: PermanentError("bad input")),
        ),
    )
    processor = ParallelBatchProcessor(mock, fast_config(), observers=[recorder])
    await processor.add_many(range(5))
    await processor.process_all()

    assert recorder.events[0][0] == ProcessingEvent.BATCH_STARTED
    assert recorder.events[0][1]["total"] == 5
    assert recorder.events[-1][0] == ProcessingEvent.BATCH_COMPLETED
    assert recorder.count(ProcessingEvent.WORKER_STARTED) == 2
    assert recorder.count(ProcessingEvent.WORKER_STOPPED) == 2
    assert recorder.count(ProcessingEvent.ITEM_STARTED) == 5
    assert recorder.count(ProcessingEvent.ITEM_COMPLETED) == 4
    assert recorder.count(ProcessingEvent.ITEM_FAILED) == 1
    assert recorder.count(ProcessingEvent.RETRY_SCHEDULED) == 1

    failed = [d for e, d in recorder.events if e == ProcessingEvent.ITEM_FAILED][0]
    assert failed == {
        "item": 4,
        "error_type": "PermanentError",
        "error_kind": "permanent",
        "attempts": 1,
    }


@pytest.mark.asyncio
async def test_failing_observer_does_not_break_batch():
    mock = MockProcessor(latency=0.001)
    recorder = RecordingObserver()
    processor = ParallelBatchProcessor(
        mock, fast_config(), observers=[ExplodingObserver(), recorder]
    )
    await processor.add_many(range(3))
    result = await processor.process_all()

    assert result.succeeded == 3
    # Observers after the broken one still get every event
    assert recorder.count(ProcessingEvent.ITEM_COMPLETED) == 3


@pytest.mark.asyncio
async def test_metrics_count_retries_and_rate_limits():
    metrics = MetricsObserver()
    mock = MockProcessor(
        latency=0.001,
        fail_with=combine(
            fail_item(0, lambda: RateLimitError("429"), times=2),
            fail_item(1, lambda: PermanentError("invalid")),
        ),
    )
    processor = ParallelBatchProcessor(mock, fast_config(), observers=[metrics])
    await processor.add_many(range(3))
    await processor.process_all()

    collected = await metrics.get_metrics()
    assert collected["items_processed"] == 3
    assert collected["items_succeeded"] == 2
    assert collected["items_failed"] == 1
    assert collected["rate_limits_hit"] == 2
    assert collected["retries_scheduled"] == 2
    assert collected["total_backoff_time"] == pytest.approx(0.03)
    assert collected["error_counts"] == {"permanent": 1}
    assert collected["avg_attempts"] == pytest.approx((3 + 1 + 1) / 3)


@pytest.mark.asyncio
async def test_metrics_count_cancelled_items():
    metrics = MetricsObserver()
    processor = None

    async def on_progress(completed, total, item):
        if completed == 1:
            processor.request_stop()

    processor = ParallelBatchProcessor(
        MockProcessor(latency=0.02),
        ProcessorConfig(max_concurrent=1),
        observers=[metrics],
        progress_callback=on_progress,
    )
    await processor.add_many(range(10))
    result = await processor.process_all()

    collected = await metrics.get_metrics()
    cancelled = sum(1 for r in result.results if r.error_kind == "cancelled")
    assert cancelled > 0
    assert collected["items_cancelled"] == cancelled
    assert collected["items_processed"] == 10


@pytest.mark.asyncio
async def test_metrics_exports():
    metrics = MetricsObserver()
    mock = MockProcessor(
        latency=0.001,
        fail_with=fail_item("b", lambda: PermanentError("nope")),
    )
    processor = ParallelBatchProcessor(mock, fast_config(), observers=[metrics])
    await processor.add_many(["a", "b", "c"])
    await processor.process_all()

    exported = json.loads(await metrics.export_json())
    assert exported["items_processed"] == 3
    assert exported["processing_times_count"] == 2
    assert "processing_times" not in exported

    prom = await metrics.export_prometheus()
    assert "# TYPE batch_sync_items_processed counter" in prom
    assert "batch_sync_items_processed 3" in prom
    assert 'batch_sync_errors_total{error_kind="permanent"} 1' in prom

    assert (await metrics.export_dict())["items_failed"] == 1

    metrics.reset()
    assert (await metrics.get_metrics())["items_processed"] == 0
