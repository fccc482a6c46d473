"""Example usage of the batch_sync module.

Simulates syncing a folder of local issue files to a rate-limited tracker API.
No network access is needed: MockProcessor and MockQuota stand in for the API.
"""

import asyncio
import logging

from batch_sync import (
    MetricsObserver,
    ParallelBatchProcessor,
    PermanentError,
    ProcessorConfig,
    RateLimitConfig,
    RateLimitError,
    TransientError,
    run_batch,
)
from batch_sync.testing import MockProcessor, MockQuota, combine, fail_item

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)


ISSUE_PATHS = [f"issues/{i:03d}-bug.md" for i in range(20)]


def print_progress(completed: int, total: int, item) -> None:
    print(f"  [{completed}/{total}] {item}")


async def example_simple():
    """Sync 20 issues with 5 workers."""
    print("\n=== Simple sync ===")

    api = MockProcessor(latency=0.05, quota=MockQuota(limit=5000))
    config = ProcessorConfig(max_concurrent=5)

    result = await run_batch(ISSUE_PATHS, api, config, on_progress=print_progress)

    print(f"Synced {result.succeeded}/{result.total} in {result.duration:.2f}s")
    print(f"Quota remaining: {result.rate_limit.remaining}/{result.rate_limit.limit}")


async def example_error_handling():
    """Rate limits and transient errors are retried, permanent errors are not."""
    print("\n=== Error handling ===")

    api = MockProcessor(
        latency=0.02,
        fail_with=combine(
            fail_item(ISSUE_PATHS[7], lambda: RateLimitError("429 Too Many Requests"), times=2),
            fail_item(ISSUE_PATHS[9], lambda: TransientError("502 Bad Gateway"), times=1),
            fail_item(ISSUE_PATHS[3], lambda: PermanentError("422 title is required")),
        ),
    )
    config = ProcessorConfig(
        max_concurrent=5,
        rate_limit=RateLimitConfig(retry_delay=0.1, max_retries=3),
    )
    metrics = MetricsObserver()

    processor = ParallelBatchProcessor(api, config, observers=[metrics])
    async with processor:
        await processor.add_many(ISSUE_PATHS)
        result = await processor.process_all()

    print(f"Succeeded: {result.succeeded}, failed: {result.failed}")
    for failure in result.errors:
        print(f"  {failure.item}: {failure.error} ({failure.attempts} attempt(s))")

    print("\nMetrics:")
    print(await metrics.export_json())


async def example_throttle():
    """Workers pause when the quota runs low instead of hitting 429s."""
    print("\n=== Preemptive throttle ===")

    api = MockProcessor(latency=0.01, quota=MockQuota(limit=100, remaining=8, window=1.0))
    config = ProcessorConfig(
        max_concurrent=3,
        rate_limit=RateLimitConfig(threshold=5),
    )

    result = await run_batch(ISSUE_PATHS[:10], api, config)

    snapshot = result.rate_limit
    print(
        f"Synced {result.succeeded} items, throttled {snapshot.throttle_count} time(s) "
        f"for {snapshot.total_throttle_time:.2f}s"
    )


async def example_dry_run():
    """Exercise the whole pipeline without calling the API."""
    print("\n=== Dry run ===")

    config = ProcessorConfig(max_concurrent=10, dry_run=True)
    result = await run_batch(ISSUE_PATHS, None, config)

    print(f"Would sync {result.succeeded} issues")
    print(f"First output: {result.results[0].output}")


async def main():
    await example_simple()
    await example_error_handling()
    await example_throttle()
    await example_dry_run()


if __name__ == "__main__":
    asyncio.run(main())
