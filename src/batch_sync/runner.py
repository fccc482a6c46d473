"""One-call entry points: ``run`` (blocking) and ``run_batch`` (async)."""

import asyncio
from collections.abc import Iterable

from .base import BatchResult, ProgressCallbackFunc
from .core import ProcessFunc, ProcessorConfig
from .core.protocols import TItem, TOutput
from .dry_run import DryRunSimulator
from .observers import ProcessorObserver
from .parallel import ParallelBatchProcessor
from .strategies import BackoffStrategy, ErrorClassifier


async def run_batch(
    items: Iterable[TItem],
    process_fn: ProcessFunc[TItem, TOutput] | None,
    config: ProcessorConfig | None = None,
    *,
    on_progress: ProgressCallbackFunc | None = None,
    observers: list[ProcessorObserver] | None = None,
    error_classifier: ErrorClassifier | None = None,
    backoff_strategy: BackoffStrategy | None = None,
    dry_run_simulator: DryRunSimulator | None = None,
) -> BatchResult[TItem, TOutput]:
    """
    Process every item with ``process_fn`` and return the aggregate result.

    Raises:
        ConfigurationError: If the configuration is invalid. Nothing is processed.

    Example:
        >>> config = ProcessorConfig(max_concurrent=5)
        >>> result = await run_batch(paths, push_issue, config)
        >>> print(result.succeeded, result.failed)
    """
    processor: ParallelBatchProcessor[TItem, TOutput] = ParallelBatchProcessor(
        process_fn,
        config,
        error_classifier=error_classifier,
        backoff_strategy=backoff_strategy,
        observers=observers,
        progress_callback=on_progress,
        dry_run_simulator=dry_run_simulator,
    )
    async with processor:
        await processor.add_many(items)
        return await processor.process_all()


def run(
    items: Iterable[TItem],
    process_fn: ProcessFunc[TItem, TOutput] | None,
    config: ProcessorConfig | None = None,
    **kwargs,
) -> BatchResult[TItem, TOutput]:
    """
    Blocking wrapper around ``run_batch``.

    Starts its own event loop, so it cannot be called from inside a running
    one; use ``await run_batch(...)`` there instead. Accepts the same keyword
    arguments as ``run_batch``.
    """
    if config is not None:
        config.validate()
    return asyncio.run(run_batch(items, process_fn, config, **kwargs))
