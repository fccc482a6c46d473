"""Bounded-concurrency batch runner for syncing many items to a rate-limited API.

This module drives a caller-supplied processing function over a list of items
with a fixed pool of workers, retrying rate-limited and transient failures
with exponential backoff and pausing new attempts when the remote quota runs low.

Key features:
- Fixed worker pool, FIFO admission, concurrency never above max_concurrent
- Error taxonomy: RateLimitError / TransientError (retried), PermanentError (not)
- Shared RateLimitState fed by quota reports from each attempt
- Ordered progress callback, exactly once per item
- Dry-run mode that exercises the whole pipeline without side effects
- Observer pattern for monitoring

Example:
    >>> from batch_sync import ProcessorConfig, RateLimitConfig, run
    >>>
    >>> config = ProcessorConfig(
    ...     max_concurrent=5,
    ...     rate_limit=RateLimitConfig(retry_delay=1.0, max_retries=3),
    ... )
    >>> result = run(issue_paths, push_issue, config)
    >>> print(f"{result.succeeded}/{result.total} synced")
"""

# Core classes
from .base import (
    BatchProcessor,
    BatchResult,
    FailedItem,
    JobResult,
    JobStatus,
    ProcessingStats,
    ProgressCallbackFunc,
)

# Configuration and quota reports
from .core import (
    ProcessFunc,
    ProcessorConfig,
    RateLimitConfig,
    RateLimitInfo,
    RateLimitSnapshot,
)

# Dry run
from .dry_run import DryRunOutput, DryRunSimulator

# Observers
from .observers import BaseObserver, MetricsObserver, ProcessingEvent, ProcessorObserver

# Main processor
from .parallel import ParallelBatchProcessor
from .reporting import ProgressReporter, ResultAggregator
from .runner import run, run_batch

# Errors, classification and backoff
from .strategies import (
    BackoffStrategy,
    ConfigurationError,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    ExponentialBackoffStrategy,
    FixedDelayStrategy,
    FrameworkTimeoutError,
    PermanentError,
    RateLimitError,
    RateLimitState,
    SyncError,
    TransientError,
)

__all__ = [
    # Core
    "BatchProcessor",
    "BatchResult",
    "FailedItem",
    "JobResult",
    "JobStatus",
    "ProcessingStats",
    "ProgressCallbackFunc",
    "ProcessFunc",
    # Configuration
    "ProcessorConfig",
    "RateLimitConfig",
    "RateLimitInfo",
    "RateLimitSnapshot",
    # Errors
    "ConfigurationError",
    "SyncError",
    "RateLimitError",
    "TransientError",
    "PermanentError",
    "FrameworkTimeoutError",
    # Strategies
    "ErrorClassifier",
    "ErrorInfo",
    "DefaultErrorClassifier",
    "BackoffStrategy",
    "ExponentialBackoffStrategy",
    "FixedDelayStrategy",
    "RateLimitState",
    # Reporting
    "ResultAggregator",
    "ProgressReporter",
    # Observers
    "ProcessorObserver",
    "BaseObserver",
    "MetricsObserver",
    "ProcessingEvent",
    # Dry run
    "DryRunSimulator",
    "DryRunOutput",
    # Processor
    "ParallelBatchProcessor",
    "run",
    "run_batch",
]

__version__ = "0.1.0"
