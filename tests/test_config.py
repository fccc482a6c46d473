"""Tests for configuration validation."""

import pytest

from batch_sync import (
    ConfigurationError,
    ParallelBatchProcessor,
    ProcessorConfig,
    RateLimitConfig,
    run,
    run_batch,
)
from batch_sync.testing import MockProcessor


def test_defaults():
    config = ProcessorConfig()

    assert config.max_concurrent == 10
    assert config.timeout_per_item is None
    assert config.progress_interval == 10
    assert config.dry_run is False
    assert config.rate_limit.requests_per_hour == 5000
    assert config.rate_limit.retry_delay == 1.0
    assert config.rate_limit.max_retries == 3
    assert config.rate_limit.max_attempts == 4
    assert config.rate_limit.threshold == 10
    assert config.rate_limit.max_delay == 60.0
    assert config.rate_limit.throttle_cooldown is None

    config.validate()


@pytest.mark.parametrize(
    "config",
    [
        ProcessorConfig(max_concurrent=0),
        ProcessorConfig(max_concurrent=-3),
        ProcessorConfig(max_concurrent=2.5),
        ProcessorConfig(max_concurrent=True),
        ProcessorConfig(timeout_per_item=0),
        ProcessorConfig(progress_interval=0),
        ProcessorConfig(progress_callback_timeout=-1.0),
        ProcessorConfig(dry_run_latency=-0.1),
        ProcessorConfig(rate_limit=RateLimitConfig(retry_delay=-1.0)),
        ProcessorConfig(rate_limit=RateLimitConfig(max_retries=-1)),
        ProcessorConfig(rate_limit=RateLimitConfig(threshold=-1)),
        ProcessorConfig(rate_limit=RateLimitConfig(requests_per_hour=0)),
        ProcessorConfig(rate_limit=RateLimitConfig(retry_delay=5.0, max_delay=1.0)),
        ProcessorConfig(rate_limit=RateLimitConfig(throttle_cooldown=-2.0)),
    ],
)
def test_invalid_config_rejected(config):
    with pytest.raises(ConfigurationError):
        config.validate()


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError, match="max_concurrent must be >= 1"):
        ProcessorConfig(max_concurrent=0).validate()


def test_processor_rejects_invalid_config():
    with pytest.raises(ConfigurationError):
        ParallelBatchProcessor(MockProcessor(), ProcessorConfig(max_concurrent=0))


def test_max_concurrent_override_is_validated():
    with pytest.raises(ConfigurationError):
        ParallelBatchProcessor(MockProcessor(), max_concurrent=0)


def test_missing_process_fn_rejected():
    with pytest.raises(ConfigurationError, match="process_fn is required"):
        ParallelBatchProcessor(None, ProcessorConfig())


def test_non_callable_process_fn_rejected():
    with pytest.raises(ConfigurationError, match="must be callable"):
        ParallelBatchProcessor("not a function", ProcessorConfig())


def test_run_rejects_invalid_config_before_processing():
    mock = MockProcessor()

    with pytest.raises(ConfigurationError):
        run(range(3), mock, ProcessorConfig(max_concurrent=0))

    assert mock.call_count == 0


@pytest.mark.asyncio
async def test_run_batch_rejects_invalid_config():
    mock = MockProcessor()

    with pytest.raises(ConfigurationError):
        await run_batch(range(3), mock, ProcessorConfig(rate_limit=RateLimitConfig(max_retries=-1)))

    assert mock.call_count == 0
