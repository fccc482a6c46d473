"""Processing strategies."""

from .errors import (
    ConfigurationError,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    FrameworkTimeoutError,
    PermanentError,
    RateLimitError,
    SyncError,
    TransientError,
)
from .rate_limit import (
    BackoffStrategy,
    ExponentialBackoffStrategy,
    FixedDelayStrategy,
    RateLimitState,
)

__all__ = [
    "ConfigurationError",
    "SyncError",
    "RateLimitError",
    "TransientError",
    "PermanentError",
    "FrameworkTimeoutError",
    "ErrorClassifier",
    "ErrorInfo",
    "DefaultErrorClassifier",
    "BackoffStrategy",
    "ExponentialBackoffStrategy",
    "FixedDelayStrategy",
    "RateLimitState",
]
