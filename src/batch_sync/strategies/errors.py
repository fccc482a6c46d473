"""Error taxonomy and classification for sync operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

if TYPE_CHECKING:
    from ..core.quota import RateLimitInfo

# Common error pattern constants
RATE_LIMIT_PATTERNS = ("429", "rate limit", "ratelimit", "quota", "too many requests")

# Error categories reported on JobResult.error_kind
RATE_LIMIT = "rate_limit"
TRANSIENT = "transient"
PERMANENT = "permanent"
TIMEOUT = "timeout"
CANCELLED = "cancelled"


class ConfigurationError(ValueError):
    """Invalid processor configuration. Raised before any item is processed."""

    pass


class SyncError(Exception):
    """
    Base class for errors raised by a processing function.

    Attributes:
        rate_limit: Optional quota report observed while the call failed
    """

    def __init__(self, message: str = "", *, rate_limit: "RateLimitInfo | None" = None):
        super().__init__(message)
        self.rate_limit = rate_limit


class RateLimitError(SyncError):
    """The remote API signalled quota exhaustion. Retried with backoff."""

    def __init__(
        self,
        message: str = "rate limit exceeded",
        *,
        reset_at: float | None = None,
        remaining: int | None = 0,
        rate_limit: "RateLimitInfo | None" = None,
    ):
        if rate_limit is None and reset_at is not None:
            from ..core.quota import RateLimitInfo

            rate_limit = RateLimitInfo(remaining=remaining, reset_at=reset_at)
        super().__init__(message, rate_limit=rate_limit)
        self.reset_at = reset_at


class TransientError(SyncError):
    """Network or server-side failure presumed temporary. Retried with backoff."""

    pass


class PermanentError(SyncError):
    """Caller or validation failure. Never retried."""

    pass


class FrameworkTimeoutError(TimeoutError):
    """
    Timeout enforced by batch-sync itself (asyncio.wait_for).

    Distinguishes the configured timeout_per_item being exceeded from a
    timeout reported by the remote API.
    """

    pass


@dataclass
class ErrorInfo:
    """Structured information about an error."""

    is_retryable: bool
    is_rate_limit: bool
    is_timeout: bool
    error_category: str


class ErrorClassifier(ABC):
    """Abstract base class for classifying processing-function errors."""

    @abstractmethod
    def classify(self, exception: BaseException) -> ErrorInfo:
        """
        Classify an exception and determine handling strategy.

        Args:
            exception: The exception to classify

        Returns:
            ErrorInfo with classification details
        """
        pass


class DefaultErrorClassifier(ErrorClassifier):
    """Classifier for the batch-sync taxonomy plus common builtin errors."""

    def _matches_any_pattern(self, error_str: str, patterns: tuple[str, ...]) -> bool:
        lowered = error_str.lower()
        return any(pattern in lowered for pattern in patterns)

    def classify(self, exception: BaseException) -> ErrorInfo:
        """Classify common errors with conservative defaults."""
        # Explicit taxonomy first
        if isinstance(exception, RateLimitError):
            return _rate_limit()
        if isinstance(exception, PermanentError):
            return _permanent()
        if isinstance(exception, TransientError):
            return _transient()

        if isinstance(exception, TimeoutError):
            return ErrorInfo(
                is_retryable=True,
                is_rate_limit=False,
                is_timeout=True,
                error_category=TIMEOUT,
            )

        error_str = str(exception)

        # Untyped errors that look like a rate limit (e.g. "HTTP 429")
        if self._matches_rate_limit(error_str):
            return _rate_limit()

        if isinstance(exception, ConnectionError):
            return _transient()

        # Payload validation failures won't be fixed by resending the same payload
        if isinstance(exception, ValidationError):
            return _permanent()

        # Logic bugs are deterministic
        logic_bug_types = (
            ValueError,
            TypeError,
            AttributeError,
            KeyError,
            IndexError,
            NameError,
            ZeroDivisionError,
            AssertionError,
            NotImplementedError,
        )
        if isinstance(exception, logic_bug_types):
            return _permanent()

        # Unknown generic exceptions are treated as transient
        return _transient()

    def _matches_rate_limit(self, error_str: str) -> bool:
        return self._matches_any_pattern(error_str, RATE_LIMIT_PATTERNS)


def _rate_limit() -> ErrorInfo:
    return ErrorInfo(
        is_retryable=True,
        is_rate_limit=True,
        is_timeout=False,
        error_category=RATE_LIMIT,
    )


def _transient() -> ErrorInfo:
    return ErrorInfo(
        is_retryable=True,
        is_rate_limit=False,
        is_timeout=False,
        error_category=TRANSIENT,
    )


def _permanent() -> ErrorInfo:
    return ErrorInfo(
        is_retryable=False,
        is_rate_limit=False,
        is_timeout=False,
        error_category=PERMANENT,
    )


def describe_error(exception: BaseException, limit: int = 500) -> str:
    """Render an exception as ``"<Type>: <message>"`` truncated to ``limit`` chars."""
    return f"{type(exception).__name__}: {str(exception)[:limit]}"
