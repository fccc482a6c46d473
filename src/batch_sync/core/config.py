"""Configuration management for batch processor."""

from dataclasses import dataclass, field

from ..strategies.errors import ConfigurationError


@dataclass
class RateLimitConfig:
    """Configuration for quota tracking, throttling and retry backoff."""

    requests_per_hour: int = 5000  # Informational, logged at batch start
    retry_delay: float = 1.0  # Base backoff in seconds
    max_retries: int = 3
    threshold: int = 10  # Throttle new attempts at or below this remaining quota
    max_delay: float = 60.0
    throttle_cooldown: float | None = None  # Cap on a single throttle wait

    @property
    def max_attempts(self) -> int:
        """Total attempts per item, first try included."""
        return self.max_retries + 1

    def validate(self) -> None:
        """Validate rate limit configuration."""
        if self.requests_per_hour < 1:
            raise ConfigurationError(
                f"requests_per_hour must be >= 1 (got {self.requests_per_hour}). "
                f"Set rate_limit.requests_per_hour to the API's hourly quota."
            )
        if self.retry_delay < 0:
            raise ConfigurationError(
                f"retry_delay must be >= 0 (got {self.retry_delay}). "
                f"Set rate_limit.retry_delay to a non-negative number in seconds."
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f"max_retries must be >= 0 (got {self.max_retries}). "
                f"Set rate_limit.max_retries to 0 to disable retries or a positive integer."
            )
        if self.threshold < 0:
            raise ConfigurationError(
                f"threshold must be >= 0 (got {self.threshold}). "
                f"Set rate_limit.threshold to 0 to throttle only on an empty quota."
            )
        if self.max_delay < self.retry_delay:
            raise ConfigurationError(
                f"max_delay must be >= retry_delay (got max_delay={self.max_delay}, retry_delay={self.retry_delay}). "
                f"Set rate_limit.max_delay to be at least as large as rate_limit.retry_delay."
            )
        if self.throttle_cooldown is not None and self.throttle_cooldown < 0:
            raise ConfigurationError(
                f"throttle_cooldown must be >= 0 (got {self.throttle_cooldown}). "
                f"Set rate_limit.throttle_cooldown to None to wait for the full reset."
            )


@dataclass
class ProcessorConfig:
    """Complete configuration for batch processor."""

    max_concurrent: int = 10
    timeout_per_item: float | None = None  # None = no per-attempt timeout

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    # Progress reporting
    progress_interval: int = 10  # Log every N items
    progress_callback_timeout: float | None = None

    # Observability
    enable_detailed_logging: bool = False

    # Dry-run mode (exercise the pipeline without calling the processing function)
    dry_run: bool = False
    dry_run_latency: float = 0.0

    def validate(self) -> None:
        """Validate complete configuration."""
        if isinstance(self.max_concurrent, bool) or not isinstance(self.max_concurrent, int):
            raise ConfigurationError(
                f"max_concurrent must be an integer (got {type(self.max_concurrent).__name__}). "
                f"Set config.max_concurrent to a positive integer (typical: 5-20)."
            )
        if self.max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be >= 1 (got {self.max_concurrent}). "
                f"Set config.max_concurrent to a positive integer (typical: 5-20)."
            )
        if self.timeout_per_item is not None and self.timeout_per_item <= 0:
            raise ConfigurationError(
                f"timeout_per_item must be > 0 (got {self.timeout_per_item}). "
                f"Set config.timeout_per_item to None to disable or a positive number in seconds."
            )
        if self.progress_interval < 1:
            raise ConfigurationError(
                f"progress_interval must be >= 1 (got {self.progress_interval}). "
                f"Set config.progress_interval to a positive integer."
            )
        if self.progress_callback_timeout is not None and self.progress_callback_timeout <= 0:
            raise ConfigurationError(
                f"progress_callback_timeout must be > 0 (got {self.progress_callback_timeout}). "
                f"Set config.progress_callback_timeout to None for no limit."
            )
        if self.dry_run_latency < 0:
            raise ConfigurationError(
                f"dry_run_latency must be >= 0 (got {self.dry_run_latency}). "
                f"Set config.dry_run_latency to a non-negative number in seconds."
            )

        self.rate_limit.validate()
