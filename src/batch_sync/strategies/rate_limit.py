"""Rate limit tracking and retry backoff strategies."""

import asyncio
import time
from abc import ABC, abstractmethod

from ..core.quota import RateLimitInfo, RateLimitSnapshot
from .errors import ErrorInfo


class RateLimitState:
    """
    Shared record of remaining quota, owned by one batch run.

    All reads and writes go through ``_lock`` so concurrent workers never lose
    an update. Workers consult ``throttle_delay()`` before each attempt and
    call ``update()`` with whatever quota the attempt reported.
    """

    def __init__(self, threshold: int = 10, limit: int | None = None):
        self.remaining: int | None = None
        self.reset_at: float | None = None
        self.threshold = threshold
        self.limit = limit
        self.updates = 0
        self.rate_limit_hits = 0
        self.throttle_count = 0
        self.total_throttle_time = 0.0
        self._lock = asyncio.Lock()

    async def update(self, info: RateLimitInfo) -> None:
        """Fold a quota report into the state."""
        async with self._lock:
            self._apply(info)

    def _apply(self, info: RateLimitInfo) -> None:
        if info.reset_at is not None and self.reset_at is not None:
            if info.reset_at < self.reset_at:
                # Late report from a previous window
                return
            if info.reset_at == self.reset_at and info.remaining is not None:
                # Same window: responses can arrive out of order, quota only goes down
                if self.remaining is not None:
                    self.remaining = min(self.remaining, info.remaining)
                else:
                    self.remaining = info.remaining
                self._finish_update(info)
                return

        if info.remaining is not None:
            self.remaining = info.remaining
        if info.reset_at is not None:
            self.reset_at = info.reset_at
        self._finish_update(info)

    def _finish_update(self, info: RateLimitInfo) -> None:
        if info.limit is not None:
            self.limit = info.limit
        self.updates += 1

    async def record_rate_limit_hit(self) -> None:
        async with self._lock:
            self.rate_limit_hits += 1

    async def throttle_delay(self, cooldown: float | None = None, now: float | None = None) -> float:
        """
        Seconds a worker must wait before its next attempt.

        Non-zero only while ``remaining <= threshold`` and the reset time is
        still in the future. ``cooldown`` caps the wait when set.
        """
        async with self._lock:
            if self.remaining is None or self.reset_at is None:
                return 0.0
            if self.remaining > self.threshold:
                return 0.0
            now = time.time() if now is None else now
            if now >= self.reset_at:
                return 0.0
            delay = self.reset_at - now
            if cooldown is not None:
                delay = min(delay, cooldown)
            return delay

    async def record_throttle(self, duration: float) -> None:
        async with self._lock:
            self.throttle_count += 1
            self.total_throttle_time += duration

    async def snapshot(self) -> RateLimitSnapshot:
        async with self._lock:
            return RateLimitSnapshot(
                remaining=self.remaining,
                reset_at=self.reset_at,
                threshold=self.threshold,
                limit=self.limit,
                updates=self.updates,
                rate_limit_hits=self.rate_limit_hits,
                throttle_count=self.throttle_count,
                total_throttle_time=self.total_throttle_time,
            )


class BackoffStrategy(ABC):
    """Strategy for choosing the delay before a retry."""

    @abstractmethod
    def delay_for(self, retry_number: int, error_info: ErrorInfo) -> float:
        """
        Delay before a retry.

        Args:
            retry_number: 1 for the first retry, 2 for the second, ...
            error_info: Classification of the error that triggered the retry

        Returns:
            Delay in seconds
        """
        ...


class ExponentialBackoffStrategy(BackoffStrategy):
    """``base_delay * multiplier ** (retry_number - 1)``, capped at ``max_delay``."""

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
    ):
        """
        Initialize exponential backoff strategy.

        Args:
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound for any single delay in seconds
            multiplier: Growth factor between consecutive retries
        """
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier

    def delay_for(self, retry_number: int, error_info: ErrorInfo) -> float:
        return min(
            self.base_delay * (self.multiplier ** (retry_number - 1)),
            self.max_delay,
        )


class FixedDelayStrategy(BackoffStrategy):
    """Same delay before every retry."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    def delay_for(self, retry_number: int, error_info: ErrorInfo) -> float:
        return self.delay
