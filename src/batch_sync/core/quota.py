"""Quota reports exchanged between processing functions and the engine."""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Header names used by GitHub, Azure DevOps and most REST APIs
REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"
LIMIT_HEADER = "x-ratelimit-limit"
RETRY_AFTER_HEADER = "retry-after"


class RateLimitInfo(BaseModel):
    """
    Quota figures reported by one processing attempt.

    Attach an instance as ``rate_limit`` on the value returned by the
    processing function (or on a raised SyncError) and the engine folds it
    into the shared RateLimitState.

    Attributes:
        remaining: Requests left in the current window
        reset_at: Epoch seconds at which the window resets
        limit: Total requests allowed per window
    """

    model_config = ConfigDict(frozen=True)

    remaining: int | None = Field(default=None, ge=0)
    reset_at: float | None = None
    limit: int | None = Field(default=None, ge=0)

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], now: float | None = None
    ) -> "RateLimitInfo | None":
        """
        Build a report from ``X-RateLimit-*`` / ``Retry-After`` response headers.

        Returns None when none of the headers are present.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        remaining = lowered.get(REMAINING_HEADER)
        reset = lowered.get(RESET_HEADER)
        limit = lowered.get(LIMIT_HEADER)
        retry_after = lowered.get(RETRY_AFTER_HEADER)

        if remaining is None and reset is None and limit is None and retry_after is None:
            return None

        reset_at: float | None = None
        if reset is not None:
            reset_at = float(reset)
        elif retry_after is not None:
            reset_at = (time.time() if now is None else now) + float(retry_after)
            if remaining is None:
                remaining = "0"

        return cls.model_validate({"remaining": remaining, "reset_at": reset_at, "limit": limit})


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Point-in-time copy of RateLimitState, returned on BatchResult."""

    remaining: int | None
    reset_at: float | None
    threshold: int
    limit: int | None = None
    updates: int = 0
    rate_limit_hits: int = 0
    throttle_count: int = 0
    total_throttle_time: float = 0.0


def extract_rate_limit(source: Any) -> RateLimitInfo | None:
    """
    Pull a quota report out of a processing result or exception.

    Accepts a RateLimitInfo, an object with a ``rate_limit`` attribute, or a
    mapping with a ``rate_limit`` key. Returns None if nothing usable is found.
    """
    if source is None:
        return None
    if isinstance(source, RateLimitInfo):
        return source

    try:
        if isinstance(source, Mapping):
            candidate = source.get("rate_limit")
        else:
            candidate = getattr(source, "rate_limit", None)

        if candidate is None or isinstance(candidate, RateLimitInfo):
            return candidate
        if isinstance(candidate, Mapping):
            return RateLimitInfo.model_validate(dict(candidate))
    except Exception as e:
        logger.debug(f"Ignoring malformed rate limit report: {type(e).__name__}: {e}")

    return None
