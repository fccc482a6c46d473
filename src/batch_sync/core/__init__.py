"""Core components for batch processing."""

from .config import ProcessorConfig, RateLimitConfig
from .protocols import ProcessFunc, QuotaReporting, TItem, TOutput
from .quota import RateLimitInfo, RateLimitSnapshot, extract_rate_limit

__all__ = [
    "ProcessorConfig",
    "RateLimitConfig",
    "ProcessFunc",
    "QuotaReporting",
    "TItem",
    "TOutput",
    "RateLimitInfo",
    "RateLimitSnapshot",
    "extract_rate_limit",
]
