"""Type protocols for batch sync processing."""

from collections.abc import Awaitable
from typing import Protocol, TypeVar, runtime_checkable

from .quota import RateLimitInfo

TItem = TypeVar("TItem")  # Caller's opaque work item
TOutput = TypeVar("TOutput")  # Value returned by the processing function

TItem_contra = TypeVar("TItem_contra", contravariant=True)
TOutput_co = TypeVar("TOutput_co", covariant=True)


class ProcessFunc(Protocol[TItem_contra, TOutput_co]):
    """
    Processing function contract.

    Called once per attempt with the item exactly as submitted. May be a plain
    function (run in a worker thread) or a coroutine function. Raise
    RateLimitError, TransientError or PermanentError to steer retries.
    """

    def __call__(self, item: TItem_contra) -> TOutput_co | Awaitable[TOutput_co]:
        ...


@runtime_checkable
class QuotaReporting(Protocol):
    """Result or exception that carries a quota report."""

    @property
    def rate_limit(self) -> RateLimitInfo | None:
        ...
