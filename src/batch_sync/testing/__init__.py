"""Testing utilities for batch_sync."""

from .failures import combine, fail_item
from .mocks import MockProcessor, MockQuota, SyncResponse

__all__ = ["MockProcessor", "MockQuota", "SyncResponse", "combine", "fail_item"]
