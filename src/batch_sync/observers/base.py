"""Observer hooks for batch lifecycle events."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class ProcessingEvent(Enum):
    """
    Events emitted by ParallelBatchProcessor.

    Payload keys per event:
        BATCH_STARTED: total, max_concurrent, dry_run
        BATCH_COMPLETED: total, succeeded, failed, duration, cancelled
        WORKER_STARTED / WORKER_STOPPED: worker_id
        ITEM_STARTED: item, index, worker_id
        ITEM_COMPLETED: item, duration, attempts
        ITEM_FAILED: item, error_type, error_kind, attempts
        ITEM_CANCELLED: item, index
        RETRY_SCHEDULED: item, attempt, retry_number, delay, error_kind
        RATE_LIMIT_HIT: item, worker_id, attempt
        THROTTLE_STARTED: item, worker_id, delay
        THROTTLE_ENDED: item, worker_id, duration
    """

    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"
    WORKER_STARTED = "worker_started"
    WORKER_STOPPED = "worker_stopped"
    ITEM_STARTED = "item_started"
    ITEM_COMPLETED = "item_completed"
    ITEM_FAILED = "item_failed"
    ITEM_CANCELLED = "item_cancelled"
    RETRY_SCHEDULED = "retry_scheduled"
    RATE_LIMIT_HIT = "rate_limit_hit"
    THROTTLE_STARTED = "throttle_started"
    THROTTLE_ENDED = "throttle_ended"


class ProcessorObserver(ABC):
    """
    Receives every ProcessingEvent of a batch run.

    Observers are awaited in registration order with a 5 second limit each.
    An observer that raises or times out is logged and skipped; it never
    affects item results.
    """

    @abstractmethod
    async def on_event(self, event: ProcessingEvent, data: dict[str, Any]) -> None:
        ...


class BaseObserver(ProcessorObserver):
    """Observer that ignores everything; subclass and override ``on_event``."""

    async def on_event(self, event: ProcessingEvent, data: dict[str, Any]) -> None:
        return None
