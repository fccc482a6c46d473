"""Metrics collection observer."""

import asyncio
import json
from typing import Any

from .base import BaseObserver, ProcessingEvent


class MetricsObserver(BaseObserver):
    """Collect metrics for monitoring (thread-safe)."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = {
            "items_processed": 0,
            "items_succeeded": 0,
            "items_failed": 0,
            "items_cancelled": 0,
            "retries_scheduled": 0,
            "rate_limits_hit": 0,
            "throttle_waits": 0,
            "total_backoff_time": 0.0,
            "total_throttle_time": 0.0,
            "processing_times": [],
            "attempt_counts": [],
            "error_counts": {},
        }
        self._lock = asyncio.Lock()

    async def on_event(
        self,
        event: ProcessingEvent,
        data: dict[str, Any],
    ) -> None:
        """Collect metrics from events (thread-safe)."""
        async with self._lock:
            if event == ProcessingEvent.ITEM_COMPLETED:
                self.metrics["items_processed"] += 1
                self.metrics["items_succeeded"] += 1
                if "duration" in data:
                    self.metrics["processing_times"].append(data["duration"])
                if "attempts" in data:
                    self.metrics["attempt_counts"].append(data["attempts"])

            elif event == ProcessingEvent.ITEM_FAILED:
                self.metrics["items_processed"] += 1
                self.metrics["items_failed"] += 1
                if "attempts" in data:
                    self.metrics["attempt_counts"].append(data["attempts"])
                if "error_kind" in data:
                    error_kind = data["error_kind"]
                    self.metrics["error_counts"][error_kind] = (
                        self.metrics["error_counts"].get(error_kind, 0) + 1
                    )

            elif event == ProcessingEvent.ITEM_CANCELLED:
                self.metrics["items_processed"] += 1
                self.metrics["items_cancelled"] += 1

            elif event == ProcessingEvent.RETRY_SCHEDULED:
                self.metrics["retries_scheduled"] += 1
                self.metrics["total_backoff_time"] += data.get("delay", 0.0)

            elif event == ProcessingEvent.RATE_LIMIT_HIT:
                self.metrics["rate_limits_hit"] += 1

            elif event == ProcessingEvent.THROTTLE_ENDED:
                self.metrics["throttle_waits"] += 1
                if "duration" in data:
                    self.metrics["total_throttle_time"] += data["duration"]

    async def get_metrics(self) -> dict[str, Any]:
        """Get collected metrics with computed statistics (thread-safe)."""
        async with self._lock:
            processing_times = self.metrics["processing_times"]
            attempt_counts = self.metrics["attempt_counts"]
            return {
                **self.metrics,
                "avg_processing_time": (
                    sum(processing_times) / len(processing_times) if processing_times else 0
                ),
                "avg_attempts": (
                    sum(attempt_counts) / len(attempt_counts) if attempt_counts else 0
                ),
                "success_rate": (
                    self.metrics["items_succeeded"] / self.metrics["items_processed"]
                    if self.metrics["items_processed"] > 0
                    else 0
                ),
            }

    def reset(self) -> None:
        """Reset all metrics."""
        self.__init__()

    async def export_json(self) -> str:
        """Export metrics as JSON string.

        Returns:
            JSON string containing all metrics and computed statistics
        """
        metrics = await self.get_metrics()
        export_data = {
            **metrics,
            "processing_times_count": len(metrics.get("processing_times", [])),
        }
        export_data.pop("processing_times", None)
        export_data.pop("attempt_counts", None)
        return json.dumps(export_data, indent=2)

    async def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string

        Example:
            >>> observer = MetricsObserver()
            >>> # ... process items ...
            >>> prom_text = await observer.export_prometheus()
            >>> print(prom_text)
            # HELP batch_sync_items_processed Total items processed
            # TYPE batch_sync_items_processed counter
            batch_sync_items_processed 100
            ...
        """
        metrics = await self.get_metrics()

        lines = []

        counters = [
            ("items_processed", "Total items processed"),
            ("items_succeeded", "Total items succeeded"),
            ("items_failed", "Total items failed"),
            ("items_cancelled", "Total items cancelled before admission"),
            ("retries_scheduled", "Total retries scheduled"),
            ("rate_limits_hit", "Total rate limits encountered"),
            ("throttle_waits", "Total preemptive throttle waits"),
        ]

        for metric_name, help_text in counters:
            lines.append(f"# HELP batch_sync_{metric_name} {help_text}")
            lines.append(f"# TYPE batch_sync_{metric_name} counter")
            lines.append(f"batch_sync_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        gauges = [
            ("avg_processing_time", "Average processing time in seconds"),
            ("avg_attempts", "Average attempts per item"),
            ("success_rate", "Success rate (0.0 to 1.0)"),
            ("total_backoff_time", "Total time scheduled for retry backoff (seconds)"),
            ("total_throttle_time", "Total time spent in preemptive throttling (seconds)"),
        ]

        for metric_name, help_text in gauges:
            lines.append(f"# HELP batch_sync_{metric_name} {help_text}")
            lines.append(f"# TYPE batch_sync_{metric_name} gauge")
            lines.append(f"batch_sync_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        error_counts = metrics.get("error_counts", {})
        if error_counts:
            lines.append("# HELP batch_sync_errors_total Total failed items by error kind")
            lines.append("# TYPE batch_sync_errors_total counter")
            for error_kind, count in error_counts.items():
                safe_kind = str(error_kind).replace('"', '\\"')
                lines.append(f'batch_sync_errors_total{{error_kind="{safe_kind}"}} {count}')
            lines.append("")

        return "\n".join(lines)

    async def export_dict(self) -> dict[str, Any]:
        """Export metrics as a dictionary."""
        return await self.get_metrics()
