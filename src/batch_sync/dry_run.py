"""Simulated processing call used when ``ProcessorConfig.dry_run`` is set."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# (item, attempt) -> exception to raise, or None to succeed
FailureInjector = Callable[[Any, int], BaseException | None]


@dataclass(frozen=True)
class DryRunOutput:
    """Output recorded for an item processed in dry-run mode."""

    item: Any
    attempt: int
    message: str = "dry run: processing skipped"


class DryRunSimulator:
    """
    Stand-in for the processing function during a dry run.

    Always succeeds after ``latency`` seconds unless ``fail_with`` returns an
    exception for the given item and attempt, which lets tests drive the
    retry path without touching the real processing function.
    """

    def __init__(self, latency: float = 0.0, fail_with: FailureInjector | None = None):
        self.latency = latency
        self.fail_with = fail_with
        self.call_count = 0

    async def __call__(self, item: Any, attempt: int) -> DryRunOutput:
        self.call_count += 1
        logger.debug(f"[DRY-RUN] Skipping processing call for {item!r} (attempt {attempt})")

        if self.latency > 0:
            await asyncio.sleep(self.latency)

        if self.fail_with is not None:
            error = self.fail_with(item, attempt)
            if error is not None:
                raise error

        return DryRunOutput(item=item, attempt=attempt)
