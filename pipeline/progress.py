"""
pipeline/progress.py
Cosmetic progress for a batch dispatch.

The bulk endpoint answers with one response and sends no interim progress,
so the numbers produced here are an estimate driven by elapsed time: every
tick advances by ceil(total / 20), clamped to total.  ProgressState.estimated
stays True until the real response arrives.
"""

import concurrent.futures
import math
import time
from collections.abc import Callable
from dataclasses import replace

from pipeline.config import PROGRESS_INTERVAL_SECONDS, PROGRESS_LINGER_SECONDS, PROGRESS_STEPS
from pipeline.models import ProgressState


class ProgressReporter:
    """Tracks the estimated progress of one in-flight batch."""

    def __init__(self, total: int, steps: int = PROGRESS_STEPS):
        self.total = max(0, int(total))
        self.step = math.ceil(self.total / steps) if self.total else 0
        self._state = ProgressState(current=0, total=self.total)

    def snapshot(self) -> ProgressState:
        return replace(self._state)

    def tick(self) -> ProgressState:
        """Advance the estimate by one step; a finished reporter does not move."""
        if self._state.estimated:
            self._state.current = min(self._state.current + self.step, self.total)
        return self.snapshot()

    def set_processing(self, label: str | None) -> ProgressState:
        self._state.processing = label
        return self.snapshot()

    def finish(self) -> ProgressState:
        """Mark the batch as answered: current jumps to total."""
        self._state.current = self.total
        self._state.processing = None
        self._state.estimated = False
        return self.snapshot()


def run_with_progress(
    task: Callable[[], object],
    total: int,
    on_update: Callable[[ProgressState | None], None],
    *,
    interval: float = PROGRESS_INTERVAL_SECONDS,
    linger: float = PROGRESS_LINGER_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Run a blocking task in a worker thread while reporting estimated progress.

    on_update receives a ProgressState on start, on every tick, and once more
    with current == total when the task returns; after `linger` seconds it
    receives None so the caller can hide the indicator.  If the task raises,
    on_update(None) is called immediately and the exception propagates.
    The task itself is never cancelled.
    """
    reporter = ProgressReporter(total)
    on_update(reporter.snapshot())

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(task)
        try:
            # Tick only while the task is still running; a TimeoutError raised
            # by the task itself must propagate like any other exception.
            while not concurrent.futures.wait([future], timeout=interval).done:
                on_update(reporter.tick())
            result = future.result()
        except Exception:
            on_update(None)
            raise

    on_update(reporter.finish())
    sleep(linger)
    on_update(None)
    return result
