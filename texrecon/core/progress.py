"""
Progress reporting and stage timing.

ProgressCounter reports "<task>: i of n" messages for long-running stages.
It is the only piece of shared mutable state in the parallel patch pass,
so increments are guarded by a lock. Its value is advisory: nothing in the
pipeline branches on it.

Timer records the wall time at which each pipeline stage finished, and can
write those measurements as a CSV report (<prefix>_timings.csv).
"""

import csv
import logging
import threading
import time
from pathlib import Path
from typing import Callable

from texrecon.core.errors import OutputError

logger = logging.getLogger(__name__)


class ProgressCounter:
    """
    Thread-safe "i of n" counter for a named task.

    Args:
        task:        Human-readable task name, prefixed to every message.
        total:       Number of work units.
        on_progress: Optional callback receiving each progress message.
        report_every: Emit a message every this many increments (the last
                      increment always reports).
    """

    def __init__(self, task: str, total: int,
                 on_progress: Callable[[str], None] | None = None,
                 report_every: int = 0):
        self._task = task
        self._total = total
        self._on_progress = on_progress
        # Report roughly every 10% unless told otherwise.
        self._report_every = report_every or max(1, total // 10)
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def total(self) -> int:
        return self._total

    def inc(self) -> int:
        """Record one finished unit of work and return the new count."""
        with self._lock:
            self._count += 1
            count = self._count

        if count == self._total or count % self._report_every == 0:
            self._report(f"{self._task}: {count} of {self._total}")
        return count

    def _report(self, message: str) -> None:
        logger.debug(message)
        if self._on_progress is not None:
            self._on_progress(message)


class Timer:
    """
    Collects (event, elapsed seconds) measurements for a run.

    Elapsed time is measured from construction, so the report shows when
    each stage finished relative to the start of the run.
    """

    def __init__(self):
        self._start = time.perf_counter()
        self._measurements: list[tuple[str, float]] = []

    def measure(self, event: str) -> float:
        elapsed = time.perf_counter() - self._start
        self._measurements.append((event, elapsed))
        logger.debug("%s finished after %.3fs", event, elapsed)
        return elapsed

    @property
    def measurements(self) -> list[tuple[str, float]]:
        return list(self._measurements)

    def write_to_file(self, path) -> None:
        """
        Write all measurements as CSV with an `Event,Time` header.

        Times are written in milliseconds.

        Raises:
            OutputError: If the file cannot be written.
        """
        path = Path(path)
        try:
            with open(path, "w", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(["Event", "Time"])
                for event, elapsed in self._measurements:
                    writer.writerow([event, int(round(elapsed * 1000))])
        except OSError as e:
            raise OutputError(f"Could not write timings to {path}: {e}") from e
