"""A simple stopwatch reporting elapsed milliseconds and nanoseconds."""

from __future__ import annotations

import time


class Timer:
    """Stopwatch measuring time since the last call to start()."""

    def __init__(self) -> None:
        self._start_ns = time.perf_counter_ns()

    def start(self) -> None:
        """Restart the stopwatch from now."""
        self._start_ns = time.perf_counter_ns()

    def elapsed_ns(self) -> int:
        """Whole nanoseconds since start."""
        return time.perf_counter_ns() - self._start_ns

    def elapsed_ms(self) -> int:
        """Whole milliseconds since start, truncated."""
        return self.elapsed_ns() // 1_000_000