"""Lightweight operation timing."""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class PerformanceTracker:
    """Records durations of named operations.

    Misuse (ending an operation that was never started) is logged and
    ignored rather than raised.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter, max_samples: int = 1000):
        self._clock = clock
        self._max_samples = max_samples
        self._started: Dict[str, float] = {}
        self._samples: Dict[str, List[float]] = {}

    def start(self, operation: str) -> None:
        if operation in self._started:
            logger.warning(f"start() called twice for '{operation}'; restarting timer")
        self._started[operation] = self._clock()

    def end(self, operation: str) -> Optional[float]:
        """Stop timing an operation.

        Returns:
            Duration in milliseconds, or None without a matching start().
        """
        started = self._started.pop(operation, None)
        if started is None:
            logger.warning(f"end() called for '{operation}' without matching start()")
            return None

        duration_ms = (self._clock() - started) * 1000
        samples = self._samples.setdefault(operation, [])
        samples.append(duration_ms)
        if len(samples) > self._max_samples:
            del samples[0]
        return duration_ms

    @contextmanager
    def measure(self, operation: str) -> Iterator[None]:
        self.start(operation)
        try:
            yield
        finally:
            self.end(operation)

    def get_summary(self) -> Dict[str, Dict[str, float]]:
        summary = {}
        for operation, samples in self._samples.items():
            if not samples:
                continue
            total = sum(samples)
            summary[operation] = {
                "count": len(samples),
                "total_ms": total,
                "avg_ms": total / len(samples),
                "min_ms": min(samples),
                "max_ms": max(samples),
            }
        return summary

    def clear(self) -> None:
        self._started.clear()
        self._samples.clear()
