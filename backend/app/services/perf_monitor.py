"""Performance monitoring utilities for the PraxisFlow HR pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("praxisflow-api.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for async functions.

    Usage::

        @timed_async
        async def load_practice_dataset(...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                f"{func.__qualname__} finished",
                extra={"duration_ms": duration_ms},
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for HR computations.

    Tracks per operation ("hr_overview", "staffing_demand"):
    - Number of successful computations and their average duration
    - Error count broken down by error code
    - Overview requests whose release fell back to a coarser level
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self._durations_ms: Dict[str, float] = {}
        self._error_counts: Dict[str, int] = {}    # error code -> count
        self._level_fallbacks: int = 0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_computation(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            self._counts[operation] = self._counts.get(operation, 0) + 1
            self._durations_ms[operation] = self._durations_ms.get(operation, 0.0) + duration_ms

    def record_error(self, code: str) -> None:
        with self._lock:
            self._error_counts[code] = self._error_counts.get(code, 0) + 1

    def record_level_fallback(self) -> None:
        with self._lock:
            self._level_fallbacks += 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            computations            : dict  {operation: count}
            avg_duration_ms         : dict  {operation: avg_ms}
            level_fallbacks         : int
            error_count             : int   (total across all codes)
            error_count_by_code     : dict  {code: count}
        """
        with self._lock:
            avgs = {
                op: round(self._durations_ms[op] / n, 2) if n else 0.0
                for op, n in self._counts.items()
            }
            return {
                "computations": dict(self._counts),
                "avg_duration_ms": avgs,
                "level_fallbacks": self._level_fallbacks,
                "error_count": sum(self._error_counts.values()),
                "error_count_by_code": dict(self._error_counts),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._counts.clear()
            self._durations_ms.clear()
            self._error_counts.clear()
            self._level_fallbacks = 0


# Module-level singleton: import this instance everywhere else.
tracker = PerformanceTracker()
