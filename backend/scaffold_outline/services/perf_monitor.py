"""Stage timing for the outline pipeline."""
import functools
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("scaffold-outline.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time at DEBUG.

    Usage::

        @timed
        def detect(...):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                f"{func.__qualname__} took {duration_ms}ms",
                extra={
                    "timed_function": f"{func.__module__}.{func.__qualname__}",
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for pipeline-level metrics.

    Tracks:
    - Drawings processed and failed
    - Cumulative and average pipeline duration
    - Per-stage durations and the slowest stage seen
    - Failure count broken down by stage
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._drawings_processed: int = 0
        self._drawings_failed: int = 0
        self._total_pipeline_duration_ms: float = 0.0
        self._stage_durations: Dict[str, list] = {}   # stage -> [duration_ms, ...]
        self._failure_counts: Dict[str, int] = {}      # stage -> count
        self._slowest_stage: Optional[str] = None
        self._slowest_stage_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_drawing_complete(self, pipeline_duration_ms: float, success: bool = True) -> None:
        """Call once per processed drawing."""
        with self._lock:
            self._drawings_processed += 1
            if not success:
                self._drawings_failed += 1
            self._total_pipeline_duration_ms += pipeline_duration_ms

    def record_stage_duration(self, stage: str, duration_ms: float) -> None:
        with self._lock:
            self._stage_durations.setdefault(stage, []).append(duration_ms)
            if duration_ms > self._slowest_stage_ms:
                self._slowest_stage_ms = duration_ms
                self._slowest_stage = stage

    def record_stage_failure(self, stage: str) -> None:
        with self._lock:
            self._failure_counts[stage] = self._failure_counts.get(stage, 0) + 1

    @contextmanager
    def stage(self, name: str, drawing_id: str = ""):
        """Time a block as one pipeline stage; an escaping exception counts as a failure."""
        start = time.perf_counter()
        try:
            yield
        except Exception:
            self.record_stage_failure(name)
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            self.record_stage_duration(name, duration_ms)
            logger.debug(
                f"Stage {name} took {duration_ms}ms",
                extra={"stage": name, "drawing_id": drawing_id, "duration_ms": duration_ms},
            )

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            drawings_processed        : int
            drawings_failed           : int
            avg_pipeline_duration_ms  : float  (0 if none processed)
            slowest_stage             : str | None
            slowest_stage_ms          : float
            failure_count_by_stage    : dict  {stage: count}
            stage_avg_durations_ms    : dict  {stage: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_pipeline_duration_ms / self._drawings_processed, 2)
                if self._drawings_processed > 0
                else 0.0
            )
            stage_avgs = {
                stage: round(sum(durations) / len(durations), 2) if durations else 0.0
                for stage, durations in self._stage_durations.items()
            }
            return {
                "drawings_processed": self._drawings_processed,
                "drawings_failed": self._drawings_failed,
                "avg_pipeline_duration_ms": avg,
                "slowest_stage": self._slowest_stage,
                "slowest_stage_ms": round(self._slowest_stage_ms, 2),
                "failure_count_by_stage": dict(self._failure_counts),
                "stage_avg_durations_ms": stage_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._drawings_processed = 0
            self._drawings_failed = 0
            self._total_pipeline_duration_ms = 0.0
            self._stage_durations.clear()
            self._failure_counts.clear()
            self._slowest_stage = None
            self._slowest_stage_ms = 0.0


# Module-level singleton; the pipeline records into this instance.
tracker = PerformanceTracker()
