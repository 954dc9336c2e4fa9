from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator

from logger.filtered_logger import LogChannel, debug as log_debug


class PerformanceTracker:
    """Collects per-cycle stage timings (infer, decode) for the inference engine."""

    def __init__(self, max_cycles: int = 64) -> None:
        self._max_cycles = max(1, max_cycles)
        self._lock = Lock()
        self._starts: Dict[int, Dict[str, float]] = defaultdict(dict)
        self._history: Dict[int, Dict[str, float]] = defaultdict(dict)

    def start(self, cycle_id: int, stage: str) -> None:
        """Mark the beginning of a stage for the provided cycle_id."""
        with self._lock:
            self._starts[cycle_id][stage] = time.perf_counter()

    def stop(self, cycle_id: int, stage: str) -> float | None:
        """Record the elapsed time for a stage and log the duration."""
        with self._lock:
            start = self._starts.get(cycle_id, {}).pop(stage, None)
            if start is None:
                return None
            duration = time.perf_counter() - start
            self._history[cycle_id][stage] = duration
            if not self._starts.get(cycle_id):
                self._starts.pop(cycle_id, None)
            self._trim()
        log_debug(LogChannel.ENGINE, f"Cycle {cycle_id} stage {stage} -> {duration * 1000:.2f} ms")
        return duration

    def get_summary(self, cycle_id: int) -> Dict[str, float]:
        """Return the accumulated durations for all stages of a cycle."""
        with self._lock:
            return dict(self._history.get(cycle_id, {}))

    def clear(self, cycle_id: int) -> None:
        """Drop stored timings for a cycle."""
        with self._lock:
            self._starts.pop(cycle_id, None)
            self._history.pop(cycle_id, None)

    @contextmanager
    def stage(self, cycle_id: int, stage: str) -> Iterator[None]:
        """Context manager that wraps the timing of a stage."""
        self.start(cycle_id, stage)
        try:
            yield
        finally:
            self.stop(cycle_id, stage)

    def _trim(self) -> None:
        while len(self._history) > self._max_cycles:
            oldest = min(self._history)
            self._history.pop(oldest)
