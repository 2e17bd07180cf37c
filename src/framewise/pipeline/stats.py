"""Inference latency accounting for a processing run."""

from __future__ import annotations

import threading

from framewise.types import ProcessingStats


class StatsTracker:
    """Running latency counters.

    Keeps sum/count/min/max instead of the raw sample list; the mean over all
    recorded samples is unchanged and each update is O(1).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._total_ms = 0.0
        self._min_ms: float | None = None
        self._max_ms: float | None = None

    def record_inference(self, ms: float) -> None:
        ms = float(ms)
        with self._lock:
            self._count += 1
            self._total_ms += ms
            self._min_ms = ms if self._min_ms is None else min(self._min_ms, ms)
            self._max_ms = ms if self._max_ms is None else max(self._max_ms, ms)

    def reset(self) -> None:
        with self._lock:
            self._count = 0
            self._total_ms = 0.0
            self._min_ms = None
            self._max_ms = None

    @property
    def sample_count(self) -> int:
        with self._lock:
            return self._count

    @property
    def average_ms(self) -> float:
        with self._lock:
            return self._total_ms / self._count if self._count else 0.0

    @property
    def min_ms(self) -> float:
        with self._lock:
            return self._min_ms if self._min_ms is not None else 0.0

    @property
    def max_ms(self) -> float:
        with self._lock:
            return self._max_ms if self._max_ms is not None else 0.0

    def snapshot(self, processed: int, total: int, progress: float | None = None) -> ProcessingStats:
        """Build stats; ``progress`` overrides ``processed / total`` when given."""
        if progress is None:
            progress = processed / total if total > 0 else 0.0
        return ProcessingStats(
            processed_frames=processed,
            total_frames=total,
            progress=progress,
            average_inference_ms=self.average_ms,
        )
