"""Time-indexed store of processed frame results."""

from __future__ import annotations

import bisect
import math
import threading
from typing import Iterable

from framewise.types import Detection, FrameResult

DEFAULT_TOLERANCE_SECONDS = 0.5


class TimedResultStore:
    """Results keyed by timestamp with nearest-timestamp lookup.

    Writes come from the pipeline's bookkeeping; reads come from playback
    queries on any thread. A single lock guards the sorted key list and the
    result map, and is held only for the O(log n) search or insert.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: list[float] = []
        self._results: dict[float, FrameResult] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, timestamp: object) -> bool:
        with self._lock:
            return timestamp in self._results

    def put(self, timestamp: float, detections: Iterable[Detection]) -> FrameResult:
        """Insert or replace the result stored for ``timestamp``."""
        result = FrameResult(timestamp=float(timestamp), detections=tuple(detections))
        with self._lock:
            if result.timestamp not in self._results:
                bisect.insort(self._keys, result.timestamp)
            self._results[result.timestamp] = result
        return result

    def get(self, timestamp: float) -> FrameResult | None:
        with self._lock:
            return self._results.get(timestamp)

    def nearest_result(
        self, timestamp: float, tolerance: float = DEFAULT_TOLERANCE_SECONDS
    ) -> FrameResult | None:
        """Closest stored result within ``tolerance``; ties go to the smaller key."""
        if not math.isfinite(timestamp):
            return None
        with self._lock:
            if not self._keys:
                return None
            idx = bisect.bisect_left(self._keys, timestamp)
            candidates = self._keys[max(0, idx - 1) : idx + 1]
            # candidates is ascending, so min() keeps the smaller key on ties
            best = min(candidates, key=lambda key: abs(key - timestamp))
            if abs(best - timestamp) > tolerance:
                return None
            return self._results[best]

    def nearest(
        self, timestamp: float, tolerance: float = DEFAULT_TOLERANCE_SECONDS
    ) -> tuple[Detection, ...]:
        result = self.nearest_result(timestamp, tolerance)
        return result.detections if result is not None else ()

    def timestamps(self) -> list[float]:
        with self._lock:
            return list(self._keys)

    def results(self) -> list[FrameResult]:
        """Snapshot of all results in timestamp order."""
        with self._lock:
            return [self._results[key] for key in self._keys]

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
            self._results.clear()
