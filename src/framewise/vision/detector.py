"""Detector collaborator: letterbox, run the model, filter, track."""

from __future__ import annotations

import threading
from typing import Iterable, Protocol

import cv2
import numpy as np

from framewise.config import DetectorSettings
from framewise.geometry import letterbox_params
from framewise.types import RawDetection
from framewise.vision.tracker import Observation, ObjectTracker

PAD_VALUE = 114


class Detector(Protocol):
    @property
    def input_size(self) -> tuple[int, int]: ...

    def detect(self, image: np.ndarray) -> list[RawDetection]: ...

    def reset_tracking(self) -> None: ...

    def set_active_classes(self, labels: Iterable[str]) -> None: ...

    def get_active_classes(self) -> list[str]: ...


class CanvasModel(Protocol):
    """Raw model returning boxes normalized to the square canvas it was given."""

    def predict(self, canvas: np.ndarray) -> list[Observation]: ...


def letterbox(image: np.ndarray, size: int) -> np.ndarray:
    """Scale ``image`` to fit a ``size`` x ``size`` canvas, centered and padded."""
    height, width = image.shape[:2]
    scale, offset_x, offset_y = letterbox_params((width, height), (size, size))
    new_w = max(1, min(size, int(round(width * scale))))
    new_h = max(1, min(size, int(round(height * scale))))
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

    canvas = np.full((size, size) + image.shape[2:], PAD_VALUE, dtype=image.dtype)
    left = int(round(offset_x))
    top = int(round(offset_y))
    left = min(left, size - new_w)
    top = min(top, size - new_h)
    canvas[top : top + new_h, left : left + new_w] = resized
    return canvas


class TrackingDetector:
    """Wrap a canvas model with confidence/class filtering and object tracking.

    Calls are serialized; the underlying model and tracker are not safe for
    concurrent use.
    """

    def __init__(
        self,
        model: CanvasModel,
        settings: DetectorSettings | None = None,
        tracker: ObjectTracker | None = None,
        active_classes: Iterable[str] | None = None,
    ):
        self.settings = settings or DetectorSettings()
        self.model = model
        self.tracker = tracker or ObjectTracker()
        self._lock = threading.Lock()
        self._active: set[str] = {c.lower() for c in active_classes or []}
        self._ignored: set[str] = {c.lower() for c in self.settings.ignored_classes}

    @property
    def input_size(self) -> tuple[int, int]:
        return (self.settings.input_size, self.settings.input_size)

    def detect(self, image: np.ndarray) -> list[RawDetection]:
        """Return tracked detections for one frame, boxes in canvas space."""
        with self._lock:
            canvas = letterbox(image, self.settings.input_size)
            observations = self._filter(self.model.predict(canvas))
            tracked = self.tracker.update(observations)

        return [
            RawDetection(
                box=item.box,
                label=item.label,
                confidence=item.confidence,
                track=item.track,
                distance=item.distance,
            )
            for item in tracked
        ]

    def reset_tracking(self) -> None:
        with self._lock:
            self.tracker.reset()

    def set_active_classes(self, labels: Iterable[str]) -> None:
        active = {label.lower() for label in labels}
        with self._lock:
            self._active = active

    def get_active_classes(self) -> list[str]:
        with self._lock:
            return sorted(self._active)

    def is_class_allowed(self, label: str) -> bool:
        name = label.lower()
        if self._active:
            return name in self._active
        return name not in self._ignored

    def tracking_counts(self) -> tuple[int, int, int]:
        with self._lock:
            return self.tracker.counts()

    def tracking_summary(self) -> str:
        with self._lock:
            return self.tracker.summary()

    def _filter(self, observations: list[Observation]) -> list[Observation]:
        settings = self.settings
        confident = [o for o in observations if o.confidence >= settings.confidence_threshold]
        confident.sort(key=lambda o: o.confidence, reverse=True)
        out: list[Observation] = []
        for obs in confident[: settings.max_detections]:
            if not self.is_class_allowed(obs.label):
                continue
            if obs.box.width <= settings.min_box_size or obs.box.height <= settings.min_box_size:
                continue
            out.append(obs)
        return out
