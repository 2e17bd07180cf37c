"""Value types shared by the detection pipeline and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in normalized [0, 1] coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0


EMPTY_BOX = BoundingBox(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class TrackInfo:
    track_id: int
    color: RGB
    opacity: float  # > 0.5 observed this frame, <= 0.5 remembered

    @property
    def is_active(self) -> bool:
        return self.opacity > 0.5


@dataclass(frozen=True)
class RawDetection:
    """Detector output; `box` is normalized to the detector's square canvas."""

    box: BoundingBox
    label: str
    confidence: float
    track: TrackInfo
    distance: float | None = None


@dataclass(frozen=True)
class Detection:
    """Detection with `box` normalized to the native video frame."""

    box: BoundingBox
    label: str
    confidence: float
    track: TrackInfo
    distance: float | None = None


@dataclass(frozen=True)
class FrameResult:
    timestamp: float
    detections: tuple[Detection, ...]


@dataclass(frozen=True)
class ProcessingStats:
    processed_frames: int = 0
    total_frames: int = 0
    progress: float = 0.0
    average_inference_ms: float = 0.0


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    duration: float  # seconds
    frame_rate: float

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)
