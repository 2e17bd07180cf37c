from __future__ import annotations

import threading
import time
from typing import Callable, Iterable

import numpy as np
import pytest

from framewise.config import PipelineSettings
from framewise.errors import FrameDecodeError, SourceUnavailableError
from framewise.geometry import to_canvas
from framewise.types import BoundingBox, RawDetection, TrackInfo, VideoInfo

NATIVE = (1920, 1080)
CANVAS = (640, 640)


class FakeDecoder:
    """Decoder returning tiny frames, with scripted failures and hooks."""

    def __init__(
        self,
        info: VideoInfo = VideoInfo(width=1920, height=1080, duration=10.0, frame_rate=30.0),
        fail_at: Iterable[int] = (),
        empty_at: Iterable[int] = (),
        unavailable: bool = False,
    ):
        self.info = info
        self.fail_at = set(fail_at)
        self.empty_at = set(empty_at)
        self.unavailable = unavailable
        self.on_extract: Callable[[int, float], None] | None = None
        self.calls: list[float] = []
        self._lock = threading.Lock()

    def probe(self, source: str) -> VideoInfo:
        if self.unavailable:
            raise SourceUnavailableError(f"no video track in {source}")
        return self.info

    def extract_frame(self, source: str, timestamp: float) -> np.ndarray:
        with self._lock:
            self.calls.append(timestamp)
            call_no = len(self.calls)
        if self.on_extract is not None:
            self.on_extract(call_no, timestamp)
        index = int(round(timestamp * self.info.frame_rate))
        if index in self.fail_at:
            raise FrameDecodeError(timestamp)
        if index in self.empty_at:
            return np.zeros((0, 0, 3), dtype=np.uint8)
        return np.zeros((4, 4, 3), dtype=np.uint8)


class FakeDetector:
    """Detector reporting one centered person and recording call overlap."""

    input_size = CANVAS

    def __init__(self, delay: float = 0.0, slow_calls: Iterable[int] = (), slow_delay: float = 0.0):
        self.delay = delay
        self.slow_calls = set(slow_calls)
        self.slow_delay = slow_delay
        self.calls = 0
        self.resets = 0
        self.active: list[str] = []
        self.max_concurrent = 0
        self._running = 0
        self._lock = threading.Lock()

    def detect(self, image: np.ndarray) -> list[RawDetection]:
        with self._lock:
            self.calls += 1
            call_no = self.calls
            self._running += 1
            self.max_concurrent = max(self.max_concurrent, self._running)
        try:
            if call_no in self.slow_calls:
                time.sleep(self.slow_delay)
            elif self.delay:
                time.sleep(self.delay)
            box = to_canvas(BoundingBox(0.45, 0.45, 0.1, 0.1), NATIVE, CANVAS)
            return [
                RawDetection(
                    box=box,
                    label="person",
                    confidence=0.9,
                    track=TrackInfo(track_id=1, color=(255, 59, 48), opacity=1.0),
                )
            ]
        finally:
            with self._lock:
                self._running -= 1

    def reset_tracking(self) -> None:
        self.resets += 1

    def set_active_classes(self, labels: Iterable[str]) -> None:
        self.active = sorted(labels)

    def get_active_classes(self) -> list[str]:
        return list(self.active)


class FakePlayback:
    def __init__(self) -> None:
        self.seeks: list[float] = []
        self._lock = threading.Lock()

    def seek(self, timestamp: float) -> None:
        with self._lock:
            self.seeks.append(timestamp)


@pytest.fixture
def fast_settings() -> PipelineSettings:
    return PipelineSettings(skip_frames=9, frame_delay_seconds=0.0, decode_workers=2)


@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def fake_detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def fake_playback() -> FakePlayback:
    return FakePlayback()


@pytest.fixture
def make_decoder() -> Callable[..., FakeDecoder]:
    return FakeDecoder


@pytest.fixture
def make_detector() -> Callable[..., FakeDetector]:
    return FakeDetector


@pytest.fixture
def sample_video(tmp_path):
    """20 frame 64x48 MJPG clip at 10fps; frame ``i`` is filled with ``i * 10``."""
    import cv2

    path = tmp_path / "sample.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    if not writer.isOpened():
        pytest.skip("OpenCV build cannot write MJPG video")
    for i in range(20):
        writer.write(np.full((48, 64, 3), i * 10, dtype=np.uint8))
    writer.release()
    return path
