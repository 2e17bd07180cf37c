"""Frame extraction from video files."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol

import cv2
import numpy as np

from framewise.errors import EmptyFrameError, FrameDecodeError, SourceUnavailableError
from framewise.types import VideoInfo

logger = logging.getLogger(__name__)


class Decoder(Protocol):
    def probe(self, source: str) -> VideoInfo: ...

    def extract_frame(self, source: str, timestamp: float) -> np.ndarray: ...


class PlaybackSync(Protocol):
    def seek(self, timestamp: float) -> None: ...


def validate_frame(frame: np.ndarray | None, timestamp: float) -> np.ndarray:
    """Reject missing or zero-extent images."""
    if frame is None:
        raise FrameDecodeError(timestamp, reason="no image produced")
    if frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
        raise EmptyFrameError(timestamp)
    return frame


def _source_path(source: str | Path) -> str:
    return str(source)


class OpenCVDecoder:
    """Decode still frames at arbitrary timestamps with cv2.VideoCapture.

    A capture handle cannot be used by two threads at once. Each call checks a
    capture for its source out of an idle pool and returns it afterwards, so
    the number of open handles per source never exceeds the peak number of
    concurrent callers, however many threads come and go.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._idle: dict[str, list[cv2.VideoCapture]] = {}
        self._open = 0
        self._info_cache: dict[str, VideoInfo] = {}

    def probe(self, source: str | Path) -> VideoInfo:
        path = _source_path(source)
        with self._lock:
            cached = self._info_cache.get(path)
        if cached is not None:
            return cached

        cap = cv2.VideoCapture(path)
        try:
            if not cap.isOpened():
                raise SourceUnavailableError(f"Could not open video: {path}")

            width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
            height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
            fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
            frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        finally:
            cap.release()

        if width <= 0 or height <= 0:
            raise SourceUnavailableError(f"No readable video track dimensions in {path}")
        if fps <= 0:
            raise SourceUnavailableError(f"Video reports no frame rate: {path}")

        info = VideoInfo(width=width, height=height, duration=frame_count / fps, frame_rate=fps)
        with self._lock:
            self._info_cache[path] = info
        return info

    def native_frame_size(self, source: str | Path) -> tuple[int, int]:
        return self.probe(source).size

    def duration(self, source: str | Path) -> float:
        return self.probe(source).duration

    def nominal_frame_rate(self, source: str | Path) -> float:
        return self.probe(source).frame_rate

    def extract_frame(self, source: str | Path, timestamp: float) -> np.ndarray:
        path = _source_path(source)
        info = self.probe(path)
        frame_index = int(round(timestamp * info.frame_rate))

        cap = self._checkout(path, timestamp)
        try:
            if not cap.set(cv2.CAP_PROP_POS_FRAMES, frame_index):
                raise FrameDecodeError(timestamp, reason=f"seek to frame {frame_index} rejected")
            ok, frame = cap.read()
        finally:
            self._checkin(path, cap)

        if not ok:
            raise FrameDecodeError(timestamp, reason="read failed")
        return validate_frame(frame, timestamp)

    @property
    def open_captures(self) -> int:
        """Capture handles currently open, idle or in use."""
        with self._lock:
            return self._open

    def close(self) -> None:
        """Release every idle capture."""
        with self._lock:
            captures = [cap for idle in self._idle.values() for cap in idle]
            self._idle.clear()
            self._open -= len(captures)
        for cap in captures:
            cap.release()

    def _checkout(self, path: str, timestamp: float) -> cv2.VideoCapture:
        with self._lock:
            idle = self._idle.get(path)
            if idle:
                return idle.pop()

        cap = cv2.VideoCapture(path)
        if not cap.isOpened():
            raise FrameDecodeError(timestamp, reason=f"could not reopen {path}")
        with self._lock:
            self._open += 1
        logger.debug("Opened capture %d for %s", self._open, path)
        return cap

    def _checkin(self, path: str, cap: cv2.VideoCapture) -> None:
        with self._lock:
            self._idle.setdefault(path, []).append(cap)
