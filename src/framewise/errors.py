"""Exception types raised by framewise components."""

from __future__ import annotations


class FramewiseError(RuntimeError):
    """Base class for framewise runtime errors."""


class SourceUnavailableError(FramewiseError):
    """Video track missing, or its size/frame rate could not be read."""


class FrameDecodeError(FramewiseError):
    """No image could be produced for a requested timestamp."""

    def __init__(self, timestamp: float, reason: str = "decode failed"):
        super().__init__(f"{reason} at {timestamp:.3f}s")
        self.timestamp = timestamp
        self.reason = reason


class EmptyFrameError(FrameDecodeError):
    """Decoder produced an image with zero width or height."""

    def __init__(self, timestamp: float):
        super().__init__(timestamp, reason="empty image")


class DetectorTimeoutError(FramewiseError):
    """Detector did not produce a result within the configured bound."""


class DegenerateGeometryError(ValueError):
    """Native frame size or letterbox scale is zero or negative."""


class PipelineBusyError(FramewiseError):
    """Configuration that is frozen during a run was changed while running."""
