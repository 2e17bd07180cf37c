"""Public start/stop/configure surface over a detection pipeline."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from framewise.config import PipelineSettings
from framewise.events.emitter import Subscriber, UpdateChannel
from framewise.events.schemas import DetectionsUpdate, RunCompleted, StatsUpdate, UpdateBase
from framewise.ingest.decoder import Decoder, PlaybackSync
from framewise.pipeline.detection import CompletionCallback, DetectionPipeline, PipelineState
from framewise.types import Detection, ProcessingStats
from framewise.vision.detector import Detector

logger = logging.getLogger(__name__)


class PipelineController:
    """Wire decoder, detector and observers to one pipeline.

    ``latest_detections`` and ``stats`` mirror what observers have been sent;
    they are updated on the update channel's dispatcher thread.
    """

    def __init__(
        self,
        decoder: Decoder,
        detector: Detector,
        settings: PipelineSettings | None = None,
        playback: PlaybackSync | None = None,
        channel: UpdateChannel | None = None,
    ):
        self.detector = detector
        self.channel = channel or UpdateChannel()
        self.pipeline = DetectionPipeline(
            decoder=decoder,
            detector=detector,
            channel=self.channel,
            settings=settings or PipelineSettings(),
            playback=playback,
        )
        self._lock = threading.Lock()
        self._latest: tuple[Detection, ...] = ()
        self._stats = ProcessingStats()
        self._last_success: bool | None = None
        self.channel.subscribe(self._on_update)

        if self.settings.active_classes:
            detector.set_active_classes(self.settings.active_classes)

    @property
    def settings(self) -> PipelineSettings:
        """The pipeline's live settings, including any ``configure`` changes."""
        return self.pipeline.settings

    @property
    def state(self) -> PipelineState:
        return self.pipeline.state

    @property
    def latest_detections(self) -> tuple[Detection, ...]:
        with self._lock:
            return self._latest

    @property
    def stats(self) -> ProcessingStats:
        with self._lock:
            return self._stats

    @property
    def last_success(self) -> bool | None:
        with self._lock:
            return self._last_success

    def subscribe(self, callback: Subscriber) -> None:
        self.channel.subscribe(callback)

    def configure(
        self,
        skip_frames: int | None = None,
        active_classes: Iterable[str] | None = None,
    ) -> None:
        """Update stride and class filter.

        The class filter goes to the detector immediately since it only
        affects future detections. A stride change during a run raises
        ``PipelineBusyError``.
        """
        if skip_frames is not None and skip_frames != self.pipeline.skip_frames:
            self.pipeline.set_skip_frames(skip_frames)
        if active_classes is not None:
            self.detector.set_active_classes(active_classes)

    def get_active_classes(self) -> list[str]:
        return self.detector.get_active_classes()

    def set_playback(self, playback: PlaybackSync | None) -> None:
        self.pipeline.set_playback(playback)

    def reset_tracking(self) -> None:
        self.detector.reset_tracking()
        logger.info("Tracking reset")

    def start(self, video: str, on_complete: CompletionCallback | None = None) -> bool:
        return self.pipeline.start(video, on_complete)

    def stop(self) -> bool:
        return self.pipeline.stop()

    def wait(self, timeout: float | None = None) -> bool:
        done = self.pipeline.wait(timeout)
        self.channel.flush(timeout)
        return done

    def query_detections_near(self, timestamp: float, tolerance: float | None = None) -> tuple[Detection, ...]:
        if tolerance is None:
            tolerance = self.settings.nearest_tolerance_seconds
        return self.pipeline.store.nearest(timestamp, tolerance)

    def update_for_time(self, timestamp: float) -> tuple[Detection, ...]:
        """Publish the stored detections nearest a playback position."""
        detections = self.query_detections_near(timestamp)
        self.channel.publish(DetectionsUpdate, timestamp=timestamp, detections=list(detections))
        return detections

    def performance_summary(self) -> str:
        stats = self.pipeline.stats
        if stats.sample_count == 0:
            return "No video processing statistics available"

        lines = [
            "Video processing statistics:",
            f"   - Frames processed: {self.pipeline.processed_frames}",
            f"   - Average time: {stats.average_ms:.1f}ms/frame",
            f"   - Min time: {stats.min_ms:.1f}ms",
            f"   - Max time: {stats.max_ms:.1f}ms",
            f"   - Skip frames: {self.pipeline.skip_frames}",
        ]
        summary = "\n".join(lines)

        tracking_summary = getattr(self.detector, "tracking_summary", None)
        if callable(tracking_summary):
            summary += "\n\n" + tracking_summary()
        return summary

    def close(self) -> None:
        self.pipeline.close()
        self.channel.close()

    def _on_update(self, update: UpdateBase) -> None:
        with self._lock:
            if isinstance(update, DetectionsUpdate):
                self._latest = tuple(update.detections)
            elif isinstance(update, StatsUpdate):
                self._stats = update.stats
            elif isinstance(update, RunCompleted):
                self._stats = update.stats
                self._last_success = update.success
