"""Sampled-frame detection runs over a video.

One worker thread walks the sample plan and submits decode jobs to a small
pool. Each decode job hands its frame to the detector through a single-worker
executor and waits on the returned future, then performs the frame's
bookkeeping (store write, latency sample, counters, publication) under one
lock. Decodes may overlap; detector calls and bookkeeping never interleave.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np

from framewise.config import PipelineSettings
from framewise.errors import (
    DetectorTimeoutError,
    FrameDecodeError,
    PipelineBusyError,
    SourceUnavailableError,
)
from framewise.events.emitter import UpdateChannel
from framewise.events.schemas import DetectionsUpdate, RunCompleted, StatsUpdate
from framewise.geometry import remap_detections
from framewise.ingest.decoder import Decoder, PlaybackSync, validate_frame
from framewise.pipeline.stats import StatsTracker
from framewise.pipeline.store import TimedResultStore
from framewise.types import ProcessingStats, RawDetection, VideoInfo
from framewise.vision.detector import Detector

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[bool], None]

PROGRESS_LOG_EVERY = 10


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETING = "completing"
    CANCELLING = "cancelling"


@dataclass(frozen=True)
class SamplePlan:
    total_logical_frames: int
    stride: int
    timestamps: tuple[float, ...]

    @property
    def frames_to_process(self) -> int:
        return len(self.timestamps)


def plan_timestamps(duration: float, frame_rate: float, skip_frames: int) -> SamplePlan:
    """Every ``skip_frames + 1``-th logical frame, as seconds from the start."""
    if frame_rate <= 0:
        raise SourceUnavailableError(f"invalid frame rate {frame_rate}")
    stride = max(0, int(skip_frames)) + 1
    total = int(math.floor(duration * frame_rate)) if duration > 0 else 0
    count = total // stride
    timestamps = tuple(i * stride / frame_rate for i in range(count))
    return SamplePlan(total_logical_frames=total, stride=stride, timestamps=timestamps)


class DetectionPipeline:
    """Idle -> Running -> (Completing | Cancelling) -> Idle."""

    def __init__(
        self,
        decoder: Decoder,
        detector: Detector,
        channel: UpdateChannel | None = None,
        settings: PipelineSettings | None = None,
        playback: PlaybackSync | None = None,
    ):
        self.decoder = decoder
        self.detector = detector
        self.channel = channel or UpdateChannel()
        self.settings = settings.model_copy() if settings is not None else PipelineSettings()
        self.playback = playback
        self.store = TimedResultStore()
        self.stats = StatsTracker()

        self._state = PipelineState.IDLE
        self._state_lock = threading.Lock()
        self._book_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._detect_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="framewise-detect")
        self._processed = 0
        self._total = 0
        self._video: VideoInfo | None = None

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is not PipelineState.IDLE

    @property
    def processed_frames(self) -> int:
        with self._book_lock:
            return self._processed

    @property
    def total_frames(self) -> int:
        with self._book_lock:
            return self._total

    @property
    def video(self) -> VideoInfo | None:
        """Info of the source of the current or most recent run."""
        return self._video

    @property
    def skip_frames(self) -> int:
        return self.settings.skip_frames

    def set_skip_frames(self, count: int) -> None:
        """Change the sample stride; rejected while a run is active."""
        count = max(0, int(count))
        with self._state_lock:
            if self._state is not PipelineState.IDLE:
                raise PipelineBusyError("skip_frames cannot change while a run is active")
            self.settings.skip_frames = count
        logger.info("Skip frames set to %d", count)

    def set_playback(self, playback: PlaybackSync | None) -> None:
        self.playback = playback

    def start(self, source: str, on_complete: CompletionCallback | None = None) -> bool:
        """Begin a run. Returns False if already running or the source is unusable."""
        state = self.state
        if state is not PipelineState.IDLE:
            logger.warning("Start rejected: pipeline is %s", state.value)
            return False

        # probing may be slow; keep it outside the state lock
        try:
            info = self.decoder.probe(source)
            if info.frame_rate <= 0:
                raise SourceUnavailableError(f"invalid frame rate {info.frame_rate}")
        except SourceUnavailableError as exc:
            logger.error("Source unavailable: %s", exc)
            if on_complete is not None:
                on_complete(False)
            return False

        with self._state_lock:
            if self._state is not PipelineState.IDLE:
                logger.warning("Start rejected: pipeline is %s", self._state.value)
                return False

            plan = plan_timestamps(info.duration, info.frame_rate, self.settings.skip_frames)
            self._state = PipelineState.RUNNING
            self._stop.clear()
            self._video = info
            self._reset(plan.frames_to_process)
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(source, info, plan, on_complete),
                name="framewise-pipeline",
                daemon=True,
            )
            self._thread.start()
        return True

    def stop(self) -> bool:
        """Ask the active run to stop issuing work. In-flight frames still finish."""
        with self._state_lock:
            if self._state is not PipelineState.RUNNING:
                return False
            self._state = PipelineState.CANCELLING
            self._stop.set()
        logger.info("Stop requested")
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Join the worker; True once the pipeline is idle."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                return False
        return self.state is PipelineState.IDLE

    def close(self) -> None:
        self.stop()
        self.wait(timeout=5.0)
        self._detect_executor.shutdown(wait=False, cancel_futures=True)

    def _reset(self, total: int) -> None:
        self.stats.reset()
        self.store.clear()
        self.detector.reset_tracking()
        with self._book_lock:
            self._processed = 0
            self._total = total
        self.channel.publish(DetectionsUpdate, timestamp=None, detections=[])
        self.channel.publish(StatsUpdate, stats=ProcessingStats(total_frames=total))

    def _run_loop(
        self,
        source: str,
        info: VideoInfo,
        plan: SamplePlan,
        on_complete: CompletionCallback | None,
    ) -> None:
        logger.info(
            "Processing %d of %d frames (stride %d) from %s at %dx%d",
            plan.frames_to_process,
            plan.total_logical_frames,
            plan.stride,
            source,
            info.width,
            info.height,
        )
        workers = self.settings.decode_workers
        slots = threading.BoundedSemaphore(workers)
        futures: list[Future[None]] = []
        success = True

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="framewise-decode")
        try:
            for timestamp in plan.timestamps:
                if not self._acquire_slot(slots):
                    break
                future = pool.submit(self._process_frame, source, timestamp, info.size)
                future.add_done_callback(lambda _f: slots.release())
                futures.append(future)
                if self.settings.frame_delay_seconds > 0:
                    self._stop.wait(self.settings.frame_delay_seconds)
            wait_futures(futures)
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    raise exc
        except Exception:  # noqa: BLE001
            logger.exception("Processing run failed")
            success = False
        finally:
            pool.shutdown(wait=True)

        self._finish(success, on_complete)

    def _acquire_slot(self, slots: threading.BoundedSemaphore) -> bool:
        while not self._stop.is_set():
            if slots.acquire(timeout=0.05):
                if self._stop.is_set():
                    slots.release()
                    return False
                return True
        return False

    def _finish(self, success: bool, on_complete: CompletionCallback | None) -> None:
        with self._state_lock:
            cancelled = self._stop.is_set()
            self._state = PipelineState.CANCELLING if cancelled else PipelineState.COMPLETING

        with self._book_lock:
            processed, total = self._processed, self._total
        if cancelled:
            final = self.stats.snapshot(processed, total, progress=1.0)
        else:
            final = self.stats.snapshot(processed, total)
        self.channel.publish(StatsUpdate, stats=final)
        self.channel.publish(RunCompleted, success=success, stats=final)
        self.channel.flush()

        logger.info(
            "Run %s: %d/%d frames, avg %.1fms",
            "cancelled" if cancelled else "finished",
            processed,
            total,
            final.average_inference_ms,
        )
        try:
            if on_complete is not None:
                on_complete(success)
        finally:
            with self._state_lock:
                self._state = PipelineState.IDLE

    def _process_frame(self, source: str, timestamp: float, native_size: tuple[int, int]) -> None:
        try:
            frame = validate_frame(self.decoder.extract_frame(source, timestamp), timestamp)
        except FrameDecodeError as exc:
            logger.warning("Skipping frame: %s", exc)
            return

        try:
            raws, inference_ms = self._detect(frame)
        except DetectorTimeoutError as exc:
            logger.warning("Skipping frame at %.3fs: %s", timestamp, exc)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Detector failed at %.3fs; skipping frame", timestamp)
            return

        detections = remap_detections(raws, native_size, self.detector.input_size)

        with self._book_lock:
            self.store.put(timestamp, detections)
            self.stats.record_inference(inference_ms)
            self._processed += 1
            processed = self._processed
            snapshot = self.stats.snapshot(processed, self._total)
            self.channel.publish(DetectionsUpdate, timestamp=timestamp, detections=list(detections))
            self.channel.publish(StatsUpdate, stats=snapshot)

        if self.playback is not None and self.settings.sync_playback:
            self._seek(timestamp)

        if processed % PROGRESS_LOG_EVERY == 0:
            active = sum(1 for d in detections if d.track.is_active)
            logger.info(
                "Processed %d/%d frames - avg %.1fms - objects: %d active + %d memory",
                processed,
                snapshot.total_frames,
                snapshot.average_inference_ms,
                active,
                len(detections) - active,
            )

    def _detect(self, frame: np.ndarray) -> tuple[list[RawDetection], float]:
        """Run the detector on its own executor and block until it resolves.

        Returns the detections and the call's own duration in milliseconds.
        Time spent queued behind other frames' calls is neither measured nor
        counted against ``detector_timeout_seconds``.
        """
        started = threading.Event()
        began: list[float] = []

        def run() -> tuple[list[RawDetection], float]:
            begin = time.perf_counter()
            began.append(begin)
            started.set()
            raws = self.detector.detect(frame)
            return raws, (time.perf_counter() - begin) * 1000

        future = self._detect_executor.submit(run)
        while not started.wait(0.05):
            if future.done():
                break

        timeout = self.settings.detector_timeout_seconds
        remaining = None
        if timeout is not None and began:
            remaining = max(0.0, timeout - (time.perf_counter() - began[0]))
        try:
            return future.result(timeout=remaining)
        except FuturesTimeoutError as exc:
            raise DetectorTimeoutError(f"detector exceeded {timeout:.2f}s") from exc

    def _seek(self, timestamp: float) -> None:
        try:
            self.playback.seek(timestamp)  # type: ignore[union-attr]
        except Exception:  # noqa: BLE001
            logger.debug("Playback seek to %.3fs failed", timestamp, exc_info=True)
