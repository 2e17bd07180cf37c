"""Proximity tracker assigning persistent ids, colours and memory state."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable

from framewise.config import TrackerSettings
from framewise.types import RGB, BoundingBox, TrackInfo

logger = logging.getLogger(__name__)

ACTIVE_OPACITY = 1.0
MEMORY_OPACITY = 0.3
HISTORY_LIMIT = 30

PALETTE: tuple[RGB, ...] = (
    (255, 59, 48),
    (0, 122, 255),
    (52, 199, 89),
    (255, 149, 0),
    (175, 82, 222),
    (255, 45, 85),
    (255, 204, 0),
    (48, 176, 199),
    (0, 199, 190),
    (88, 86, 214),
    (162, 132, 94),
    (204, 51, 153),
    (51, 204, 102),
    (230, 153, 26),
    (77, 77, 230),
    (179, 230, 51),
    (230, 77, 77),
    (102, 204, 204),
    (204, 102, 230),
    (128, 128, 128),
)


@dataclass(frozen=True)
class Observation:
    """Untracked detection in detector canvas space."""

    box: BoundingBox
    label: str
    confidence: float
    distance: float | None = None


@dataclass(frozen=True)
class TrackedOutput:
    box: BoundingBox
    label: str
    confidence: float
    distance: float | None
    track: TrackInfo


@dataclass
class TrackedObject:
    track_id: int
    color: RGB
    label: str
    box: BoundingBox
    confidence: float
    distance: float | None
    first_seen: float
    last_seen: float
    frames_not_seen: int = 0
    is_active: bool = True
    history: deque[float] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))

    @property
    def opacity(self) -> float:
        return ACTIVE_OPACITY if self.is_active else MEMORY_OPACITY

    @property
    def lifetime(self) -> float:
        return self.last_seen - self.first_seen


class ObjectTracker:
    """Match detections to tracked objects by same-label center proximity.

    Objects that stop matching go inactive after ``max_frames_lost`` frames;
    short-lived ones are then dropped, long-lived ones stay as memory until
    ``memory_timeout_seconds`` have passed since they were last seen.
    """

    def __init__(self, settings: TrackerSettings | None = None, clock: Callable[[], float] = time.monotonic):
        self.settings = settings or TrackerSettings()
        self._clock = clock
        self._objects: list[TrackedObject] = []
        self._next_track_id = 1
        self._color_index = 0
        self.total_tracked = 0
        self.short_term_dropped = 0
        self.long_term_kept = 0

    @property
    def objects(self) -> list[TrackedObject]:
        return list(self._objects)

    def reset(self) -> None:
        self._objects.clear()
        self._next_track_id = 1
        self._color_index = 0
        self.total_tracked = 0
        self.short_term_dropped = 0
        self.long_term_kept = 0
        logger.debug("Tracker reset")

    def update(self, observations: Iterable[Observation]) -> list[TrackedOutput]:
        """Fold one frame of observations in and return every tracked object."""
        now = self._clock()
        observations = list(observations)

        matched, unmatched = self._match(observations)
        for obj, obs in matched:
            obj.box = obs.box
            obj.confidence = obs.confidence
            obj.distance = obs.distance
            obj.last_seen = now
            obj.frames_not_seen = 0
            obj.is_active = True
            obj.history.append(now)

        created = self._create(unmatched, now)
        seen = {id(obj) for obj, _ in matched} | {id(obj) for obj in created}
        self._cleanup(now, seen)

        return [
            TrackedOutput(
                box=obj.box,
                label=obj.label,
                confidence=obj.confidence,
                distance=obj.distance,
                track=TrackInfo(track_id=obj.track_id, color=obj.color, opacity=obj.opacity),
            )
            for obj in self._objects
        ]

    def counts(self) -> tuple[int, int, int]:
        """Return ``(active, memory, total)`` object counts."""
        active = sum(1 for obj in self._objects if obj.is_active)
        return active, len(self._objects) - active, len(self._objects)

    def summary(self) -> str:
        active, memory, _ = self.counts()
        lines = [
            "Tracking statistics:",
            f"   - Active objects: {active}",
            f"   - Memory objects: {memory}",
            f"   - Total tracked: {self.total_tracked}",
            f"   - Memory timeout: {self.settings.memory_timeout_seconds:.1f}s",
            f"   - Minimum lifetime for memory: {self.settings.minimum_lifetime_seconds:.1f}s",
            f"   - Proximity threshold: {self.settings.proximity_threshold * 100:.0f}%",
        ]
        return "\n".join(lines)

    def _score(self, obs: Observation, obj: TrackedObject) -> float:
        ox, oy = obs.box.center
        tx, ty = obj.box.center
        distance = math.hypot(ox - tx, oy - ty)
        return max(0.0, 1.0 - distance / self.settings.proximity_threshold)

    def _match(
        self, observations: list[Observation]
    ) -> tuple[list[tuple[TrackedObject, Observation]], list[Observation]]:
        threshold = self.settings.proximity_threshold
        used: set[int] = set()
        matched: list[tuple[TrackedObject, Observation]] = []
        unmatched: list[Observation] = []

        for obs in observations:
            best_idx: int | None = None
            best_score = 0.0
            for idx, obj in enumerate(self._objects):
                if idx in used or obj.label.lower() != obs.label.lower():
                    continue
                score = self._score(obs, obj)
                if score > threshold and (best_idx is None or score > best_score):
                    best_idx, best_score = idx, score
            if best_idx is None:
                unmatched.append(obs)
            else:
                used.add(best_idx)
                matched.append((self._objects[best_idx], obs))
        return matched, unmatched

    def _create(self, observations: list[Observation], now: float) -> list[TrackedObject]:
        room = max(0, self.settings.max_tracked_objects - len(self._objects))
        created: list[TrackedObject] = []
        for obs in observations[:room]:
            obj = TrackedObject(
                track_id=self._next_track_id,
                color=PALETTE[self._color_index % len(PALETTE)],
                label=obs.label,
                box=obs.box,
                confidence=obs.confidence,
                distance=obs.distance,
                first_seen=now,
                last_seen=now,
            )
            obj.history.append(now)
            self._objects.append(obj)
            created.append(obj)
            self._next_track_id += 1
            self._color_index += 1
            self.total_tracked += 1
            logger.debug("New track #%d: %s", obj.track_id, obj.label)

        if len(observations) > room:
            logger.debug("Track limit %d reached; %d detections ignored", self.settings.max_tracked_objects, len(observations) - room)
        return created

    def _cleanup(self, now: float, seen: set[int]) -> None:
        keep: list[TrackedObject] = []
        for obj in self._objects:
            if id(obj) in seen:
                keep.append(obj)
                continue

            obj.frames_not_seen += 1
            if obj.is_active and obj.frames_not_seen >= self.settings.max_frames_lost:
                obj.is_active = False
                if obj.lifetime < self.settings.minimum_lifetime_seconds:
                    self.short_term_dropped += 1
                    logger.debug("Track #%d dropped after %.1fs", obj.track_id, obj.lifetime)
                    continue
                self.long_term_kept += 1

            if not obj.is_active and now - obj.last_seen > self.settings.memory_timeout_seconds:
                logger.debug("Track #%d expired from memory", obj.track_id)
                continue
            keep.append(obj)
        self._objects = keep
