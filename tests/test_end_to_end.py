from __future__ import annotations

import numpy as np
import pytest

from framewise.config import DetectorSettings, PipelineSettings
from framewise.ingest.decoder import OpenCVDecoder
from framewise.pipeline.controller import PipelineController
from framewise.types import BoundingBox
from framewise.vision.detector import TrackingDetector
from framewise.vision.tracker import Observation


class CenterModel:
    """Reports one car covering the middle of whatever canvas it sees."""

    def __init__(self) -> None:
        self.shapes: list[tuple[int, ...]] = []

    def predict(self, canvas: np.ndarray) -> list[Observation]:
        self.shapes.append(canvas.shape)
        return [Observation(box=BoundingBox(0.25, 0.25, 0.5, 0.5), label="car", confidence=0.9)]


def test_real_decoder_through_tracking_detector(sample_video) -> None:
    model = CenterModel()
    detector = TrackingDetector(model, DetectorSettings(input_size=640))
    decoder = OpenCVDecoder()
    settings = PipelineSettings(skip_frames=4, frame_delay_seconds=0.0, decode_workers=2)
    controller = PipelineController(decoder, detector, settings=settings)

    assert controller.start(str(sample_video))
    assert controller.wait(timeout=20)
    controller.close()
    decoder.close()

    assert controller.last_success is True
    assert controller.stats.processed_frames == 4
    assert controller.pipeline.store.timestamps() == pytest.approx([0.0, 0.5, 1.0, 1.5])
    assert set(model.shapes) == {(640, 640, 3)}

    # 64x48 letterboxed into 640x640 sits between rows 80 and 560
    (detection,) = controller.query_detections_near(1.0)
    assert detection.label == "car"
    assert detection.track.track_id == 1
    assert detection.box.x == pytest.approx(0.25)
    assert detection.box.width == pytest.approx(0.5)
    assert detection.box.y == pytest.approx(8 / 48)
    assert detection.box.height == pytest.approx(32 / 48)
