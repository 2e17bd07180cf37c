"""Ultralytics YOLO canvas model."""

from __future__ import annotations

import numpy as np
from ultralytics import YOLO

from framewise.types import BoundingBox
from framewise.vision.tracker import Observation


class YoloModel:
    """Run YOLO on a letterboxed square canvas and normalize boxes to it."""

    def __init__(self, model_path: str, conf: float = 0.25, imgsz: int = 640):
        self.conf = conf
        self.imgsz = imgsz
        self.model = YOLO(model_path)

    def predict(self, canvas: np.ndarray) -> list[Observation]:
        results = self.model(canvas, conf=self.conf, imgsz=self.imgsz, verbose=False)
        result = results[0]

        observations: list[Observation] = []
        if result.boxes is None or len(result.boxes) == 0:
            return observations

        canvas_h, canvas_w = canvas.shape[:2]
        xyxy = result.boxes.xyxy.cpu().numpy()
        confs = result.boxes.conf.cpu().numpy()
        class_ids = result.boxes.cls.cpu().numpy()

        for (x1, y1, x2, y2), conf, class_id in zip(xyxy, confs, class_ids):
            class_idx = int(class_id)
            class_name = self.model.names.get(class_idx, f"class_{class_idx}")
            observations.append(
                Observation(
                    box=BoundingBox(
                        x=float(x1) / canvas_w,
                        y=float(y1) / canvas_h,
                        width=float(x2 - x1) / canvas_w,
                        height=float(y2 - y1) / canvas_h,
                    ),
                    label=str(class_name),
                    confidence=float(conf),
                )
            )
        return observations
