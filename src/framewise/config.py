"""Project configuration models and YAML loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class PipelineSettings(BaseModel):
    skip_frames: int = Field(default=10, ge=0)
    frame_delay_seconds: float = Field(default=0.1, ge=0.0)
    decode_workers: int = Field(default=2, ge=1)
    nearest_tolerance_seconds: float = Field(default=0.5, ge=0.0)
    detector_timeout_seconds: float | None = Field(default=None, gt=0.0)
    active_classes: list[str] = Field(default_factory=list)
    sync_playback: bool = True


class DetectorSettings(BaseModel):
    model_path: str = "yolov8n.pt"
    input_size: int = Field(default=640, gt=0)
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_detections: int = Field(default=25, ge=1)
    min_box_size: float = Field(default=0.01, ge=0.0, le=1.0)
    ignored_classes: list[str] = Field(
        default_factory=lambda: ["building", "vegetation", "terrain", "water"]
    )


class TrackerSettings(BaseModel):
    proximity_threshold: float = Field(default=0.15, gt=0.0)
    max_frames_lost: int = Field(default=10, ge=1)
    memory_timeout_seconds: float = Field(default=3.0, ge=0.0)
    minimum_lifetime_seconds: float = Field(default=2.0, ge=0.0)
    max_tracked_objects: int = Field(default=20, ge=1)


class OutputSettings(BaseModel):
    jsonl_path: str = "data/runs/detections.jsonl"


class AppSettings(BaseModel):
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    tracker: TrackerSettings = Field(default_factory=TrackerSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def parse_classes(raw: str | None) -> list[str]:
    """Split a comma separated class list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def load_settings(config_path: str | Path | None = None) -> AppSettings:
    """Load YAML configuration into typed app settings."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        return AppSettings()

    with path.open("r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    return AppSettings.model_validate(raw)
