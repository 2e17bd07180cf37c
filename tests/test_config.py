from __future__ import annotations

import pytest
from pydantic import ValidationError

from framewise.config import AppSettings, DEFAULT_CONFIG_PATH, PipelineSettings, load_settings, parse_classes


def test_missing_config_falls_back_to_defaults(tmp_path) -> None:
    settings = load_settings(tmp_path / "nope.yaml")
    assert settings == AppSettings()
    assert settings.pipeline.skip_frames == 10
    assert settings.pipeline.detector_timeout_seconds is None
    assert settings.detector.confidence_threshold == 0.7


def test_partial_yaml_overrides_only_named_fields(tmp_path) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text(
        "pipeline:\n"
        "  skip_frames: 3\n"
        "  active_classes: [person, car]\n"
        "tracker:\n"
        "  memory_timeout_seconds: 5.0\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.pipeline.skip_frames == 3
    assert settings.pipeline.active_classes == ["person", "car"]
    assert settings.pipeline.frame_delay_seconds == 0.1
    assert settings.tracker.memory_timeout_seconds == 5.0
    assert settings.tracker.max_frames_lost == 10


def test_empty_yaml_is_defaults(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_settings(path) == AppSettings()


def test_shipped_default_config_matches_models() -> None:
    path = DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None
    if path is None:
        pytest.skip("run from repository root to load configs/default.yaml")
    assert load_settings(path) == AppSettings()


@pytest.mark.parametrize(
    "fields",
    [
        {"skip_frames": -1},
        {"decode_workers": 0},
        {"frame_delay_seconds": -0.5},
        {"detector_timeout_seconds": 0},
    ],
)
def test_invalid_pipeline_settings_rejected(fields: dict) -> None:
    with pytest.raises(ValidationError):
        PipelineSettings(**fields)


def test_parse_classes() -> None:
    assert parse_classes(None) == []
    assert parse_classes("") == []
    assert parse_classes("person, car,,  dog ") == ["person", "car", "dog"]
