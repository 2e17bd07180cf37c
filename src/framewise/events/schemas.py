"""Update schemas pushed from the pipeline to observers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from framewise.types import Detection, ProcessingStats


def utc_now() -> datetime:
    """UTC now helper for consistent timestamps."""
    return datetime.now(timezone.utc)


class UpdateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_type: Literal["DETECTIONS", "STATS", "COMPLETED"]
    seq: int = Field(ge=1)
    emitted_at: datetime = Field(default_factory=utc_now)


class DetectionsUpdate(UpdateBase):
    event_type: Literal["DETECTIONS"] = "DETECTIONS"
    timestamp: float | None = None
    detections: list[Detection] = Field(default_factory=list)


class StatsUpdate(UpdateBase):
    event_type: Literal["STATS"] = "STATS"
    stats: ProcessingStats


class RunCompleted(UpdateBase):
    event_type: Literal["COMPLETED"] = "COMPLETED"
    success: bool
    stats: ProcessingStats


AnyUpdate = Annotated[DetectionsUpdate | StatsUpdate | RunCompleted, Field(discriminator="event_type")]
