"""Update contracts and the observer delivery channel."""

from framewise.events.emitter import JsonlSink, SequenceCounter, UpdateChannel
from framewise.events.schemas import (
    AnyUpdate,
    DetectionsUpdate,
    RunCompleted,
    StatsUpdate,
    UpdateBase,
)

__all__ = [
    "AnyUpdate",
    "DetectionsUpdate",
    "JsonlSink",
    "RunCompleted",
    "SequenceCounter",
    "StatsUpdate",
    "UpdateBase",
    "UpdateChannel",
]
