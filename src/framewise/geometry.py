"""Letterbox-aware mapping from detector canvas space to native video space.

The detector consumes a fixed-size canvas holding the native frame scaled by
``min(model_w / native_w, model_h / native_h)`` and centered, with the
leftover area padded. Boxes come back normalized to that canvas; ``remap``
undoes the padding and scale and renormalizes to the native frame.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable

from framewise.errors import DegenerateGeometryError
from framewise.types import EMPTY_BOX, BoundingBox, Detection, RawDetection

logger = logging.getLogger(__name__)

Size = tuple[float, float]


def letterbox_params(native_size: Size, model_size: Size) -> tuple[float, float, float]:
    """Return ``(scale, offset_x, offset_y)`` for placing native inside model."""
    native_w, native_h = native_size
    model_w, model_h = model_size
    if native_w <= 0 or native_h <= 0 or model_w <= 0 or model_h <= 0:
        raise DegenerateGeometryError(f"cannot letterbox {native_size} into {model_size}")

    scale = min(model_w / native_w, model_h / native_h)
    if not math.isfinite(scale) or scale <= 0:
        raise DegenerateGeometryError(f"invalid letterbox scale {scale}")

    offset_x = (model_w - native_w * scale) / 2
    offset_y = (model_h - native_h * scale) / 2
    return scale, offset_x, offset_y


def clamp_box(box: BoundingBox) -> BoundingBox:
    """Clamp origin into [0, 1], then clamp extent against the clamped origin."""
    x = max(0.0, min(1.0, box.x))
    y = max(0.0, min(1.0, box.y))
    width = max(0.0, min(1.0 - x, box.width))
    height = max(0.0, min(1.0 - y, box.height))
    return BoundingBox(x, y, width, height)


def remap(
    box: BoundingBox,
    native_size: Size,
    model_size: Size,
    strict: bool = __debug__,
) -> BoundingBox:
    """Map a canvas-normalized box to a native-normalized, clamped box.

    Degenerate geometry raises ``DegenerateGeometryError`` when ``strict``;
    otherwise the box collapses to an empty rect so no NaN/inf is stored.
    """
    try:
        scale, offset_x, offset_y = letterbox_params(native_size, model_size)
    except DegenerateGeometryError:
        if strict:
            raise
        logger.warning("Degenerate geometry native=%s model=%s; emitting empty box", native_size, model_size)
        return EMPTY_BOX

    native_w, native_h = native_size
    model_w, model_h = model_size

    model_x = box.x * model_w
    model_y = box.y * model_h
    model_width = box.width * model_w
    model_height = box.height * model_h

    native_x = (model_x - offset_x) / scale
    native_y = (model_y - offset_y) / scale
    native_width = model_width / scale
    native_height = model_height / scale

    values = (
        native_x / native_w,
        native_y / native_h,
        native_width / native_w,
        native_height / native_h,
    )
    if not all(math.isfinite(v) for v in values):
        if strict:
            raise DegenerateGeometryError(f"non-finite remap result for {box}")
        logger.warning("Non-finite remap result for %s; emitting empty box", box)
        return EMPTY_BOX

    return clamp_box(BoundingBox(*values))


def remap_detection(
    raw: RawDetection,
    native_size: Size,
    model_size: Size,
    strict: bool = __debug__,
) -> Detection:
    return Detection(
        box=remap(raw.box, native_size, model_size, strict=strict),
        label=raw.label,
        confidence=raw.confidence,
        track=raw.track,
        distance=raw.distance,
    )


def remap_detections(
    raws: Iterable[RawDetection],
    native_size: Size,
    model_size: Size,
    strict: bool = __debug__,
) -> tuple[Detection, ...]:
    """Remap every raw detection of one frame, preserving order."""
    return tuple(remap_detection(raw, native_size, model_size, strict=strict) for raw in raws)


def to_canvas(box: BoundingBox, native_size: Size, model_size: Size) -> BoundingBox:
    """Inverse of ``remap`` without clamping: native-normalized -> canvas-normalized."""
    scale, offset_x, offset_y = letterbox_params(native_size, model_size)
    native_w, native_h = native_size
    model_w, model_h = model_size
    return replace(
        box,
        x=(box.x * native_w * scale + offset_x) / model_w,
        y=(box.y * native_h * scale + offset_y) / model_h,
        width=box.width * native_w * scale / model_w,
        height=box.height * native_h * scale / model_h,
    )
