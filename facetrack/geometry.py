"""Bounding-box geometry used for nearest-face matching."""

from __future__ import annotations

import math

from facetrack.types import FaceBox, Point


def center_of(box: FaceBox) -> Point:
    """Return the center point of a face box."""
    return box.x + box.width / 2.0, box.y + box.height / 2.0


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def surface_area(box: FaceBox) -> float:
    return box.width * box.height


def is_well_formed(box: FaceBox) -> bool:
    """True when the box has finite coordinates and non-negative extent."""
    values = (box.x, box.y, box.width, box.height)
    if not all(math.isfinite(v) for v in values):
        return False
    return box.width >= 0 and box.height >= 0
