"""Coordinate transforms between detector space and image space.

Pure functions, no state, no I/O. Angles are radians; positive angles
rotate counter-clockwise in a bottom-left space, which reads clockwise on
screen in a top-left space. Callers de-rotate by the negative of the
measured roll everywhere in the chain.
"""

import math
from typing import Dict, NamedTuple, Union

from facenorm.types import Orientation, Point, Rect


class AxisPolicy(NamedTuple):
    """How a normalized bottom-left rect maps onto top-left pixels."""

    swap_axes: bool
    flip_x: bool
    flip_y: bool


_ORIENTATION_POLICY: Dict[Orientation, AxisPolicy] = {
    Orientation.UP: AxisPolicy(False, False, True),
    Orientation.UP_MIRRORED: AxisPolicy(False, False, True),
    Orientation.DOWN: AxisPolicy(False, True, False),
    Orientation.DOWN_MIRRORED: AxisPolicy(False, True, False),
    Orientation.LEFT: AxisPolicy(True, False, True),
    Orientation.LEFT_MIRRORED: AxisPolicy(True, False, True),
    Orientation.RIGHT: AxisPolicy(True, True, False),
    Orientation.RIGHT_MIRRORED: AxisPolicy(True, True, False),
}


def axis_policy(orientation: Union[Orientation, int, str, None]) -> AxisPolicy:
    """Transform descriptor for an orientation; unknown values use ``UP``."""
    return _ORIENTATION_POLICY[Orientation.parse(orientation)]


def oriented_rect_to_top_left(
    rect: Rect,
    orientation: Union[Orientation, int, str, None],
    width: float,
    height: float,
) -> Rect:
    """Convert a normalized detector rect into a top-left pixel rect.

    Args:
        rect: Normalized (0..1) rect with a bottom-left origin.
        orientation: Orientation tag the detector was run with.
        width: Target space width (pixels or points).
        height: Target space height.

    Returns:
        Rect in top-left-origin space scaled by ``width`` / ``height``.
        Axis swaps exchange the origin only; the extent is kept as reported.
    """
    policy = axis_policy(orientation)
    x, y = rect.x, rect.y
    if policy.swap_axes:
        x, y = y, x
    if policy.flip_x:
        x = 1.0 - x - rect.width
    if policy.flip_y:
        y = 1.0 - y - rect.height
    return Rect(x * width, y * height, rect.width * width, rect.height * height)


def rotate_point(point: Point, pivot: Point, angle: float) -> Point:
    """Rotate ``point`` about ``pivot`` by ``angle`` radians."""
    dx = point[0] - pivot[0]
    dy = point[1] - pivot[1]
    ca = math.cos(angle)
    sa = math.sin(angle)
    return Point(
        dx * ca - dy * sa + pivot[0],
        dx * sa + dy * ca + pivot[1],
    )


def project_landmark_point(
    point: Point,
    bounding_box: Rect,
    width: int,
    height: int,
) -> Point:
    """Map a box-relative landmark into absolute detector pixels.

    The result keeps the detector's bottom-left origin. Image sizes are
    truncated to integers, the same way the vision platform's own
    landmark-to-image helper takes them.
    """
    w = int(width)
    h = int(height)
    return Point(
        (bounding_box.x + point[0] * bounding_box.width) * w,
        (bounding_box.y + point[1] * bounding_box.height) * h,
    )


def flip_to_top_left(point: Point, height: float) -> Point:
    """Bottom-left origin -> top-left origin."""
    return Point(point[0], height - point[1])


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


__all__ = [
    "AxisPolicy",
    "axis_policy",
    "oriented_rect_to_top_left",
    "rotate_point",
    "project_landmark_point",
    "flip_to_top_left",
    "distance",
]
