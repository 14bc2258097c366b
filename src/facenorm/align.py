"""Canonical face alignment: the square crop for one observation.

Two paths:
  1. Pupil-anchored (both pupils present): scale so the pupils end up
     ``pupil_distance`` apart in the output and pin the left pupil at the
     template anchor.
  2. Bounding-box-anchored (fallback): square around the de-rotated
     bounding-box centre.

All geometry is in logical points of the *straightened* image (the whole
image de-rotated by ``-roll`` about its centre).
"""

import logging
import math
from typing import Optional

from facenorm.config import AlignConfig
from facenorm.errors import GeometryError
from facenorm.geometry import (
    distance,
    flip_to_top_left,
    oriented_rect_to_top_left,
    project_landmark_point,
    rotate_point,
)
from facenorm.pose import pupil_points
from facenorm.types import AlignedCrop, ImageFrame, Observation, Point, Rect

logger = logging.getLogger(__name__)


def image_center(frame: ImageFrame) -> Point:
    """Centre of the upright image in logical points."""
    return Point(frame.logical_width / 2, frame.logical_height / 2)


def to_pixel_rect(rect: Rect, frame: ImageFrame) -> Rect:
    """Logical-point rect -> device-pixel rect clamped to the buffer."""
    scaled = rect.scaled(frame.scale)
    snapped = Rect(
        float(round(scaled.x)),
        float(round(scaled.y)),
        float(round(scaled.width)),
        float(round(scaled.height)),
    )
    return snapped.intersection(Rect(0.0, 0.0, float(frame.width), float(frame.height)))


def pupil_anchored_rect(
    observation: Observation,
    frame: ImageFrame,
    roll: float,
    config: AlignConfig,
) -> Optional[tuple]:
    """Crop square from the pupils, or None when pupils are missing.

    Returns:
        ``(rect, side)`` with ``rect`` not yet grid aligned.

    Raises:
        GeometryError: Pupils closer than ``config.min_pupil_distance``.
    """
    pupils = pupil_points(observation)
    if pupils is None:
        return None

    bb = observation.bounding_box
    center = image_center(frame)
    px_to_pt = 1.0 / frame.scale

    eyes = []
    for p in pupils:
        v = project_landmark_point(p, bb, frame.width, frame.height)
        top_left = flip_to_top_left(v, frame.height)
        eye = Point(top_left.x * px_to_pt, top_left.y * px_to_pt)
        eyes.append(rotate_point(eye, center, -roll))
    eye_l, eye_r = eyes

    d_act = distance(eye_l, eye_r)
    if not d_act >= config.min_pupil_distance:
        raise GeometryError(
            f"Pupil distance too small ({d_act:.4f}px < {config.min_pupil_distance}px)"
        )

    s = config.pupil_distance / d_act
    side = config.output_side / s

    ax, ay = config.left_eye_anchor
    x = eye_l.x - side * ax
    y = eye_l.y - side * ay

    # shift inside the image, never shrink
    x = max(0.0, min(x, frame.logical_width - side))
    y = max(0.0, min(y, frame.logical_height - side))

    return Rect(x, y, side, side), side


def bbox_anchored_rect(
    observation: Observation,
    frame: ImageFrame,
    roll: float,
    config: AlignConfig,
) -> tuple:
    """Square around the de-rotated bounding-box centre.

    Returns:
        ``(rect, side)`` with ``rect`` not yet grid aligned.
    """
    box = oriented_rect_to_top_left(
        observation.bounding_box,
        frame.orientation,
        frame.logical_width,
        frame.logical_height,
    )
    side = max(box.width, box.height) * (1 + config.padding)
    c = rotate_point(box.center, image_center(frame), -roll)
    return Rect(c.x - side / 2, c.y - side / 2, side, side), side


def compute_aligned_crop(
    observation: Observation,
    frame: ImageFrame,
    roll: float,
    config: Optional[AlignConfig] = None,
) -> AlignedCrop:
    """Compute the crop geometry for one observation.

    Args:
        observation: Detector observation.
        frame: Source frame (upright size and scale are used).
        roll: Angle to apply (measured roll x roll correction), radians.
        config: Alignment settings.

    Returns:
        AlignedCrop with a pixel-grid aligned rect clamped to the image.

    Raises:
        GeometryError: Degenerate pupil geometry on the pupil path, or a
            non-finite crop (NaN or infinite box, roll or landmarks).
    """
    config = config or AlignConfig()

    anchored = "pupils"
    result = pupil_anchored_rect(observation, frame, roll, config)
    if result is None:
        anchored = "bbox"
        result = bbox_anchored_rect(observation, frame, roll, config)
    rect, side = result
    if not all(math.isfinite(v) for v in (*rect.as_tuple(), side)):
        raise GeometryError(
            f"Non-finite crop geometry ({anchored}): rect={rect.as_tuple()} side={side}"
        )

    bounds = Rect(0.0, 0.0, frame.logical_width, frame.logical_height)
    rect = rect.integral().intersection(bounds)
    pixel_rect = to_pixel_rect(rect, frame)

    logger.debug(
        "Aligned crop (%s): rect=(%.2f, %.2f, %.2f, %.2f) side=%.3f roll=%.4f pixel=(%d, %d, %d, %d)",
        anchored, rect.x, rect.y, rect.width, rect.height, side, roll,
        pixel_rect.x, pixel_rect.y, pixel_rect.width, pixel_rect.height,
    )

    return AlignedCrop(
        rect=rect,
        side=side,
        roll=roll,
        pixel_rect=pixel_rect,
        anchored=anchored,
    )


__all__ = [
    "image_center",
    "to_pixel_rect",
    "pupil_anchored_rect",
    "bbox_anchored_rect",
    "compute_aligned_crop",
]
