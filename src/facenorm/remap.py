"""Landmark remapping into the fixed-size output crop.

Each point goes through the same chain that produced the crop:

    normalized -> detector pixels (bottom-left)
               -> top-left pixels
               -> crop-local pixels (minus pixel_rect origin)
               -> de-rotated by -roll about the straightening pivot
               -> scaled to output_side x output_side

The straightening pivot is the image centre, expressed in crop-local
pixels. Points are not clamped; contour points near the crop edge may
fall outside [0, output_side].
"""

from typing import Dict, Optional, Tuple

from facenorm.config import OUTPUT_SIDE
from facenorm.geometry import flip_to_top_left, project_landmark_point, rotate_point
from facenorm.types import AlignedCrop, ImageFrame, Observation, Point


def remap_point(
    point: Point,
    observation: Observation,
    frame: ImageFrame,
    crop: AlignedCrop,
    output_side: int = OUTPUT_SIDE,
) -> Point:
    """Map one normalized landmark into output-crop pixels."""
    pr = crop.pixel_rect
    scale_x = output_side / pr.width
    scale_y = output_side / pr.height
    pivot = Point(frame.width / 2 - pr.x, frame.height / 2 - pr.y)

    v = project_landmark_point(point, observation.bounding_box, frame.width, frame.height)
    pt = flip_to_top_left(v, frame.height)
    pt = Point(pt.x - pr.x, pt.y - pr.y)
    pt = rotate_point(pt, pivot, -crop.roll)
    return Point(pt.x * scale_x, pt.y * scale_y)


def remap_landmarks(
    observation: Observation,
    frame: ImageFrame,
    crop: AlignedCrop,
    output_side: int = OUTPUT_SIDE,
) -> Dict[str, Tuple[Point, ...]]:
    """Remap every present landmark region of ``observation``."""
    if crop.pixel_rect.is_empty:
        return {}
    remapped: Dict[str, Tuple[Point, ...]] = {}
    for name in observation.region_names:
        points: Optional[Tuple[Point, ...]] = observation.region(name)
        if points is None:
            continue
        remapped[name] = tuple(
            remap_point(p, observation, frame, crop, output_side) for p in points
        )
    return remapped


__all__ = ["remap_point", "remap_landmarks"]
