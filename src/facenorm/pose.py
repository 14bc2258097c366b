"""Roll estimation for a single observation.

Pupil-derived roll is measured on the feature that has to be levelled
(the eyes); the detector's own whole-face roll is only a fallback for
faces whose pupils were not localized.
"""

import math
from typing import Optional, Tuple

from facenorm.geometry import project_landmark_point
from facenorm.types import LandmarkRegion, Observation, Point


def pupil_points(observation: Observation) -> Optional[Tuple[Point, Point]]:
    """First (left, right) pupil points, or None unless both are present."""
    left = observation.region(LandmarkRegion.LEFT_PUPIL)
    right = observation.region(LandmarkRegion.RIGHT_PUPIL)
    if left is None or right is None:
        return None
    return left[0], right[0]


def has_pupils(observation: Observation) -> bool:
    return pupil_points(observation) is not None


def estimate_roll(observation: Observation, width: int, height: int) -> float:
    """Roll angle (radians) of one face.

    Args:
        observation: Detector observation.
        width: Upright image width in pixels.
        height: Upright image height in pixels.

    Returns:
        ``atan2(dy, dx)`` between the projected pupils when both exist,
        else the detector roll, else 0.
    """
    pupils = pupil_points(observation)
    if pupils is None:
        if observation.roll is None:
            return 0.0
        return float(observation.roll)

    left = project_landmark_point(pupils[0], observation.bounding_box, width, height)
    right = project_landmark_point(pupils[1], observation.bounding_box, width, height)

    dx = right.x - left.x
    # detector space is bottom-left; invert to get a top-left visual angle
    dy = left.y - right.y
    if dx == 0 and dy == 0:
        return 0.0
    return math.atan2(dy, dx)


__all__ = ["pupil_points", "has_pupils", "estimate_roll"]
