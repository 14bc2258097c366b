"""Synthetic observations, frames and detectors for facenorm tests.

No ML models needed: observations are built from top-left pixel
positions the way a detector would report them (normalized, bottom-left
origin, landmarks relative to the bounding box).
"""

from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from facenorm.types import ImageFrame, LandmarkRegion, Observation, Orientation, Point, Rect


def normalized_box(box_px: Tuple[float, float, float, float], width: int, height: int) -> Rect:
    """Top-left pixel box -> normalized bottom-left box (UP orientation)."""
    x, y, w, h = box_px
    return Rect(x / width, 1.0 - (y + h) / height, w / width, h / height)


def relative_point(p: Tuple[float, float], bbox: Rect, width: int, height: int) -> Point:
    """Top-left pixel point -> point normalized relative to ``bbox``."""
    nx = p[0] / width
    ny = 1.0 - p[1] / height
    return Point((nx - bbox.x) / bbox.width, (ny - bbox.y) / bbox.height)


def make_observation(
    width: int,
    height: int,
    box_px: Tuple[float, float, float, float],
    left_pupil: Optional[Tuple[float, float]] = None,
    right_pupil: Optional[Tuple[float, float]] = None,
    regions: Optional[Dict[str, Sequence[Tuple[float, float]]]] = None,
    **kwargs,
) -> Observation:
    """Observation for an UP image from top-left pixel coordinates."""
    bbox = normalized_box(box_px, width, height)
    landmarks: Dict[str, Tuple[Point, ...]] = {}
    if left_pupil is not None:
        landmarks[LandmarkRegion.LEFT_PUPIL] = (relative_point(left_pupil, bbox, width, height),)
    if right_pupil is not None:
        landmarks[LandmarkRegion.RIGHT_PUPIL] = (relative_point(right_pupil, bbox, width, height),)
    for name, pts in (regions or {}).items():
        landmarks[name] = tuple(relative_point(p, bbox, width, height) for p in pts)
    return Observation(bounding_box=bbox, landmarks=landmarks, **kwargs)


def create_face_image(width: int = 400, height: int = 400, eyes=((150, 180), (250, 180))) -> np.ndarray:
    """Grey BGR canvas with a bright face disc and dark eye dots."""
    image = np.full((height, width, 3), 90, dtype=np.uint8)
    (lx, ly), (rx, ry) = eyes
    cx = int((lx + rx) / 2)
    cy = int((ly + ry) / 2) + 30
    cv2.ellipse(image, (cx, cy), (110, 140), 0, 0, 360, (180, 200, 220), -1)
    cv2.circle(image, (int(lx), int(ly)), 8, (20, 20, 20), -1)
    cv2.circle(image, (int(rx), int(ry)), 8, (20, 20, 20), -1)
    return image


def create_frame(
    width: int = 400,
    height: int = 400,
    orientation: Orientation = Orientation.UP,
    scale: float = 1.0,
    uri: str = "memory://frame",
) -> ImageFrame:
    return ImageFrame(
        image=create_face_image(width, height),
        orientation=orientation,
        scale=scale,
        uri=uri,
    )


class StaticDetector:
    """Returns prepared observations; records calls."""

    def __init__(self, observations: Optional[List[Observation]] = None, error: Optional[Exception] = None):
        self.observations = list(observations or [])
        self.error = error
        self.calls: List[Orientation] = []

    def detect(self, image: np.ndarray, orientation: Orientation) -> List[Observation]:
        self.calls.append(orientation)
        if self.error is not None:
            raise self.error
        return list(self.observations)


class QualityDetector(StaticDetector):
    """StaticDetector that also offers the capture-quality pass."""

    def __init__(self, observations=None, scores=None, quality_error: Optional[Exception] = None):
        super().__init__(observations)
        self.scores = scores
        self.quality_error = quality_error
        self.quality_calls = 0

    def estimate_quality(self, image, orientation, observations):
        self.quality_calls += 1
        if self.quality_error is not None:
            raise self.quality_error
        return list(self.scores)


class StaticLoader:
    """Loader mapping URIs to prepared frames (or errors)."""

    def __init__(self, frames: Dict[str, object]):
        self.frames = frames

    def load(self, uri: str) -> ImageFrame:
        item = self.frames[uri]
        if isinstance(item, Exception):
            raise item
        return item


class UriDetector:
    """Detector keyed on the frame identity, for batch tests."""

    def __init__(self, by_image_id: Dict[int, object]):
        self.by_image_id = by_image_id

    def detect(self, image: np.ndarray, orientation: Orientation) -> List[Observation]:
        item = self.by_image_id[id(image)]
        if isinstance(item, Exception):
            raise item
        return list(item)
