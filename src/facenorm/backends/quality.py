"""Capture-quality scoring from the face region.

Scores combine sharpness (Laplacian variance) and exposure of the face
box, squashed into [0, 1]:

  - sharpness: 1 - exp(-var / blur_scale)
  - exposure: 1 at mid-grey, falling to 0 at black/white
"""

import logging
import math
from typing import List, Optional

import cv2
import numpy as np

from facenorm.geometry import oriented_rect_to_top_left
from facenorm.types import Observation, Orientation

logger = logging.getLogger(__name__)

# Laplacian variance at which sharpness reaches ~63%
_BLUR_SCALE = 150.0
# Face crops smaller than this (pixels per side) are scored 0
_MIN_FACE_SIDE = 8


class SharpnessQuality:
    """Best-effort capture quality from blur and exposure.

    Args:
        blur_scale: Laplacian variance normalizer.
        sharpness_weight: Weight of sharpness vs exposure.
    """

    def __init__(self, blur_scale: float = _BLUR_SCALE, sharpness_weight: float = 0.7):
        self._blur_scale = blur_scale
        self._sharpness_weight = sharpness_weight

    def score(self, face: np.ndarray) -> Optional[float]:
        """Quality of a BGR face crop, or None when the crop is too small."""
        if face.size == 0 or min(face.shape[:2]) < _MIN_FACE_SIDE:
            return None
        gray = cv2.cvtColor(face, cv2.COLOR_BGR2GRAY) if face.ndim == 3 else face
        blur = float(cv2.Laplacian(gray, cv2.CV_64F).var())
        sharpness = 1.0 - math.exp(-blur / self._blur_scale)

        mean = float(gray.mean()) / 255.0
        exposure = max(0.0, 1.0 - abs(mean - 0.5) * 2.0)

        w = self._sharpness_weight
        return float(np.clip(w * sharpness + (1.0 - w) * exposure, 0.0, 1.0))

    def estimate_quality(
        self,
        image: np.ndarray,
        orientation: Orientation,
        observations: List[Observation],
    ) -> List[Optional[float]]:
        """Score each observation's bounding box in the upright image.

        Boxes are read with the ``orientation`` policy, as the pipeline does.
        """
        from facenorm.raster import orient_to_up

        upright = orient_to_up(image, orientation)
        h, w = upright.shape[:2]
        scores: List[Optional[float]] = []
        for obs in observations:
            box = oriented_rect_to_top_left(obs.bounding_box, orientation, w, h)
            x1 = max(0, int(box.min_x))
            y1 = max(0, int(box.min_y))
            x2 = min(w, int(math.ceil(box.max_x)))
            y2 = min(h, int(math.ceil(box.max_y)))
            if x2 <= x1 or y2 <= y1:
                scores.append(None)
                continue
            scores.append(self.score(upright[y1:y2, x1:x2]))
        return scores


__all__ = ["SharpnessQuality"]
