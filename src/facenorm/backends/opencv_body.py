"""Upper-body presence check with OpenCV's bundled Haar cascade."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from facenorm.types import Orientation

logger = logging.getLogger(__name__)

UPPER_BODY_CASCADE = "haarcascade_upperbody.xml"


class HaarUpperBodyDetector:
    """Reports whether an image contains a human upper body.

    Args:
        cascade_path: Cascade XML (default: OpenCV's bundled upper-body model).
        scale_factor: Image pyramid step for ``detectMultiScale``.
        min_neighbors: Neighbour hits needed to keep a candidate.
        min_size_ratio: Smallest body, as a fraction of the shorter image side.
        max_dimension: Images are downscaled to this longest side first.
    """

    def __init__(
        self,
        cascade_path: Optional[Path] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
        min_size_ratio: float = 0.1,
        max_dimension: int = 640,
    ):
        self._cascade_path = cascade_path
        self._scale_factor = scale_factor
        self._min_neighbors = min_neighbors
        self._min_size_ratio = min_size_ratio
        self._max_dimension = max_dimension
        self._cascade: Optional[cv2.CascadeClassifier] = None

    def initialize(self) -> None:
        if self._cascade is not None:
            return
        path = self._cascade_path
        if path is None:
            path = Path(cv2.data.haarcascades) / UPPER_BODY_CASCADE
        cascade = cv2.CascadeClassifier(str(path))
        if cascade.empty():
            raise RuntimeError(f"Failed to load upper-body cascade: {path}")
        self._cascade = cascade
        logger.info("Upper-body cascade loaded from %s", path)

    def _prepare(self, image: np.ndarray, orientation: Orientation) -> np.ndarray:
        from facenorm.raster import orient_to_up

        upright = orient_to_up(image, orientation)
        gray = cv2.cvtColor(upright, cv2.COLOR_BGR2GRAY) if upright.ndim == 3 else upright
        h, w = gray.shape[:2]
        longest = max(h, w)
        if self._max_dimension and longest > self._max_dimension:
            f = self._max_dimension / longest
            gray = cv2.resize(gray, (max(1, int(w * f)), max(1, int(h * f))), interpolation=cv2.INTER_AREA)
        return cv2.equalizeHist(gray)

    def detect_bodies(self, image: np.ndarray, orientation: Orientation) -> Tuple:
        """Upper-body boxes ``(x, y, w, h)`` in the prepared (upright) image."""
        if self._cascade is None:
            self.initialize()
        gray = self._prepare(image, orientation)
        min_side = max(1, int(min(gray.shape[:2]) * self._min_size_ratio))
        bodies = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self._scale_factor,
            minNeighbors=self._min_neighbors,
            minSize=(min_side, min_side),
        )
        return tuple(tuple(int(v) for v in b) for b in bodies)

    def contains_upper_body(self, image: np.ndarray, orientation: Orientation) -> bool:
        bodies = self.detect_bodies(image, orientation)
        logger.debug("Upper-body candidates: %d", len(bodies))
        return len(bodies) > 0


__all__ = ["HaarUpperBodyDetector", "UPPER_BODY_CASCADE"]
