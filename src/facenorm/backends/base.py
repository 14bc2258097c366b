"""Backend protocol definitions for the detector collaborators."""

from typing import List, Optional, Protocol, runtime_checkable

import numpy as np

from facenorm.types import Observation, Orientation


class FaceDetector(Protocol):
    """Protocol for face + landmark detectors.

    Implementations should be swappable without changing pipeline logic.
    Observations use normalized, bottom-left-origin coordinates; landmark
    points are normalized relative to the observation's bounding box.
    Returning no observations is not an error.
    """

    def detect(self, image: np.ndarray, orientation: Orientation) -> List[Observation]:
        """Detect faces in the native-layout BGR ``image``."""
        ...


@runtime_checkable
class QualityEstimator(Protocol):
    """Optional second pass that scores capture quality per observation."""

    def estimate_quality(
        self,
        image: np.ndarray,
        orientation: Orientation,
        observations: List[Observation],
    ) -> List[Optional[float]]:
        """One score in [0, 1] (or None) per observation, same order."""
        ...


class UpperBodyDetector(Protocol):
    """Reports whether an image contains a human upper body."""

    def contains_upper_body(self, image: np.ndarray, orientation: Orientation) -> bool:
        ...


__all__ = ["FaceDetector", "QualityEstimator", "UpperBodyDetector"]
