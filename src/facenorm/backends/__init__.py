"""Detector collaborators.

MediaPipe is an optional dependency and is imported lazily on first use.
"""

from facenorm.backends.base import FaceDetector, QualityEstimator, UpperBodyDetector
from facenorm.backends.mediapipe_face import MediaPipeFaceDetector
from facenorm.backends.opencv_body import HaarUpperBodyDetector
from facenorm.backends.quality import SharpnessQuality

__all__ = [
    "FaceDetector",
    "QualityEstimator",
    "UpperBodyDetector",
    "MediaPipeFaceDetector",
    "HaarUpperBodyDetector",
    "SharpnessQuality",
]
