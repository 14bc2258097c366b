"""MediaPipe FaceLandmarker backend.

Runs the 478-point face mesh (468 surface points + 10 iris points) and
converts it into detector-contract observations:

  - bounding box: extent of the face oval, normalized, bottom-left origin
  - landmark regions: fixed mesh-index tables; "left"/"right" are image
    sides, so the subject's right iris (index 468) is ``leftPupil``
  - points: normalized relative to the bounding box, bottom-left origin
  - roll / yaw: from the facial transformation matrix (radians); the
    matrix lives in a y-up frame, so roll is negated to match the
    top-left, clockwise-positive convention of pupil-derived roll
"""

import logging
import math
import threading
import urllib.request
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from facenorm.backends.quality import SharpnessQuality
from facenorm.types import LandmarkRegion, Observation, Orientation, Point, Rect

logger = logging.getLogger(__name__)

FACE_LANDMARKER_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task"
)

MESH_REGIONS: Dict[str, Tuple[int, ...]] = {
    LandmarkRegion.FACE_CONTOUR: (
        234, 93, 132, 58, 172, 136, 150, 149, 176, 148, 152,
        377, 400, 378, 379, 365, 397, 288, 361, 323, 454,
    ),
    LandmarkRegion.LEFT_EYE: (
        33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246,
    ),
    LandmarkRegion.RIGHT_EYE: (
        263, 249, 390, 373, 374, 380, 381, 382, 362, 398, 384, 385, 386, 387, 388, 466,
    ),
    LandmarkRegion.LEFT_EYEBROW: (70, 63, 105, 66, 107, 55, 65, 52, 53, 46),
    LandmarkRegion.RIGHT_EYEBROW: (300, 293, 334, 296, 336, 285, 295, 282, 283, 276),
    LandmarkRegion.NOSE: (64, 98, 97, 2, 326, 327, 294, 278, 4, 48),
    LandmarkRegion.NOSE_CREST: (168, 6, 197, 195, 5, 4),
    LandmarkRegion.MEDIAN_LINE: (10, 151, 9, 8, 168, 6, 197, 195, 5, 4, 1, 19, 94, 2, 164, 0, 17, 18, 200, 199, 175, 152),
    LandmarkRegion.OUTER_LIPS: (
        61, 185, 40, 39, 37, 0, 267, 269, 270, 409, 291,
        375, 321, 405, 314, 17, 84, 181, 91, 146,
    ),
    LandmarkRegion.INNER_LIPS: (
        78, 191, 80, 81, 82, 13, 312, 311, 310, 415, 308,
        324, 318, 402, 317, 14, 87, 178, 88, 95,
    ),
    LandmarkRegion.LEFT_PUPIL: (468,),
    LandmarkRegion.RIGHT_PUPIL: (473,),
}

FACE_OVAL = (
    10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365, 379, 378,
    400, 377, 152, 148, 176, 149, 150, 136, 172, 58, 132, 93, 234, 127, 162, 21,
    54, 103, 67, 109,
)


def _get_model_path(models_dir: Optional[Path] = None) -> Path:
    """Get path to the face landmarker model, downloading if necessary."""
    if models_dir is None:
        from facenorm.paths import get_models_dir
        models_dir = get_models_dir()
    models_dir.mkdir(parents=True, exist_ok=True)

    model_path = models_dir / "face_landmarker.task"
    if not model_path.exists():
        logger.info(f"Downloading face landmarker model to {model_path}...")
        try:
            urllib.request.urlretrieve(FACE_LANDMARKER_MODEL_URL, model_path)
            logger.info("Download complete.")
        except Exception as e:
            raise RuntimeError(
                f"Failed to download face landmarker model: {e}\n"
                f"You can manually download from: {FACE_LANDMARKER_MODEL_URL}\n"
                f"And save to: {model_path}"
            ) from e
    return model_path


def rotation_matrix_to_euler(R: np.ndarray) -> Tuple[float, float, float]:
    """Convert a 3x3 rotation matrix to (yaw, pitch, roll) in radians.

    Uses the convention: R = Rz(roll) @ Ry(yaw) @ Rx(pitch).
    """
    sy = math.sqrt(R[0, 0] ** 2 + R[1, 0] ** 2)
    if sy > 1e-6:
        pitch = math.atan2(R[2, 1], R[2, 2])
        yaw = math.atan2(-R[2, 0], sy)
        roll = math.atan2(R[1, 0], R[0, 0])
    else:
        pitch = math.atan2(-R[1, 2], R[1, 1])
        yaw = math.atan2(-R[2, 0], sy)
        roll = 0.0
    return yaw, pitch, roll


def mesh_to_observation(
    mesh: np.ndarray,
    transform: Optional[np.ndarray] = None,
    confidence: float = 1.0,
) -> Optional[Observation]:
    """Build an observation from normalized top-left mesh points.

    Args:
        mesh: (N, 2+) array of normalized image coordinates, top-left origin.
            Pupil regions are only filled when N > 473 (iris refinement).
        transform: Optional 4x4 facial transformation matrix.
        confidence: Detection confidence to report.

    Returns:
        Observation, or None when the face oval is degenerate.
    """
    mesh = np.asarray(mesh, dtype=np.float64)
    if mesh.ndim != 2 or mesh.shape[0] < 468:
        raise ValueError(f"Face mesh requires at least 468 points, got {mesh.shape}")

    oval = mesh[list(FACE_OVAL), :2]
    x0, y0 = np.clip(oval.min(axis=0), 0.0, 1.0)
    x1, y1 = np.clip(oval.max(axis=0), 0.0, 1.0)
    bw = float(x1 - x0)
    bh = float(y1 - y0)
    if bw <= 0 or bh <= 0:
        return None

    # bottom-left origin
    bbox = Rect(float(x0), float(1.0 - y1), bw, bh)

    landmarks: Dict[str, Tuple[Point, ...]] = {}
    n = mesh.shape[0]
    for name, indices in MESH_REGIONS.items():
        if max(indices) >= n:
            continue
        pts = mesh[list(indices), :2]
        landmarks[name] = tuple(
            Point(float((x - bbox.x) / bw), float(((1.0 - y) - bbox.y) / bh))
            for x, y in pts
        )

    roll = yaw = None
    if transform is not None:
        t = np.asarray(transform, dtype=np.float64)
        yaw, _pitch, roll = rotation_matrix_to_euler(t[:3, :3])
        roll = -roll

    return Observation(
        bounding_box=bbox,
        landmarks=landmarks,
        roll=roll,
        yaw=yaw,
        confidence=confidence,
    )


class MediaPipeFaceDetector:
    """Face detector backed by MediaPipe Tasks FaceLandmarker.

    Capture quality is not reported in-line; :meth:`estimate_quality`
    provides the second pass.

    Args:
        max_faces: Maximum number of faces to detect.
        min_detection_confidence: Minimum face detection score.
        models_dir: Where the ``.task`` model lives (default: models dir).

    Example:
        >>> detector = MediaPipeFaceDetector()
        >>> detector.initialize()
        >>> observations = detector.detect(image, Orientation.UP)
        >>> detector.cleanup()
    """

    def __init__(
        self,
        max_faces: int = 10,
        min_detection_confidence: float = 0.5,
        models_dir: Optional[Path] = None,
    ):
        self._max_faces = max_faces
        self._min_detection_confidence = min_detection_confidence
        self._models_dir = models_dir
        self._landmarker: Optional[object] = None
        self._initialized = False
        self._quality = SharpnessQuality()
        # one landmarker shared by batch worker threads
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Create the FaceLandmarker (downloads the model on first use)."""
        with self._lock:
            if self._initialized:
                return
            self._create_landmarker()

    def _create_landmarker(self) -> None:
        try:
            from mediapipe.tasks import python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ImportError(
                "MediaPipe is required for MediaPipeFaceDetector. "
                "Install it with: pip install mediapipe"
            ) from e

        model_path = _get_model_path(self._models_dir)
        base_options = python.BaseOptions(model_asset_path=str(model_path))
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_faces=self._max_faces,
            min_face_detection_confidence=self._min_detection_confidence,
            output_facial_transformation_matrixes=True,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(options)
        self._initialized = True
        logger.info("MediaPipe FaceLandmarker initialized (max_faces=%d)", self._max_faces)

    def detect(self, image: np.ndarray, orientation: Orientation) -> List[Observation]:
        """Detect faces in ``image``.

        Non-UP buffers are re-oriented before inference and the returned
        coordinates describe the upright image, so pair this detector with
        a loader that bakes orientation into the pixels.
        """
        if not self._initialized:
            self.initialize()

        import cv2
        import mediapipe as mp

        from facenorm.raster import orient_to_up

        upright = orient_to_up(image, orientation)
        image_rgb = np.ascontiguousarray(cv2.cvtColor(upright, cv2.COLOR_BGR2RGB))
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=image_rgb)
        with self._lock:
            result = self._landmarker.detect(mp_image)

        matrices: Sequence = getattr(result, "facial_transformation_matrixes", None) or []
        observations = []
        for idx, face in enumerate(result.face_landmarks or []):
            mesh = np.array([[lm.x, lm.y] for lm in face], dtype=np.float64)
            transform = matrices[idx] if idx < len(matrices) else None
            obs = mesh_to_observation(mesh, transform)
            if obs is None:
                logger.debug("Face %d: degenerate face oval, skipped", idx)
                continue
            observations.append(obs)
        return observations

    def estimate_quality(
        self,
        image: np.ndarray,
        orientation: Orientation,
        observations: List[Observation],
    ) -> List[Optional[float]]:
        from facenorm.raster import orient_to_up

        # observations were produced on the upright image
        upright = orient_to_up(image, orientation)
        return self._quality.estimate_quality(upright, Orientation.UP, observations)

    def cleanup(self) -> None:
        """Release MediaPipe resources."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        self._initialized = False


__all__ = [
    "MediaPipeFaceDetector",
    "MESH_REGIONS",
    "FACE_OVAL",
    "mesh_to_observation",
    "rotation_matrix_to_euler",
]
