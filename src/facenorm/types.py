"""Data model for the face normalization pipeline.

Coordinate conventions:
    - Detector space: normalized [0, 1], bottom-left origin, orientation
      dependent. Landmark points are normalized relative to the face
      bounding box.
    - Image space: pixels (or logical points), top-left origin, upright.
    - Output space: pixels of the fixed-size square crop (112 x 112).
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, NamedTuple, Optional, Tuple

import numpy as np

if TYPE_CHECKING:
    from facenorm.errors import FaceNormError


class Orientation(enum.IntEnum):
    """EXIF-style pixel orientation tag.

    Values equal the EXIF ``Orientation`` tag, so a tag read from a file
    can be passed to :meth:`parse` directly.
    """

    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8

    @property
    def swaps_axes(self) -> bool:
        """True when the raw buffer is stored transposed (left/right tags)."""
        return self in _SWAPPED

    @classmethod
    def parse(cls, value: Any) -> "Orientation":
        """Coerce an enum, EXIF int or name into an Orientation.

        Unrecognized values map to ``UP``; this never raises.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                return cls.UP
        if isinstance(value, str):
            key = "".join(ch for ch in value.lower() if ch.isalnum())
            return _BY_NAME.get(key, cls.UP)
        return cls.UP


_SWAPPED = frozenset({
    Orientation.LEFT,
    Orientation.LEFT_MIRRORED,
    Orientation.RIGHT,
    Orientation.RIGHT_MIRRORED,
})

_BY_NAME = {o.name.lower().replace("_", ""): o for o in Orientation}


class LandmarkRegion:
    """Names of the landmark regions a detector may report."""

    FACE_CONTOUR = "faceContour"
    LEFT_EYE = "leftEye"
    RIGHT_EYE = "rightEye"
    LEFT_EYEBROW = "leftEyebrow"
    RIGHT_EYEBROW = "rightEyebrow"
    NOSE = "nose"
    NOSE_CREST = "noseCrest"
    MEDIAN_LINE = "medianLine"
    OUTER_LIPS = "outerLips"
    INNER_LIPS = "innerLips"
    LEFT_PUPIL = "leftPupil"
    RIGHT_PUPIL = "rightPupil"

    ALL = (
        FACE_CONTOUR,
        LEFT_EYE,
        RIGHT_EYE,
        LEFT_EYEBROW,
        RIGHT_EYEBROW,
        NOSE,
        NOSE_CREST,
        MEDIAN_LINE,
        OUTER_LIPS,
        INNER_LIPS,
        LEFT_PUPIL,
        RIGHT_PUPIL,
    )


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle (x, y, width, height)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2

    @property
    def center(self) -> Point:
        return Point(self.mid_x, self.mid_y)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def scaled(self, sx: float, sy: Optional[float] = None) -> "Rect":
        if sy is None:
            sy = sx
        return Rect(self.x * sx, self.y * sy, self.width * sx, self.height * sy)

    def integral(self) -> "Rect":
        """Smallest rect on the integer grid that contains this one."""
        x1 = math.floor(self.min_x)
        y1 = math.floor(self.min_y)
        x2 = math.ceil(self.max_x)
        y2 = math.ceil(self.max_y)
        return Rect(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    def intersection(self, other: "Rect") -> "Rect":
        """Overlap of two rects; a zero-size rect when they are disjoint."""
        x1 = max(self.min_x, other.min_x)
        y1 = max(self.min_y, other.min_y)
        x2 = min(self.max_x, other.max_x)
        y2 = min(self.max_y, other.max_y)
        if x2 <= x1 or y2 <= y1:
            return Rect(0.0, 0.0, 0.0, 0.0)
        return Rect(x1, y1, x2 - x1, y2 - y1)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Observation:
    """One face reported by the detector collaborator.

    Attributes:
        bounding_box: Normalized bottom-left-origin face box.
        landmarks: Region name -> points normalized relative to the box.
            None when the detector produced no landmark set for this face.
        roll: Detector roll estimate in radians (fallback only).
        yaw: Detector yaw estimate in radians.
        confidence: Detection confidence [0, 1].
        capture_quality: Capture quality [0, 1], absent on older engines.
    """

    bounding_box: Rect
    landmarks: Optional[Dict[str, Tuple[Point, ...]]] = None
    roll: Optional[float] = None
    yaw: Optional[float] = None
    confidence: float = 1.0
    capture_quality: Optional[float] = None

    def region(self, name: str) -> Optional[Tuple[Point, ...]]:
        """Points of a landmark region, or None when absent or empty."""
        if not self.landmarks:
            return None
        points = self.landmarks.get(name)
        if not points:
            return None
        return tuple(points)

    @property
    def region_names(self) -> List[str]:
        if not self.landmarks:
            return []
        return [name for name, pts in self.landmarks.items() if pts]


@dataclass(frozen=True, eq=False)
class ImageFrame:
    """Decoded raster plus metadata, immutable after load.

    Attributes:
        image: BGR array (H, W, 3) in the native (stored) pixel layout.
        orientation: How the native pixels must be re-oriented to be upright.
        scale: Device pixels per logical point.
        uri: Source reference the frame was loaded from.
    """

    image: np.ndarray = field(repr=False)
    orientation: Orientation = Orientation.UP
    scale: float = 1.0
    uri: str = ""

    @property
    def native_size(self) -> Tuple[int, int]:
        h, w = self.image.shape[:2]
        return int(w), int(h)

    @property
    def width(self) -> int:
        """Upright width in pixels."""
        w, h = self.native_size
        return h if self.orientation.swaps_axes else w

    @property
    def height(self) -> int:
        """Upright height in pixels."""
        w, h = self.native_size
        return w if self.orientation.swaps_axes else h

    @property
    def logical_width(self) -> float:
        return self.width / self.scale

    @property
    def logical_height(self) -> float:
        return self.height / self.scale

    def upright(self) -> np.ndarray:
        """Pixels re-oriented so that the image reads ``UP``."""
        from facenorm.raster import orient_to_up

        return orient_to_up(self.image, self.orientation)


@dataclass(frozen=True)
class AlignedCrop:
    """Square crop geometry for one observation.

    Attributes:
        rect: Crop square in logical points of the straightened image,
            pixel-grid aligned and clamped to the image bounds.
        side: Exact side length before grid alignment and clamping.
        roll: Angle actually applied for de-rotation (radians).
        pixel_rect: ``rect`` in device pixels, clamped to the buffer.
        anchored: "pupils" or "bbox", the path that produced the crop.
    """

    rect: Rect
    side: float
    roll: float
    pixel_rect: Rect
    anchored: str = "pupils"


@dataclass(frozen=True)
class FaceResult:
    """Final per-face record returned to the caller."""

    bounding_box: Rect
    roll_angle: float
    confidence: float
    cropped_uri: str
    landmarks: Dict[str, Tuple[Point, ...]] = field(default_factory=dict)
    capture_quality: Optional[float] = None
    contains_upper_body: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Application-layer JSON shape."""
        landmarks = {
            name: [{"x": float(p.x), "y": float(p.y)} for p in pts]
            for name, pts in self.landmarks.items()
        }
        if LandmarkRegion.OUTER_LIPS in landmarks:
            landmarks["mouth"] = landmarks[LandmarkRegion.OUTER_LIPS]

        data: Dict[str, Any] = {
            "boundingBox": {
                "x": float(self.bounding_box.x),
                "y": float(self.bounding_box.y),
                "width": float(self.bounding_box.width),
                "height": float(self.bounding_box.height),
            },
            "rollAngle": float(self.roll_angle),
            "confidence": float(self.confidence),
            "croppedUri": self.cropped_uri,
            "originalAssetContainsHumanUpperBody": bool(self.contains_upper_body),
            "landmarks": landmarks,
        }
        if self.capture_quality is not None:
            data["faceCaptureQuality"] = float(self.capture_quality)
        return data


@dataclass(frozen=True)
class ImageResult:
    """One slot of a batch result, in input order."""

    uri: str
    faces: List[FaceResult] = field(default_factory=list)
    error: Optional["FaceNormError"] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "uri": self.uri,
            "faces": [f.to_dict() for f in self.faces],
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


__all__ = [
    "Orientation",
    "LandmarkRegion",
    "Point",
    "Rect",
    "Observation",
    "ImageFrame",
    "AlignedCrop",
    "FaceResult",
    "ImageResult",
]
