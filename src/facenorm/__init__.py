"""facenorm - face detection with canonical 112x112 alignment.

Wraps a face detector and turns its raw observations into roll-corrected
square crops plus landmarks expressed in crop pixels.

Example:
    >>> from facenorm import process_images
    >>> for result in process_images(["portrait.jpg"], output_dir="/tmp/faces"):
    ...     for face in result.faces:
    ...         print(face.cropped_uri, face.landmarks["leftPupil"])
"""

from facenorm.config import AlignConfig
from facenorm.errors import (
    DetectionError,
    FaceNormError,
    GeometryError,
    RasterError,
    SourceError,
    UnsupportedSourceError,
)
from facenorm.pipeline import (
    FacePipeline,
    create_default_pipeline,
    process_image,
    process_images,
)
from facenorm.types import (
    AlignedCrop,
    FaceResult,
    ImageFrame,
    ImageResult,
    LandmarkRegion,
    Observation,
    Orientation,
    Point,
    Rect,
)

__version__ = "0.1.0"

__all__ = [
    "AlignConfig",
    "FacePipeline",
    "create_default_pipeline",
    "process_image",
    "process_images",
    "FaceNormError",
    "SourceError",
    "UnsupportedSourceError",
    "DetectionError",
    "GeometryError",
    "RasterError",
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
