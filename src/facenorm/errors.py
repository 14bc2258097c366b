"""Error taxonomy for the face normalization pipeline.

Every failure carries a human-readable message and a stable ``code``
usable for programmatic branching. Scope of each error:

- SourceError / UnsupportedSourceError: fatal to one image.
- DetectionError: fatal to one image.
- GeometryError: fatal to one observation (sibling faces proceed).
- RasterError: fatal to one observation (sibling faces proceed).
"""

from typing import Any, Dict, Optional


class FaceNormError(Exception):
    """Base class for all pipeline errors.

    Attributes:
        message: Human-readable description.
        code: Stable discriminant, one per subclass.
    """

    code = "facenorm"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class SourceError(FaceNormError):
    """Bad URI or asset fetch/decode failure."""

    code = "source"


class UnsupportedSourceError(SourceError):
    """URI scheme that no loader handles.

    Attributes:
        scheme: The offending scheme (empty string when the URI had none).
    """

    code = "unsupported_source"

    def __init__(self, scheme: Optional[str], supported=()):
        self.scheme = scheme or ""
        hint = ""
        if supported:
            hint = " Supported: " + ", ".join(f"'{s}://'" for s in supported) + "."
        super().__init__(f"Unsupported image URI scheme: {self.scheme or 'nil'}.{hint}")


class DetectionError(FaceNormError):
    """The face detector collaborator failed."""

    code = "detection"


class GeometryError(FaceNormError):
    """Degenerate face geometry (e.g. coincident pupils)."""

    code = "geometry"


class RasterError(FaceNormError):
    """Crop, resample, encode or write failure."""

    code = "raster"


__all__ = [
    "FaceNormError",
    "SourceError",
    "UnsupportedSourceError",
    "DetectionError",
    "GeometryError",
    "RasterError",
]
