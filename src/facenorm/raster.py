"""Raster side of the pipeline: straighten, crop, resample, encode.

The whole photo is de-rotated about its own centre before cropping so
that the axis-aligned crop square computed by the aligner is valid.
"""

import logging
import math
import uuid
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from facenorm.config import AlignConfig
from facenorm.errors import RasterError
from facenorm.paths import get_output_dir
from facenorm.types import AlignedCrop, ImageFrame, Orientation, Rect

logger = logging.getLogger(__name__)


def orient_to_up(image: np.ndarray, orientation: Union[Orientation, int, str]) -> np.ndarray:
    """Re-orient native pixels so that the image reads upright.

    Mirrors what EXIF-aware decoders do for each of the 8 tags.
    """
    o = Orientation.parse(orientation)
    if o == Orientation.UP:
        return image
    if o == Orientation.UP_MIRRORED:
        out = image[:, ::-1]
    elif o == Orientation.DOWN:
        out = image[::-1, ::-1]
    elif o == Orientation.DOWN_MIRRORED:
        out = image[::-1, :]
    elif o == Orientation.LEFT_MIRRORED:
        out = np.swapaxes(image, 0, 1)
    elif o == Orientation.RIGHT:
        out = np.rot90(image, k=-1)
    elif o == Orientation.RIGHT_MIRRORED:
        out = np.swapaxes(image[::-1, ::-1], 0, 1)
    else:  # LEFT
        out = np.rot90(image, k=1)
    return np.ascontiguousarray(out)


def straighten(image: np.ndarray, roll: float) -> np.ndarray:
    """Rotate the whole image by ``-roll`` about its centre, same size.

    A pixel at ``p`` lands at ``rotate_point(p, centre, -roll)``.
    """
    if roll == 0:
        return image
    h, w = image.shape[:2]
    # pixel-centre convention: continuous centre (w/2, h/2) is index (w/2 - 0.5, h/2 - 0.5)
    center = (w / 2.0 - 0.5, h / 2.0 - 0.5)
    M = cv2.getRotationMatrix2D(center, math.degrees(roll), 1.0)
    return cv2.warpAffine(
        image,
        M,
        (w, h),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def extract_patch(image: np.ndarray, pixel_rect: Rect) -> np.ndarray:
    """Slice ``pixel_rect`` out of ``image`` after clamping to its bounds.

    Raises:
        RasterError: The rect is not finite or the clamped rect has zero area.
    """
    h, w = image.shape[:2]
    if not all(math.isfinite(v) for v in pixel_rect.as_tuple()):
        raise RasterError(f"Crop after rotation failed: non-finite rect {pixel_rect.as_tuple()}")
    x1 = max(0, min(int(round(pixel_rect.min_x)), w))
    y1 = max(0, min(int(round(pixel_rect.min_y)), h))
    x2 = max(0, min(int(round(pixel_rect.max_x)), w))
    y2 = max(0, min(int(round(pixel_rect.max_y)), h))

    if x2 <= x1 or y2 <= y1:
        raise RasterError(
            f"Crop after rotation failed: empty rect ({pixel_rect.x}, {pixel_rect.y}, "
            f"{pixel_rect.width}, {pixel_rect.height}) in {w}x{h} image"
        )
    return image[y1:y2, x1:x2]


def resample(patch: np.ndarray, side: int) -> np.ndarray:
    """High-quality resize to exactly ``side`` x ``side``."""
    h, w = patch.shape[:2]
    if (w, h) == (side, side):
        return patch
    interp = cv2.INTER_AREA if w > side or h > side else cv2.INTER_CUBIC
    return cv2.resize(patch, (side, side), interpolation=interp)


def encode(patch: np.ndarray, crop_format: str = "jpg", jpeg_quality: int = 100) -> bytes:
    """Encode a patch as JPEG or PNG bytes.

    Raises:
        RasterError: The encoder rejected the image.
    """
    ext = "." + crop_format
    params = []
    if crop_format == "jpg":
        params = [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)]
    try:
        ok, buf = cv2.imencode(ext, patch, params)
    except cv2.error as e:
        raise RasterError(f"{crop_format.upper()} conversion failed: {e}") from e
    if not ok:
        raise RasterError(f"{crop_format.upper()} conversion failed")
    return buf.tobytes()


def write_crop(
    patch: np.ndarray,
    output_dir: Optional[Path],
    face_index: int,
    config: AlignConfig,
) -> str:
    """Encode ``patch`` and write it as ``face_<uuid>_<index>.<ext>``.

    Returns:
        ``file://`` URI of the written crop.

    Raises:
        RasterError: Encoding or writing failed.
    """
    data = encode(patch, config.crop_format, config.jpeg_quality)
    out_dir = Path(output_dir) if output_dir is not None else get_output_dir()
    path = out_dir / f"face_{uuid.uuid4()}_{face_index}.{config.crop_format}"
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise RasterError(f"Failed to write crop {path}: {e}") from e
    return path.resolve().as_uri()


def render_crop(
    frame: ImageFrame,
    crop: AlignedCrop,
    face_index: int,
    config: Optional[AlignConfig] = None,
    output_dir: Optional[Path] = None,
    upright: Optional[np.ndarray] = None,
) -> str:
    """Straighten, crop, resample and persist one face.

    Args:
        frame: Source frame.
        crop: Geometry from the aligner.
        face_index: Index of the observation (used in the file name).
        config: Output settings.
        output_dir: Destination directory (default: :func:`get_output_dir`).
        upright: Pre-computed ``frame.upright()`` to share between faces.

    Returns:
        ``file://`` URI of the crop.

    Raises:
        RasterError: A raster step failed.
    """
    config = config or AlignConfig()
    if upright is None:
        upright = frame.upright()

    try:
        straightened = straighten(upright, crop.roll)
    except cv2.error as e:
        raise RasterError(f"Rotation failed: {e}") from e
    patch = extract_patch(straightened, crop.pixel_rect)
    try:
        resized = resample(patch, config.output_side)
    except cv2.error as e:
        raise RasterError(f"Resample failed: {e}") from e

    uri = write_crop(resized, output_dir, face_index, config)
    logger.debug(
        "Face %d crop %dx%d -> %dx%d written to %s",
        face_index, patch.shape[1], patch.shape[0],
        config.output_side, config.output_side, uri,
    )
    return uri


__all__ = [
    "orient_to_up",
    "straighten",
    "extract_patch",
    "resample",
    "encode",
    "write_crop",
    "render_crop",
]
