"""Filesystem image loader (``file://`` URIs and bare paths)."""

import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from facenorm.errors import SourceError, UnsupportedSourceError
from facenorm.sources.base import split_uri
from facenorm.types import ImageFrame, Orientation

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112


class FileLoader:
    """Decode an image file into an :class:`ImageFrame`.

    Args:
        max_dimension: Downscale so the longest side is at most this many
            pixels (0 disables).
        normalize_orientation: Bake the EXIF orientation into the pixels
            and report ``UP`` (default). When False the native pixels are
            kept and the EXIF tag is reported instead.

    Example:
        >>> frame = FileLoader().load("file:///tmp/portrait.jpg")
        >>> frame.orientation
        <Orientation.UP: 1>
    """

    def __init__(self, max_dimension: int = 1024, normalize_orientation: bool = True):
        self._max_dimension = max_dimension
        self._normalize = normalize_orientation

    def load(self, uri: str) -> ImageFrame:
        scheme, path = split_uri(uri)
        if scheme != "file":
            raise UnsupportedSourceError(scheme, supported=("file",))
        return self.load_path(path, uri=uri)

    def load_path(self, path: Union[str, Path], uri: str = "") -> ImageFrame:
        """Decode ``path``; ``uri`` is recorded on the frame."""
        path = Path(path)
        if not path.is_file():
            raise SourceError(f"Image file not found: {path}")

        try:
            with Image.open(path) as img:
                img.load()
                orientation = Orientation.parse(
                    img.getexif().get(EXIF_ORIENTATION_TAG, 1)
                )
                if self._normalize:
                    img = ImageOps.exif_transpose(img)
                    orientation = Orientation.UP
                img = self._downscale(img)
                rgb = np.asarray(img.convert("RGB"))
        except (UnidentifiedImageError, OSError) as e:
            raise SourceError(f"Image decode failed for {path}: {e}") from e

        image = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        logger.debug(
            "Loaded %s: %dx%d orientation=%s",
            path, image.shape[1], image.shape[0], orientation.name,
        )
        return ImageFrame(image=image, orientation=orientation, scale=1.0, uri=uri or str(path))

    def _downscale(self, img: Image.Image) -> Image.Image:
        if not self._max_dimension:
            return img
        if max(img.size) <= self._max_dimension:
            return img
        img = img.copy()
        img.thumbnail((self._max_dimension, self._max_dimension), Image.LANCZOS)
        return img


__all__ = ["FileLoader"]
