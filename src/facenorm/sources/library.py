"""Photo-library loader for ``ph://<local identifier>`` references.

The library is a directory; a local identifier resolves to
``<root>/<identifier>`` or ``<root>/<identifier>.<ext>``. Library assets
are always delivered upright.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from facenorm.errors import SourceError, UnsupportedSourceError
from facenorm.sources.base import split_uri
from facenorm.sources.file import FileLoader
from facenorm.types import ImageFrame

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".heic", ".webp", ".bmp", ".tif", ".tiff")


class PhotoLibraryLoader:
    """Resolve photo-library identifiers against a directory.

    Args:
        root: Library directory.
        max_dimension: Longest side of the delivered image (default 1024).
    """

    scheme = "ph"

    def __init__(self, root: Union[str, Path], max_dimension: int = 1024):
        self._root = Path(root)
        self._decoder = FileLoader(max_dimension=max_dimension, normalize_orientation=True)

    @property
    def root(self) -> Path:
        return self._root

    def load(self, uri: str) -> ImageFrame:
        scheme, identifier = split_uri(uri)
        if scheme != self.scheme:
            raise UnsupportedSourceError(scheme, supported=(self.scheme,))
        if not identifier:
            raise SourceError(f"Empty photo-library identifier in {uri!r}")

        path = self.resolve(identifier)
        if path is None:
            raise SourceError(f"Failed to fetch asset with local identifier: {identifier}")
        return self._decoder.load_path(path, uri=uri)

    def resolve(self, identifier: str) -> Optional[Path]:
        """File backing ``identifier``, or None when the library lacks it."""
        root = self._root.resolve()
        candidate = (root / identifier).resolve()
        if root != candidate and root not in candidate.parents:
            logger.warning("Identifier escapes library root: %s", identifier)
            return None
        if candidate.is_file():
            return candidate

        parent = candidate.parent
        if not parent.is_dir():
            return None
        for ext in IMAGE_EXTENSIONS:
            for name in (candidate.name + ext, candidate.name + ext.upper()):
                path = parent / name
                if path.is_file():
                    return path
        return None


__all__ = ["PhotoLibraryLoader"]
