"""Asset loaders: URI -> ImageFrame.

Example:
    >>> from facenorm.sources import create_default_loader
    >>> loader = create_default_loader(library_root="~/Pictures/library")
    >>> frame = loader.load("file:///tmp/portrait.jpg")
"""

from pathlib import Path
from typing import Optional, Union

from facenorm.sources.base import AssetLoader, split_uri
from facenorm.sources.file import FileLoader
from facenorm.sources.library import PhotoLibraryLoader
from facenorm.sources.router import CachedLoader, SchemeRouter


def create_default_loader(
    library_root: Optional[Union[str, Path]] = None,
    max_dimension: int = 1024,
    cache_entries: int = 0,
) -> AssetLoader:
    """Router for ``file://`` (and bare paths) plus ``ph://`` when a
    library root is given; optionally wrapped in a decode cache."""
    router = SchemeRouter({"file": FileLoader(max_dimension=max_dimension)})
    if library_root is not None:
        router.register(
            "ph",
            PhotoLibraryLoader(Path(library_root).expanduser(), max_dimension=max_dimension),
        )
    if cache_entries > 0:
        return CachedLoader(router, max_entries=cache_entries)
    return router


__all__ = [
    "AssetLoader",
    "split_uri",
    "FileLoader",
    "PhotoLibraryLoader",
    "SchemeRouter",
    "CachedLoader",
    "create_default_loader",
]
