"""Asset loader protocol and URI helpers."""

from typing import Protocol, Tuple
from urllib.parse import unquote, urlparse

from facenorm.types import ImageFrame


class AssetLoader(Protocol):
    """Resolves a URI into a decoded :class:`ImageFrame`.

    Implementations either normalize pixels to ``Orientation.UP`` or
    report the true orientation tag on the frame.

    Raises:
        SourceError: The asset cannot be fetched or decoded.
        UnsupportedSourceError: The URI scheme is not handled.
    """

    def load(self, uri: str) -> ImageFrame:
        ...


def split_uri(uri: str) -> Tuple[str, str]:
    """Split ``uri`` into ``(scheme, rest)``.

    Bare filesystem paths (including Windows drive paths) get the
    ``file`` scheme.
    """
    parsed = urlparse(uri)
    scheme = parsed.scheme.lower()
    if not scheme or len(scheme) == 1:
        return "file", uri
    if scheme == "file":
        return scheme, unquote(parsed.path)
    prefix = scheme + "://"
    if uri[:len(prefix)].lower() == prefix:
        return scheme, uri[len(prefix):]
    return scheme, uri.split(":", 1)[1]


__all__ = ["AssetLoader", "split_uri"]
