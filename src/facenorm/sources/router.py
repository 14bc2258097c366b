"""Scheme dispatch and decode caching for asset loaders."""

import logging
import threading
from collections import OrderedDict
from typing import Dict, Optional

from facenorm.errors import UnsupportedSourceError
from facenorm.sources.base import AssetLoader, split_uri
from facenorm.types import ImageFrame

logger = logging.getLogger(__name__)


class SchemeRouter:
    """Dispatch ``load(uri)`` to a loader by URI scheme.

    Bare paths are routed as ``file``.

    Example:
        >>> router = SchemeRouter({"file": FileLoader(), "ph": PhotoLibraryLoader(root)})
        >>> frame = router.load("ph://ABC-123")
    """

    def __init__(self, loaders: Optional[Dict[str, AssetLoader]] = None):
        self._loaders: Dict[str, AssetLoader] = dict(loaders or {})

    def register(self, scheme: str, loader: AssetLoader) -> None:
        self._loaders[scheme.lower()] = loader

    @property
    def schemes(self):
        return tuple(self._loaders)

    def load(self, uri: str) -> ImageFrame:
        scheme, _ = split_uri(uri)
        loader = self._loaders.get(scheme)
        if loader is None:
            raise UnsupportedSourceError(scheme, supported=self.schemes)
        return loader.load(uri)


class CachedLoader:
    """LRU decode cache in front of another loader.

    Each key has its own lock, so concurrent requests for the same URI
    decode once and never race on the cache write; different URIs load
    in parallel.

    Args:
        loader: Underlying loader.
        max_entries: Frames kept in memory.
    """

    def __init__(self, loader: AssetLoader, max_entries: int = 16):
        self._loader = loader
        self._max_entries = max_entries
        self._cache: "OrderedDict[str, ImageFrame]" = OrderedDict()
        self._cache_lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, uri: str) -> threading.Lock:
        with self._cache_lock:
            lock = self._key_locks.get(uri)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[uri] = lock
            return lock

    def _get(self, uri: str) -> Optional[ImageFrame]:
        with self._cache_lock:
            frame = self._cache.get(uri)
            if frame is not None:
                self._cache.move_to_end(uri)
            return frame

    def load(self, uri: str) -> ImageFrame:
        frame = self._get(uri)
        if frame is not None:
            return frame

        with self._lock_for(uri):
            frame = self._get(uri)
            if frame is not None:
                return frame
            try:
                frame = self._loader.load(uri)
            except Exception:
                # failures are not cached, so their keys are not kept either
                with self._cache_lock:
                    self._key_locks.pop(uri, None)
                raise
            with self._cache_lock:
                self._cache[uri] = frame
                while len(self._cache) > self._max_entries:
                    evicted, _ = self._cache.popitem(last=False)
                    self._key_locks.pop(evicted, None)
                    logger.debug("Evicted %s from decode cache", evicted)
            return frame

    def clear(self) -> None:
        with self._cache_lock:
            self._cache.clear()
            self._key_locks.clear()

    def __len__(self) -> int:
        with self._cache_lock:
            return len(self._cache)


__all__ = ["SchemeRouter", "CachedLoader"]
