"""
Result cache in front of a ColorExtractor, keyed by image identity.

Entries are evicted least-recently-used once `max_entries` is reached.
Concurrent requests for the same key wait for a single computation.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Optional

from errors import ConfigurationError
from extract_colors import ColorExtractor, ExtractionOptions, ExtractionResult
from settings import get_settings

logger = logging.getLogger(__name__)


def image_identity(source) -> Optional[tuple]:
    """
    Stable cache key for an image source, or None when it has none.

    Paths resolve to their absolute form plus modification time so an
    overwritten file is not served stale; bytes hash to a SHA-256 digest.
    """
    if isinstance(source, (bytes, bytearray)):
        return ('sha256', hashlib.sha256(source).hexdigest())
    if isinstance(source, (str, Path)):
        path = Path(source).resolve()
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            mtime = None
        return ('path', str(path), mtime)
    return None


class CachedColorExtractor:
    """Wrap an extractor so each (image, options) pair is computed at most once."""

    def __init__(self, extractor: Optional[ColorExtractor] = None,
                 max_entries: Optional[int] = None):
        if max_entries is None:
            max_entries = get_settings().cache_size
        if max_entries <= 0:
            raise ConfigurationError(f"max_entries must be positive, got {max_entries}",
                                     operation="cache", parameter="max_entries")
        self.extractor = extractor or ColorExtractor()
        self.max_entries = max_entries
        self._entries = OrderedDict()
        self._lock = threading.Lock()
        self._key_locks = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _lookup(self, key) -> Optional[ExtractionResult]:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                return self._entries[key]
        return None

    def _store(self, key, result: ExtractionResult) -> None:
        with self._lock:
            self._entries[key] = result
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached result for %s", evicted[0])

    def extract_colors(self, image, options: Optional[ExtractionOptions] = None,
                       **overrides) -> ExtractionResult:
        """
        Return the cached result for this image and options, computing it if needed.

        Sources without a stable identity (open file objects, PIL images)
        bypass the cache. Failed extractions are not cached.
        """
        options = (options or self.extractor.options).merged(overrides)
        identity = image_identity(image)
        if identity is None:
            return self.extractor.extract_colors(image, options)

        key = (identity, options)
        cached = self._lookup(key)
        if cached is not None:
            return cached

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        try:
            with key_lock:
                # Another thread may have finished while we waited
                cached = self._lookup(key)
                if cached is not None:
                    return cached

                with self._lock:
                    self.misses += 1
                result = self.extractor.extract_colors(image, options)
                self._store(key, result)
                return result
        finally:
            with self._lock:
                if self._key_locks.get(key) is key_lock and not key_lock.locked():
                    del self._key_locks[key]
