"""Per-entry memo of expensive facts.

This module provides the MetadataCache class, shared by every predicate and
every path element evaluated for an entry, so that a file is stat'ed once and
decoded as an image at most once per run.

Example:
    >>> cache = MetadataCache()
    >>> cache.stat(entry).st_size
    >>> cache.image_metadata(entry)  # decodes
    >>> cache.image_metadata(entry)  # cached
"""

import os
import threading
from typing import Callable, Dict, Optional, Tuple

from sortnbackup.exceptions import MetadataError
from sortnbackup.models import Entry

from .image_metadata import ImageMetadata, read_image_metadata

ImageReader = Callable[..., Optional[ImageMetadata]]

_UNSET = object()


class _Slot:
    """Cached facts for one entry, guarded by its own lock."""

    __slots__ = ("lock", "stat", "stat_error", "image", "image_error")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.stat = _UNSET
        self.stat_error: Optional[MetadataError] = None
        self.image = _UNSET
        self.image_error: Optional[MetadataError] = None


class MetadataCache:
    """Lazily computed, memoized stat and image facts keyed by entry.

    The slot table is guarded by a short-lived lock; the computation itself
    runs under the entry's own lock, so work on different entries never
    blocks and the same entry is never decoded twice. Failures are memoized
    too: a file that failed to decode raises the same MetadataError on every
    later lookup without another attempt.

    Attributes:
        _slots: Mapping of entry key to its cached facts.
        _stat_calls: Number of stat system calls made.
        _decode_attempts: Number of image decode attempts made.

    Example:
        >>> cache = MetadataCache()
        >>> meta = cache.image_metadata(entry)
        >>> cache.get_stats()["decode_attempts"]
        1
    """

    def __init__(self, image_reader: ImageReader = read_image_metadata) -> None:
        """Initialize an empty cache.

        Args:
            image_reader: Function decoding a path into ImageMetadata (or None
                for non-images). Replaceable for testing.
        """
        self._image_reader = image_reader
        self._slots: Dict[Tuple[str, str], _Slot] = {}
        self._lock = threading.Lock()
        self._stat_calls = 0
        self._decode_attempts = 0

    def _slot(self, entry: Entry) -> _Slot:
        with self._lock:
            slot = self._slots.get(entry.key)
            if slot is None:
                slot = self._slots[entry.key] = _Slot()
            return slot

    def stat(self, entry: Entry) -> os.stat_result:
        """Return the entry's stat result, following symlinks.

        Raises:
            MetadataError: If the entry cannot be stat'ed.
        """
        slot = self._slot(entry)
        with slot.lock:
            if slot.stat is _UNSET:
                with self._lock:
                    self._stat_calls += 1
                try:
                    slot.stat = os.stat(entry.full_path)
                except OSError as e:
                    slot.stat = None
                    slot.stat_error = MetadataError(f"cannot stat: {e.strerror or e}", entry)
            if slot.stat_error is not None:
                raise slot.stat_error
            return slot.stat

    def image_metadata(self, entry: Entry) -> Optional[ImageMetadata]:
        """Return decoded image metadata, or None if the entry is not an image.

        Raises:
            MetadataError: If the entry looks like an image but cannot be
                decoded (memoized).
        """
        slot = self._slot(entry)
        with slot.lock:
            if slot.image is _UNSET:
                with self._lock:
                    self._decode_attempts += 1
                try:
                    slot.image = self._image_reader(entry.full_path)
                except MetadataError as e:
                    slot.image = None
                    slot.image_error = MetadataError(str(e), entry)
            if slot.image_error is not None:
                raise slot.image_error
            return slot.image

    def discard(self, entry: Entry) -> None:
        """Forget an entry once it has been fully processed."""
        with self._lock:
            self._slots.pop(entry.key, None)

    def get_stats(self) -> Dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary containing:
            - 'size': Number of entries currently cached
            - 'stat_calls': Number of stat calls made
            - 'decode_attempts': Number of image decode attempts made
        """
        with self._lock:
            return {
                "size": len(self._slots),
                "stat_calls": self._stat_calls,
                "decode_attempts": self._decode_attempts,
            }
