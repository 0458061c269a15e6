"""Entry scanning package for sortnbackup.

This package provides the facts the rule engine evaluates:

- MetadataCache: Per-entry memo of stat results and decoded image metadata.
- SourceWalker: Sorted, exclusion-aware directory listing for a source.
- read_image_metadata / ImageMetadata: Pillow-based image decoding.

Example:
    >>> from sortnbackup.scanning import MetadataCache, SourceWalker
    >>> walker = SourceWalker(source)
    >>> cache = MetadataCache()
    >>> for entry in walker.list_children(walker.root_entry()):
    ...     print(entry.relative_path, cache.stat(entry).st_size)
"""

from .image_metadata import ImageMetadata, read_image_metadata
from .metadata_cache import MetadataCache
from .source_walker import SourceWalker

__all__ = ["ImageMetadata", "MetadataCache", "SourceWalker", "read_image_metadata"]
