"""Directory listing for source trees.

This module provides the SourceWalker class, which lists the children of a
directory entry in a deterministic order and drops entries excluded by the
source's ``ignore_paths`` before anything else looks at them.
"""

import os
from pathlib import PurePosixPath
from typing import Iterator, List, Set, Tuple

from sortnbackup.exceptions import MetadataError
from sortnbackup.models import Entry, Source


class SourceWalker:
    """Lists entries below a source root, honoring its exclusion list.

    Attributes:
        source: The source being walked.
        excluded_count: Number of entries dropped by ignore_paths so far.

    Example:
        >>> walker = SourceWalker(source)
        >>> for child in walker.list_children(walker.root_entry()):
        ...     print(child.relative_path)
    """

    def __init__(self, source: Source) -> None:
        self.source = source
        self.excluded_count = 0

    def root_entry(self) -> Entry:
        return Entry(self.source.id, self.source.path, PurePosixPath("."))

    def list_children(self, directory: Entry) -> List[Entry]:
        """List the non-excluded children of a directory, sorted by name.

        Args:
            directory: Directory entry to list.

        Returns:
            Child entries. Excluded children are counted but not returned.

        Raises:
            MetadataError: If the directory cannot be listed.
        """
        try:
            names = sorted(os.listdir(directory.full_path))
        except OSError as e:
            raise MetadataError(f"cannot list directory: {e.strerror or e}", directory)

        children = []
        for name in names:
            child = directory.child(name)
            if self.source.is_excluded(child.relative_path):
                self.excluded_count += 1
                continue
            children.append(child)
        return children

    def walk_files(self, directory: Entry) -> Iterator[Entry]:
        """Yield every file below a directory, depth-first, skipping exclusions.

        Directory symlinks pointing back to an ancestor are not followed.

        Raises:
            MetadataError: If a directory cannot be listed or stat'ed.
        """
        stack: List[Tuple[Entry, Set[Tuple[int, int]]]] = [(directory, set())]
        while stack:
            current, ancestors = stack.pop()
            try:
                stat_result = os.stat(current.full_path)
            except OSError as e:
                raise MetadataError(f"cannot stat: {e.strerror or e}", current)
            dir_id = (stat_result.st_dev, stat_result.st_ino)
            if dir_id in ancestors:
                continue
            ancestors = ancestors | {dir_id}

            subdirectories = []
            for child in self.list_children(current):
                if child.full_path.is_dir():
                    subdirectories.append(child)
                else:
                    yield child
            # Reversed so the stack pops them in name order.
            for child in reversed(subdirectories):
                stack.append((child, ancestors))
