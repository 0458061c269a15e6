"""Leaf predicate evaluation.

This module provides the PredicateEvaluator class, which tests one property of
an entry. Facts that cost a system call or a decode come from the shared
MetadataCache.
"""

import stat

from sortnbackup.exceptions import MetadataError
from sortnbackup.models import Entry
from sortnbackup.models.filters import Predicate, PredicateKind
from sortnbackup.scanning import MetadataCache


class PredicateEvaluator:
    """Evaluates filter leaves against entries.

    Every call is counted so tests and the run summary can observe how much
    evaluation a run actually performed.

    Attributes:
        cache: MetadataCache shared with the path template engine.
        evaluation_count: Number of predicates evaluated.

    Example:
        >>> evaluator = PredicateEvaluator(MetadataCache())
        >>> evaluator.test(Predicate(PredicateKind.IS_FILE), entry)
        True
    """

    def __init__(self, cache: MetadataCache) -> None:
        self.cache = cache
        self.evaluation_count = 0

    def test(self, predicate: Predicate, entry: Entry) -> bool:
        """Evaluate one predicate.

        Raises:
            MetadataError: If the stat or image facts needed cannot be read.
        """
        self.evaluation_count += 1
        kind = predicate.kind
        argument = predicate.argument

        if kind is PredicateKind.IS_FILE:
            return stat.S_ISREG(self.cache.stat(entry).st_mode)
        if kind is PredicateKind.IS_DIR:
            return stat.S_ISDIR(self.cache.stat(entry).st_mode)
        if kind is PredicateKind.HAS_EXTENSION:
            extension = entry.extension.lower()
            return bool(extension) and extension in argument
        if kind is PredicateKind.FILE_NAME:
            return entry.name.lower() == argument
        if kind is PredicateKind.FILE_NAME_MATCHES_REGEX:
            return argument.search(entry.name) is not None
        if kind is PredicateKind.PATH_MATCHES_REGEX:
            return argument.search(entry.relative_path.as_posix()) is not None
        if kind is PredicateKind.IN_FOLDER:
            # Proper ancestors only, compared as whole relative paths.
            return argument in entry.relative_path.parents
        if kind is PredicateKind.DIRECTLY_IN_FOLDER:
            return entry.parent == argument
        if kind is PredicateKind.HAS_IMG_METADATA:
            return self.cache.image_metadata(entry) is not None
        if kind is PredicateKind.HAS_IMG_DATE_TIME:
            metadata = self.cache.image_metadata(entry)
            return metadata is not None and metadata.date_time is not None
        if kind is PredicateKind.IMG_SIZE:
            metadata = self.cache.image_metadata(entry)
            return metadata is not None and argument.contains(metadata.width, metadata.height)

        raise MetadataError(f"unsupported predicate {kind.value}", entry)
