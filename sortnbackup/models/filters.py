"""Filter expression tree.

A filter is a tree of combinators (all / any / not / catch_all) whose leaves
are predicates. Nodes are frozen dataclasses so a parsed configuration can be
shared read-only for the whole run.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union


class PredicateKind(Enum):
    """Leaf predicates, valued by their configuration key."""
    IS_FILE = "is_file"
    IS_DIR = "is_dir"
    HAS_EXTENSION = "has_extension"
    FILE_NAME = "file_name"
    FILE_NAME_MATCHES_REGEX = "file_name_matches_regex"
    PATH_MATCHES_REGEX = "path_matches_regex"
    IN_FOLDER = "in_folder"
    DIRECTLY_IN_FOLDER = "directly_in_folder"
    HAS_IMG_METADATA = "has_img_metadata"
    HAS_IMG_DATE_TIME = "has_img_date_time"
    IMG_SIZE = "img_size"


# Predicates that take no argument and may be written as a bare string.
FLAG_PREDICATES = frozenset({
    PredicateKind.IS_FILE,
    PredicateKind.IS_DIR,
    PredicateKind.HAS_IMG_METADATA,
    PredicateKind.HAS_IMG_DATE_TIME,
})

# Predicates that need a decoded image.
IMAGE_PREDICATES = frozenset({
    PredicateKind.HAS_IMG_METADATA,
    PredicateKind.HAS_IMG_DATE_TIME,
    PredicateKind.IMG_SIZE,
})


@dataclass(frozen=True)
class SizeBounds:
    """Inclusive pixel bounds applied to both width and height."""
    min: Optional[int] = None
    max: Optional[int] = None

    def contains(self, width: int, height: int) -> bool:
        if self.min is not None and (width < self.min or height < self.min):
            return False
        if self.max is not None and (width > self.max or height > self.max):
            return False
        return True


@dataclass(frozen=True)
class Predicate:
    """Leaf of the filter tree.

    ``argument`` depends on the kind: None for flags, a frozenset of lowercase
    extensions, a lowercase file name, a compiled regex, a normalized folder
    path, or SizeBounds.
    """
    kind: PredicateKind
    argument: Any = None

    def describe(self) -> str:
        if self.argument is None:
            return self.kind.value
        argument = getattr(self.argument, "pattern", self.argument)
        if isinstance(argument, frozenset):
            argument = sorted(argument)
        return f"{self.kind.value}({argument})"


@dataclass(frozen=True)
class AllOf:
    children: Tuple["FilterExpr", ...]


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["FilterExpr", ...]


@dataclass(frozen=True)
class Not:
    child: "FilterExpr"


@dataclass(frozen=True)
class CatchAll:
    pass


FilterExpr = Union[AllOf, AnyOf, Not, CatchAll, Predicate]
