"""Path template elements.

A path template is a tuple of elements; each top-level element renders one
destination segment, except the original-path elements (zero or more
segments) and Merge (its children concatenated into one segment).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class TimeSource(Enum):
    """Where a formatted timestamp comes from, valued by configuration key."""
    IMAGE_DATE_TIME = "img_date_time"
    ACCESS_TIME = "access_time"
    CREATED_TIME = "created_time"
    MODIFIED_TIME = "modified_time"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class FileNameWithExtension:
    pass


@dataclass(frozen=True)
class FileNameWithoutExtension:
    pass


@dataclass(frozen=True)
class FileExtension:
    pass


@dataclass(frozen=True)
class OriginalPath:
    pass


@dataclass(frozen=True)
class OriginalPathWithoutFileName:
    pass


@dataclass(frozen=True)
class DirectParentFolder:
    pass


@dataclass(frozen=True)
class FormattedTime:
    source: TimeSource
    format: str


@dataclass(frozen=True)
class Merge:
    children: Tuple["PathElement", ...]


PathElement = Union[
    Literal,
    FileNameWithExtension,
    FileNameWithoutExtension,
    FileExtension,
    OriginalPath,
    OriginalPathWithoutFileName,
    DirectParentFolder,
    FormattedTime,
    Merge,
]

PathTemplate = Tuple[PathElement, ...]

# Elements that render to a relative path rather than a single name.
PATH_VALUED_ELEMENTS = (OriginalPath, OriginalPathWithoutFileName)

# Configuration keys of the argument-less elements.
SIMPLE_ELEMENTS = {
    "file_name_with_extension": FileNameWithExtension,
    "file_name_without_extension": FileNameWithoutExtension,
    "file_extension": FileExtension,
    "original_path": OriginalPath,
    "original_path_without_file_name": OriginalPathWithoutFileName,
    "direct_parent_folder": DirectParentFolder,
}
