"""Rules applied to entries matched by a file group."""

from dataclasses import dataclass
from typing import Union

from .path_elements import PathTemplate


@dataclass(frozen=True)
class Ignore:
    """Skip the entry; a directory is not descended."""


@dataclass(frozen=True)
class Traverse:
    """Descend into a directory; a no-op for files."""


@dataclass(frozen=True)
class CopyTo:
    """Copy a file to a templated location under a target."""
    target: str
    path: PathTemplate


@dataclass(frozen=True)
class CopyExact:
    """Copy a file or a whole directory tree, keeping its relative path."""
    target: str


@dataclass(frozen=True)
class LogFile:
    """Append the entry's path as one line to a templated file under a target."""
    target: str
    log_file: PathTemplate
    full_path: bool = False


Rule = Union[Ignore, Traverse, CopyTo, CopyExact, LogFile]
