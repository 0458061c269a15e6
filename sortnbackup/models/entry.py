"""Traversal entry: one file or directory below a source root."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Tuple


@dataclass(frozen=True)
class Entry:
    """A file or directory encountered during traversal.

    Identity is (source id, relative path). The relative path always uses
    forward slashes so regexes, folder predicates and journal keys behave the
    same on every platform.
    """
    source_id: str                    # Id of the source the entry belongs to
    source_root: Path                 # Root path of that source
    relative_path: PurePosixPath      # Path below the source root

    @property
    def key(self) -> Tuple[str, str]:
        return self.source_id, self.relative_path.as_posix()

    @property
    def full_path(self) -> Path:
        return self.source_root.joinpath(*self.relative_path.parts)

    @property
    def name(self) -> str:
        return self.relative_path.name

    @property
    def stem(self) -> str:
        return self.relative_path.stem

    @property
    def extension(self) -> str:
        """Extension without the leading dot; empty for none or dotfiles."""
        return self.relative_path.suffix[1:]

    @property
    def parent(self) -> PurePosixPath:
        return self.relative_path.parent

    def child(self, name: str) -> "Entry":
        return Entry(self.source_id, self.source_root, self.relative_path / name)

    def describe(self) -> str:
        return f"[{self.source_id}] {self.relative_path.as_posix()}"
