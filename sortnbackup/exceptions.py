"""Exception hierarchy for sortnbackup.

Only ConfigError and JournalError are fatal to a whole run. The other errors
are raised per entry and reported by the dispatcher without stopping the
traversal.
"""

from typing import Optional


class SortNBackupError(Exception):
    """Base class for all sortnbackup errors."""


class ConfigError(SortNBackupError):
    """Invalid configuration, detected before traversal starts.

    Args:
        message: Description of the problem.
        location: Dotted location inside the configuration file
            (e.g. ``file_groups.videos.rule.copy_to.target``).
    """

    def __init__(self, message: str, location: Optional[str] = None) -> None:
        self.location = location
        if location:
            message = f"{location}: {message}"
        super().__init__(message)


class EntryError(SortNBackupError):
    """Base class for errors tied to a single traversal entry."""

    step = "process"

    def __init__(self, message: str, entry=None) -> None:
        self.entry = entry
        super().__init__(message)

    def describe(self) -> str:
        """Return a diagnostic line naming the entry and the failing step."""
        if self.entry is None:
            return f"{self.step}: {self}"
        return f"{self.entry.describe()}: {self.step}: {self}"


class MetadataError(EntryError):
    """Stat information could not be read or an image could not be decoded."""

    step = "metadata"


class TemplateRenderError(EntryError):
    """A path template could not be rendered for an entry."""

    step = "render path"


class CopyError(EntryError):
    """Copying an entry to its destination failed."""

    step = "copy"


class JournalError(SortNBackupError):
    """The resume journal cannot be read, written or trusted."""
