"""sortnbackup - Rule-based file sorting and backup.

Classifies files from several source trees with an ordered list of file
groups (filter + rule) and copies them into target trees along templated
paths. Runs are journaled so an interrupted backup can be continued.
"""

__version__ = "1.0.0"

from .exceptions import (
    ConfigError,
    CopyError,
    JournalError,
    MetadataError,
    SortNBackupError,
    TemplateRenderError,
)
from .models import (
    BackupConfig,
    Entry,
    FileGroup,
    RunSummary,
    Source,
    Target,
)

__all__ = [
    "__version__",
    "BackupConfig",
    "ConfigError",
    "CopyError",
    "Entry",
    "FileGroup",
    "JournalError",
    "MetadataError",
    "RunSummary",
    "SortNBackupError",
    "Source",
    "Target",
    "TemplateRenderError",
]


def main() -> None:
    """Entry point for the sortnbackup CLI application.

    Imports and runs the Typer app from the sortnbackup.cli module.
    """
    from sortnbackup.cli import app
    app()
