"""
Models package for sortnbackup.

This package provides convenient imports for all data models:
- Source, Target, SourceFilter, FileGroup, Settings, BackupConfig: configuration
- Entry: A file or directory below a source root
- EntryOutcome, RunSummary: Run results
- Action, CollisionPolicy, FileSizeStyle: Enums
- Filter and path element trees live in .filters and .path_elements,
  rules in .rules
"""

from .enums import Action, CollisionPolicy, FileSizeStyle
from .entry import Entry
from .data_models import (
    BackupConfig,
    EntryOutcome,
    FileGroup,
    RunSummary,
    Settings,
    Source,
    SourceFilter,
    Target,
)

__all__ = [
    "Action",
    "CollisionPolicy",
    "FileSizeStyle",
    "Entry",
    "BackupConfig",
    "EntryOutcome",
    "FileGroup",
    "RunSummary",
    "Settings",
    "Source",
    "SourceFilter",
    "Target",
]
