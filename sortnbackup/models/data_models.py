"""
Core data models for sortnbackup.

This module contains the following dataclasses:
- Source: A tree files are read from
- Target: A tree files are copied to
- SourceFilter: Which sources a file group applies to
- FileGroup: An ordered (filter, rule) pair
- Settings: Run-wide settings from the configuration file
- BackupConfig: The whole validated configuration
- EntryOutcome: What happened to one entry
- RunSummary: Aggregated results of a run
"""

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, FrozenSet, List, Optional, Tuple

from .enums import Action, CollisionPolicy, FileSizeStyle
from .filters import FilterExpr
from .rules import Rule


@dataclass(frozen=True)
class Source:
    """A tree files are read from."""
    id: str                                       # Name used in the configuration
    path: Path                                    # Root path
    ignore_paths: Tuple[PurePosixPath, ...] = ()  # Names or relative paths skipped entirely
    enabled: bool = True                          # Disabled sources are never walked

    def is_excluded(self, relative_path: PurePosixPath) -> bool:
        """True if the entry matches an ignore path by relative path or by name."""
        for ignored in self.ignore_paths:
            if relative_path == ignored:
                return True
            if len(ignored.parts) == 1 and relative_path.name == ignored.name:
                return True
        return False


@dataclass(frozen=True)
class Target:
    """A tree files are copied to."""
    id: str
    path: Path


@dataclass(frozen=True)
class SourceFilter:
    """Restricts a file group to some sources.

    ``only`` and ``excluded`` are mutually exclusive; both empty means all
    sources.
    """
    only: Optional[FrozenSet[str]] = None
    excluded: FrozenSet[str] = frozenset()

    def includes(self, source_id: str) -> bool:
        if self.only is not None:
            return source_id in self.only
        return source_id not in self.excluded


@dataclass(frozen=True)
class FileGroup:
    """An ordered (filter, rule) pair; the first matching group wins."""
    id: str                                       # Descriptive only
    position: int                                 # 0-based declaration order
    filter: FilterExpr
    rule: Rule
    sources: SourceFilter = SourceFilter()


@dataclass(frozen=True)
class Settings:
    """Run-wide settings."""
    file_size_style: FileSizeStyle = FileSizeStyle.BINARY
    collision_policy: CollisionPolicy = CollisionPolicy.ASK
    non_interactive_collision: CollisionPolicy = CollisionPolicy.RENAME
    journal_path: Optional[Path] = None


@dataclass(frozen=True)
class BackupConfig:
    """The validated configuration of one run."""
    sources: Dict[str, Source]                    # In declaration order
    targets: Dict[str, Target]
    file_groups: Tuple[FileGroup, ...]            # In declaration order
    settings: Settings = Settings()
    config_path: Optional[Path] = None            # File the configuration was read from

    def enabled_sources(self) -> List[Source]:
        return [source for source in self.sources.values() if source.enabled]

    def target(self, target_id: str) -> Target:
        return self.targets[target_id]

    def fingerprint(self) -> Dict[str, Dict[str, str]]:
        """Run scope recorded in the journal: source and target roots by id."""
        return {
            "sources": {s.id: str(s.path) for s in self.sources.values()},
            "targets": {t.id: str(t.path) for t in self.targets.values()},
        }


@dataclass
class EntryOutcome:
    """What the dispatcher did with one entry."""
    action: Action
    group_id: Optional[str] = None                # Matching file group, None if unmatched
    destination: Optional[Path] = None            # Copy or log destination
    bytes_copied: int = 0
    files_copied: int = 0                         # More than one for copy_exact directories
    files_up_to_date: int = 0
    files_skipped: int = 0                        # Collisions resolved by skipping
    lines_logged: int = 0
    complete: bool = True                         # Safe to record in the journal
    errors: List[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """Summary of a run returned by BackupOrchestrator."""
    sources_processed: int = 0        # Enabled sources walked
    entries_processed: int = 0        # Entries dispatched in this run
    entries_resumed: int = 0          # Entries skipped because the journal had them
    entries_excluded: int = 0         # Entries skipped by ignore_paths
    files_copied: int = 0             # Files written to a target
    files_up_to_date: int = 0         # Destination already held the same file
    files_skipped: int = 0            # Collisions resolved by skipping
    files_ignored: int = 0            # Entries matched by ignore or by no group
    directories_traversed: int = 0    # Directories descended into
    lines_logged: int = 0             # Lines appended by log_file rules
    bytes_copied: int = 0             # Total bytes written
    errors: List[str] = field(default_factory=list)  # Diagnostics, one per failure
    duration_seconds: float = 0.0     # Total run duration
    dry_run: bool = False             # Nothing was written
    interrupted: bool = False         # Stopped before all sources were walked
