"""BackupLogger for writing a structured record of a backup run.

This module provides the BackupLogger class that writes a plain-text run log
with sections for the header, the run configuration, every entry that
changed a target or failed, and the summary.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from sortnbackup.models import Action, BackupConfig, Entry, EntryOutcome, RunSummary
from sortnbackup.config import describe_config


class BackupLogger:
    """Logger for backup runs with structured output format.

    Usage:
        with BackupLogger(log_path, dry_run=True) as run_log:
            run_log.log_header(resumed=False)
            run_log.log_configuration(config)
            # ... for each processed entry ...
            run_log.log_entry(entry, outcome)
            run_log.log_summary(summary)

    Entries that were ignored, traversed or already up to date are not
    written; the summary counts them.

    Attributes:
        SEPARATOR: The 65-character separator line used between sections.
    """

    SEPARATOR = "=" * 65

    def __init__(
        self,
        log_file_path: Optional[Path] = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the BackupLogger.

        Args:
            log_file_path: Optional path for the log file. If not provided,
                generates a timestamped filename in the current directory.
            dry_run: Whether this is a dry run (no actual changes made).

        Raises:
            OSError: If the log file path is not writable.
        """
        self._dry_run = dry_run
        self._start_timestamp = datetime.now()
        self._file_handle: Optional[TextIO] = None
        self._entries_started = False

        if log_file_path is None:
            timestamp_str = self._start_timestamp.strftime("%Y-%m-%d_%H-%M-%S")
            self._log_file_path = Path.cwd() / f"backup_log_{timestamp_str}.log"
        else:
            self._log_file_path = Path(log_file_path)

        self._validate_path()

    def _validate_path(self) -> None:
        """Validate that the log file's parent directory exists and is a directory.

        Raises:
            OSError: If the parent directory doesn't exist or is not a directory.
        """
        parent = self._log_file_path.parent
        if not parent.exists():
            raise OSError(f"Parent directory does not exist: {parent}")
        if not parent.is_dir():
            raise OSError(f"Parent path is not a directory: {parent}")

    def __enter__(self) -> "BackupLogger":
        """Open the log file.

        Raises:
            OSError: If the file cannot be opened for writing.
        """
        try:
            self._file_handle = open(self._log_file_path, "w", encoding="utf-8")
        except OSError as e:
            raise OSError(f"Cannot open log file for writing: {e}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the log file, even if an exception occurred."""
        if self._file_handle is not None:
            try:
                self._file_handle.close()
            except OSError as e:
                print(f"Warning: Error closing log file: {e}", file=sys.stderr)
            finally:
                self._file_handle = None

    def get_log_path(self) -> Path:
        return self._log_file_path

    def log_header(self, resumed: bool = False) -> None:
        """Write the title, timestamp and mode."""
        self._write_separator()
        self._write_line("sortnbackup - Backup Log")
        self._write_separator()
        self._write_line(f"Timestamp: {self._format_timestamp(self._start_timestamp)}")
        mode = "DRY RUN" if self._dry_run else "LIVE BACKUP"
        self._write_line(f"Mode: {mode}")
        self._write_line(f"Run: {'continued' if resumed else 'fresh'}")
        self._write_line("")

    def log_configuration(self, config: BackupConfig) -> None:
        """Write sources, targets and file groups."""
        self._write_separator()
        self._write_line("CONFIGURATION")
        self._write_separator()
        if config.config_path is not None:
            self._write_line(f"Config file: {config.config_path}")
        self._write_line(f"Collision policy: {config.settings.collision_policy.value}")
        if config.settings.journal_path is not None:
            self._write_line(f"Journal: {config.settings.journal_path}")
        self._write_line("")

        self._write_line("Sources:")
        for source in config.sources.values():
            state = "" if source.enabled else " (disabled)"
            self._write_line(f"- {source.id}: {source.path}{state}", indent=2)
            for ignored in source.ignore_paths:
                self._write_line(f"ignore: {ignored.as_posix()}", indent=6)
        self._write_line("Targets:")
        for target in config.targets.values():
            self._write_line(f"- {target.id}: {target.path}", indent=2)
        self._write_line("File groups (first match wins):")
        for position, (group_id, scope, rule) in enumerate(describe_config(config), start=1):
            self._write_line(f"{position}. {group_id} [{scope}] {rule}", indent=2)
        self._write_line("")

    def log_entry(self, entry: Entry, outcome: EntryOutcome) -> None:
        """Write one line for an entry that changed a target or failed."""
        if outcome.action in (Action.IGNORED, Action.TRAVERSED, Action.UP_TO_DATE) and not outcome.errors:
            return

        if not self._entries_started:
            self._entries_started = True
            self._write_separator()
            self._write_line("ENTRIES")
            self._write_separator()

        now = self._format_timestamp(datetime.now())
        group = f" ({outcome.group_id})" if outcome.group_id else ""
        destination = f" -> {outcome.destination}" if outcome.destination else ""
        self._write_line(f"[{now}] {outcome.action.value}{group}: {entry.describe()}{destination}")
        if outcome.action is Action.COPIED_EXACT:
            self._write_line(
                f"Files copied: {outcome.files_copied}, up to date: {outcome.files_up_to_date}",
                indent=4,
            )
        for error in outcome.errors:
            self._write_line(f"! {error}", indent=4)

    def log_summary(self, summary: RunSummary) -> None:
        """Write the summary section."""
        if self._entries_started:
            self._write_line("")
        self._write_separator()
        self._write_line("SUMMARY")
        self._write_separator()
        self._write_line(f"Sources processed: {summary.sources_processed}")
        self._write_line(f"Entries processed: {summary.entries_processed:,}")
        self._write_line(f"Entries skipped (already done): {summary.entries_resumed:,}")
        self._write_line(f"Entries excluded: {summary.entries_excluded:,}")
        self._write_line(f"Files copied: {summary.files_copied:,}")
        self._write_line(f"Files up to date: {summary.files_up_to_date:,}")
        self._write_line(f"Files skipped (collisions): {summary.files_skipped:,}")
        self._write_line(f"Entries ignored: {summary.files_ignored:,}")
        self._write_line(f"Directories traversed: {summary.directories_traversed:,}")
        self._write_line(f"Lines logged: {summary.lines_logged:,}")
        self._write_line(f"Bytes copied: {summary.bytes_copied:,}")

        if summary.errors:
            self._write_line(f"Total errors: {len(summary.errors)}")
            self._write_line("Errors:")
            for error in summary.errors:
                self._write_line(f"  - {error}")

        if summary.interrupted:
            self._write_line("Run interrupted; resume with --continue")
        self._write_line(f"Duration: {self._format_duration(summary.duration_seconds)}")
        self._write_line("")
        self._write_line(f"Log file: {self._log_file_path}")
        self._write_separator()

    def _format_duration(self, seconds: float) -> str:
        """Format duration like "45s", "5m 23s" or "1h 5m 30s"."""
        total_seconds = int(seconds)

        if total_seconds < 60:
            return f"{total_seconds}s"

        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        secs = total_seconds % 60

        if hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        return f"{minutes}m {secs}s"

    def _format_timestamp(self, dt: datetime) -> str:
        return dt.strftime("%Y-%m-%d %H:%M:%S")

    def _write_separator(self) -> None:
        self._write_line(self.SEPARATOR)

    def _write_line(self, text: str, indent: int = 0) -> None:
        """Write a line to the log file with optional indentation."""
        if self._file_handle is None:
            print(
                f"Warning: Attempted to write to closed log file: {text}",
                file=sys.stderr,
            )
            return

        try:
            self._file_handle.write(" " * indent + text + "\n")
        except OSError as e:
            print(f"Warning: Error writing to log file: {e}", file=sys.stderr)
