"""Terminal User Interface for sortnbackup.

This module provides the BackupTUI class, a Rich-based console front end for
backup runs. It also implements the Prompter protocol, so the run can ask the
operator about collisions and stale journals.

Example:
    from sortnbackup.ui import BackupTUI

    tui = BackupTUI()
    tui.display_config_overview(config)
    progress, callback = tui.create_progress_callback()
    with progress:
        ...  # traversal calls callback(entry, outcome)
    tui.display_run_summary(summary, config.settings.file_size_style)
"""

from pathlib import Path
from typing import Callable, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table

from sortnbackup.config import describe_config
from sortnbackup.models import (
    BackupConfig,
    CollisionPolicy,
    Entry,
    EntryOutcome,
    FileSizeStyle,
    RunSummary,
)

_COLLISION_KEYS = {
    "o": CollisionPolicy.OVERWRITE,
    "s": CollisionPolicy.SKIP,
    "r": CollisionPolicy.RENAME,
}

_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB")
_DECIMAL_UNITS = ("B", "kB", "MB", "GB", "TB")


class BackupTUI:
    """Rich-based Terminal User Interface for backup runs.

    Provides:
    - A configuration overview before the run
    - A live progress line during traversal
    - Collision and stale journal prompts
    - Summary display with statistics and errors

    Args:
        console: Optional Rich Console instance for output. If None, creates
            a new Console. Pass a custom Console for testing (e.g., with
            StringIO file for output capture).

    Attributes:
        console: The Rich Console instance used for all output.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def display_config_overview(self, config: BackupConfig) -> None:
        """Display sources, targets and the ordered file groups.

        Args:
            config: The validated configuration.
        """
        enabled = len(config.enabled_sources())
        header_text = (
            f"Sources: {enabled} enabled of {len(config.sources)}\n"
            f"Targets: {len(config.targets)}\n"
            f"File groups: {len(config.file_groups)}"
        )
        if config.config_path is not None:
            header_text = f"Config: {config.config_path}\n" + header_text
        self.console.print(Panel(header_text, title="Configuration", border_style="blue"))

        paths = Table(title="Sources and Targets")
        paths.add_column("Kind", style="magenta")
        paths.add_column("Id", style="cyan", no_wrap=True)
        paths.add_column("Path", style="white")
        paths.add_column("Excluded", style="dim")
        for source in config.sources.values():
            kind = "source" if source.enabled else "source (disabled)"
            excluded = ", ".join(p.as_posix() for p in source.ignore_paths)
            paths.add_row(kind, source.id, str(source.path), excluded)
        for target in config.targets.values():
            paths.add_row("target", target.id, str(target.path), "")
        self.console.print(paths)

        groups = Table(title="File Groups (first match wins)")
        groups.add_column("#", justify="right", style="cyan", no_wrap=True)
        groups.add_column("Group", style="white")
        groups.add_column("Sources", style="dim")
        groups.add_column("Rule", style="magenta")
        for position, (group_id, scope, rule) in enumerate(describe_config(config), start=1):
            groups.add_row(str(position), group_id, scope, rule)
        self.console.print(groups)

    def create_progress_callback(
        self,
    ) -> Tuple[Progress, Callable[[Entry, EntryOutcome], None]]:
        """Create a progress display and the callback that feeds it.

        The traversal does not know the number of entries up front, so the
        display shows a spinner, the current entry and running counters.

        Returns:
            A (Progress, callback) tuple. The Progress instance must be used
            as a context manager around the run; the callback takes the
            entry and its outcome.
        """
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        task_id = progress.add_task("Starting...", total=None)
        counts = {"entries": 0, "copied": 0, "errors": 0}

        def callback(entry: Entry, outcome: EntryOutcome) -> None:
            counts["entries"] += 1
            counts["copied"] += outcome.files_copied
            counts["errors"] += len(outcome.errors)
            progress.update(
                task_id,
                description=(
                    f"{counts['entries']:,} entries, {counts['copied']:,} copied, "
                    f"{counts['errors']} errors  {self._truncate_name(entry.describe())}"
                ),
            )

        return progress, callback

    def choose_collision(self, source: Path, destination: Path) -> Tuple[CollisionPolicy, bool]:
        """Ask how to handle a destination occupied by a different file.

        Returns:
            The chosen policy and whether it applies to all later collisions.
        """
        panel = Panel(
            f"[bold]Source:[/bold] {source}\n"
            f"[bold]Destination:[/bold] {destination}\n\n"
            "[yellow]The destination already holds a different file.[/yellow]",
            title="Collision",
            border_style="yellow",
        )
        self.console.print(panel)
        key = Prompt.ask(
            "(o)verwrite, (s)kip, (r)ename",
            choices=list(_COLLISION_KEYS),
            default="r",
            console=self.console,
        )
        apply_to_all = Confirm.ask(
            "Apply to all later collisions?", default=False, console=self.console
        )
        return _COLLISION_KEYS[key], apply_to_all

    def confirm_discard_journal(self, journal_path: Path) -> bool:
        """Ask whether an existing journal may be discarded for a fresh run."""
        self.console.print(
            Panel(
                f"A journal from a previous run exists:\n{journal_path}\n\n"
                "Starting fresh discards it. Use --continue to resume instead.",
                title="Previous Run",
                border_style="yellow",
            )
        )
        return Confirm.ask("Discard it and start fresh?", default=False, console=self.console)

    def display_run_summary(
        self,
        summary: RunSummary,
        size_style: FileSizeStyle = FileSizeStyle.BINARY,
    ) -> None:
        """Display final statistics after the run.

        Args:
            summary: RunSummary with aggregated statistics.
            size_style: Unit system for byte counts.
        """
        title = "Backup Summary"
        if summary.dry_run:
            title += " [yellow][DRY RUN][/yellow]"
        if summary.interrupted:
            title += " [red][INTERRUPTED][/red]"

        border = "yellow" if summary.dry_run or summary.interrupted else "green"
        self.console.print(Panel(title, border_style=border))

        table = Table(show_header=True, header_style="bold")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Sources processed", f"{summary.sources_processed:,}")
        table.add_row("Entries processed", f"{summary.entries_processed:,}")
        table.add_row("Skipped (already done)", f"{summary.entries_resumed:,}")
        table.add_row("Excluded", f"{summary.entries_excluded:,}")
        table.add_row("Files copied", f"{summary.files_copied:,}")
        table.add_row("Files up to date", f"{summary.files_up_to_date:,}")
        table.add_row("Files skipped (collisions)", f"{summary.files_skipped:,}")
        table.add_row("Ignored", f"{summary.files_ignored:,}")
        table.add_row("Directories traversed", f"{summary.directories_traversed:,}")
        table.add_row("Lines logged", f"{summary.lines_logged:,}")
        table.add_row("Data copied", self._format_size(summary.bytes_copied, size_style))
        table.add_row("Duration", self._format_duration(summary.duration_seconds))

        self.console.print(table)

        if summary.errors:
            self._display_errors(summary.errors)
        if summary.interrupted:
            self.console.print("[yellow]Run stopped early. Resume it with --continue.[/yellow]")

    def _display_errors(self, errors: List[str]) -> None:
        """Display the first ten error messages in a separate panel."""
        max_display = 10
        displayed_errors = errors[:max_display]
        remaining = len(errors) - max_display

        error_text = "\n".join(f"- {e}" for e in displayed_errors)
        if remaining > 0:
            error_text += f"\n\n... and {remaining} more errors"

        error_panel = Panel(
            error_text,
            title=f"Errors ({len(errors)})",
            border_style="red",
        )
        self.console.print(error_panel)

    def _format_size(self, bytes_size: int, style: FileSizeStyle = FileSizeStyle.BINARY) -> str:
        """Convert bytes to a human-readable size.

        Args:
            bytes_size: Size in bytes.
            style: BINARY for powers of 1024 (KiB, MiB), DECIMAL for powers
                of 1000 (kB, MB).

        Returns:
            Size string such as "10.5 MiB" or "1.2 GB".
        """
        if style is FileSizeStyle.DECIMAL:
            base, units = 1000, _DECIMAL_UNITS
        else:
            base, units = 1024, _BINARY_UNITS

        if bytes_size < base:
            return f"{bytes_size} B"
        size = float(bytes_size)
        for unit in units[1:]:
            size /= base
            if size < base or unit == units[-1]:
                return f"{size:.1f} {unit}"
        return f"{bytes_size} B"

    def _format_duration(self, seconds: float) -> str:
        """Convert seconds to a duration like "5m 23s"."""
        if seconds < 0:
            seconds = 0
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"

    def _truncate_name(self, name: str, max_length: int = 60) -> str:
        """Truncate long names with an ellipsis."""
        if len(name) > max_length:
            return name[: max_length - 3] + "..."
        return name
