"""
sortnbackup - CLI Interface.

A command-line interface for sorting files from several sources into backup
targets according to the file groups of a YAML configuration.

Usage Examples:
    # Run a backup with config.yaml from the current directory
    python -m sortnbackup run

    # Use another configuration, never prompt
    python -m sortnbackup run --config ~/backup.yaml --yes

    # Preview without writing anything
    python -m sortnbackup run --dry-run

    # Continue an interrupted run
    python -m sortnbackup run --continue

    # Validate a configuration and show what it does
    python -m sortnbackup check --config ~/backup.yaml
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from sortnbackup.config import DEFAULT_CONFIG_FILE, load_config
from sortnbackup.exceptions import ConfigError, JournalError
from sortnbackup.models import BackupConfig, CollisionPolicy
from sortnbackup.orchestration import BackupOrchestrator
from sortnbackup.ui import BackupTUI, NonInteractivePrompter

__version__ = "1.0.0"

# Initialize Typer app
app = typer.Typer(
    name="sortnbackup",
    help="Sort files from several sources into backup targets by rules.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for consistent output formatting
console = Console()

EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        console.print(f"sortnbackup v{__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    """Route library logging through Rich: DEBUG with --verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def load_or_exit(config_file: Path) -> BackupConfig:
    """
    Load the configuration, printing a readable error on failure.

    Raises:
        typer.Exit: With code 1 if the configuration is missing or invalid.
    """
    if not config_file.exists():
        console.print(f"[red]Error:[/red] Configuration file does not exist: {config_file}")
        raise typer.Exit(EXIT_ERROR)
    try:
        return load_config(config_file)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """sortnbackup - Sort files from several sources into backup targets by rules."""
    pass


@app.command()
def run(
    config_file: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE),
        "--config",
        "-f",
        help="Path of the YAML configuration file.",
    ),
    continue_run: bool = typer.Option(
        False,
        "--continue",
        "-c",
        help="Continue the previous run from its journal.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Never prompt; use the non-interactive defaults.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would be copied without writing anything.",
    ),
    journal: Optional[Path] = typer.Option(
        None,
        "--journal",
        "-j",
        help="Journal file (overrides settings.journal_path).",
    ),
    allow_no_journal: bool = typer.Option(
        False,
        "--allow-no-journal",
        help="Run without resume support if the journal cannot be written.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        "-l",
        help="Path for a structured run log.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output.",
    ),
) -> None:
    """
    Run a backup.

    Every entry of every enabled source is matched against the file groups
    in order; the first match decides whether it is ignored, traversed,
    copied or logged. Completed entries are journaled, so an interrupted
    run can be finished with --continue.
    """
    setup_logging(verbose)
    config = load_or_exit(config_file)

    tui = BackupTUI(console=console)
    prompter = None
    if yes:
        prompter = NonInteractivePrompter(config.settings.non_interactive_collision)

    if dry_run:
        console.print("[yellow][DRY RUN MODE][/yellow] No files will be written.\n")

    try:
        orchestrator = BackupOrchestrator(
            config,
            tui=tui,
            prompter=prompter,
            continue_run=continue_run,
            dry_run=dry_run,
            journal_path=journal,
            allow_no_journal=allow_no_journal,
            log_file_path=log_file,
            verbose=verbose,
        )
        summary = orchestrator.run()

    except JournalError as e:
        console.print(f"[red]Journal error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)

    except KeyboardInterrupt:
        console.print("\n[yellow]Backup aborted by user. Resume it with --continue.[/yellow]")
        raise typer.Exit(EXIT_INTERRUPTED)

    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR)

    if summary.errors:
        console.print(f"\n[yellow]Completed with {len(summary.errors)} error(s).[/yellow]")
    if log_file:
        console.print(f"[dim]Log written to: {log_file}[/dim]")

    if summary.interrupted:
        raise typer.Exit(EXIT_INTERRUPTED)
    if summary.errors:
        raise typer.Exit(EXIT_ERROR)


@app.command()
def check(
    config_file: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE),
        "--config",
        "-f",
        help="Path of the YAML configuration file.",
    ),
) -> None:
    """
    Validate a configuration and show its sources, targets and file groups.

    Nothing is read from the sources and nothing is written.
    """
    setup_logging(False)
    config = load_or_exit(config_file)
    BackupTUI(console=console).display_config_overview(config)

    missing = [s for s in config.enabled_sources() if not s.path.is_dir()]
    for source in missing:
        console.print(f"[yellow]Warning:[/yellow] source '{source.id}' not found: {source.path}")

    policy = config.settings.collision_policy
    if policy is CollisionPolicy.ASK:
        console.print(
            f"[dim]Collisions are asked interactively; with --yes they are resolved by "
            f"'{config.settings.non_interactive_collision.value}'.[/dim]"
        )
    console.print("[green]Configuration is valid.[/green]")


if __name__ == "__main__":
    app()
