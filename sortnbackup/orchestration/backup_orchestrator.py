"""BackupOrchestrator for coordinating a complete backup run.

This module provides the BackupOrchestrator class, which wires the run's
services together (metadata cache, filter engine, path templates, file
operations, resume journal, traversal) and drives them over every enabled
source, reporting through BackupTUI and the optional BackupLogger.

Example:
    from sortnbackup.config import load_config
    from sortnbackup.orchestration import BackupOrchestrator

    config = load_config(Path("config.yaml"))
    orchestrator = BackupOrchestrator(config, continue_run=True)
    summary = orchestrator.run()
"""

import errno
import logging
import signal
import sys
import threading
import time
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sortnbackup.matching import FilterEngine, PredicateEvaluator
from sortnbackup.models import BackupConfig, Entry, EntryOutcome, RunSummary
from sortnbackup.operations import FileOperations
from sortnbackup.scanning import MetadataCache
from sortnbackup.templating import PathTemplateEngine
from sortnbackup.ui import BackupTUI, NonInteractivePrompter, Prompter

from .backup_logger import BackupLogger
from .resume_journal import ResumeJournal
from .rule_dispatcher import RuleDispatcher
from .traversal_engine import TraversalEngine

logger = logging.getLogger(__name__)


class BackupOrchestrator:
    """Runs one backup over all enabled sources.

    Attributes:
        config: The validated configuration.
        continue_run: Resume from the journal instead of starting fresh.
        dry_run: Simulate without writing targets or the journal.
        journal_path: Journal file; defaults to ``settings.journal_path``.
        allow_no_journal: Run without a journal if it cannot be written.
        log_file_path: Optional structured run log.
        verbose: Show the configuration overview and extra details.

    Example:
        orchestrator = BackupOrchestrator(config, prompter=NonInteractivePrompter())
        summary = orchestrator.run()
        if summary.interrupted:
            ...
    """

    def __init__(
        self,
        config: BackupConfig,
        tui: Optional[BackupTUI] = None,
        prompter: Optional[Prompter] = None,
        continue_run: bool = False,
        dry_run: bool = False,
        journal_path: Optional[Path] = None,
        allow_no_journal: bool = False,
        log_file_path: Optional[Path] = None,
        verbose: bool = False,
        cache: Optional[MetadataCache] = None,
    ) -> None:
        """Initialize the BackupOrchestrator.

        Args:
            config: The validated configuration.
            tui: Console front end. Defaults to a new BackupTUI.
            prompter: Answers operator questions. Defaults to the TUI
                (interactive); pass a NonInteractivePrompter to never ask.
            continue_run: Resume from the journal.
            dry_run: Simulate the run.
            journal_path: Overrides ``settings.journal_path``.
            allow_no_journal: Proceed without resume support if the journal
                cannot be written in a fresh run.
            log_file_path: Write a structured run log to this file.
            verbose: Display additional details.
            cache: Metadata cache to use, mainly for tests that inspect its
                counters.
        """
        self.config = config
        self.continue_run = continue_run
        self.dry_run = dry_run
        self.journal_path = journal_path or config.settings.journal_path
        self.allow_no_journal = allow_no_journal
        self.log_file_path = log_file_path
        self.verbose = verbose

        self._tui = tui or BackupTUI()
        self._prompter: Prompter = prompter or self._tui
        self._cache = cache or MetadataCache()
        self._predicates = PredicateEvaluator(self._cache)
        self._engine: Optional[TraversalEngine] = None

    @property
    def predicates(self) -> PredicateEvaluator:
        """The run's predicate evaluator (exposes ``evaluation_count``)."""
        return self._predicates

    def request_stop(self) -> None:
        """Stop the run before the next entry."""
        if self._engine is not None:
            self._engine.request_stop()

    def run(self) -> RunSummary:
        """Execute the backup.

        Returns:
            RunSummary with aggregated statistics.

        Raises:
            JournalError: If the journal cannot be used (corrupt, written for
                other sources or targets, kept by the operator, unwritable).
        """
        start_time = time.time()
        summary = RunSummary(dry_run=self.dry_run)
        settings = self.config.settings

        if self.verbose:
            self._tui.display_config_overview(self.config)

        with ResumeJournal(self.journal_path, self.config.fingerprint(), read_only=self.dry_run) as journal:
            if self.continue_run:
                journal.open_continue()
                if journal.loaded_count:
                    self._tui.console.print(
                        f"[dim]Resuming: {journal.loaded_count:,} entries already done[/dim]"
                    )
            else:
                journal.open_fresh(self._prompter.confirm_discard_journal, self.allow_no_journal)

            # A dry run never asks about collisions it only simulates.
            collision_prompter = self._prompter
            if self.dry_run:
                collision_prompter = NonInteractivePrompter(settings.non_interactive_collision)

            file_ops = FileOperations(
                policy=settings.collision_policy,
                prompter=collision_prompter,
                dry_run=self.dry_run,
                decisions=journal.decisions,
                on_decision=journal.record_decision,
            )
            dispatcher = RuleDispatcher(
                self.config,
                self._cache,
                FilterEngine(self._predicates),
                PathTemplateEngine(self._cache),
                file_ops,
            )

            with ExitStack() as stack:
                run_log = self._open_run_log(stack)
                self._walk_sources(dispatcher, journal, summary, run_log)
                summary.duration_seconds = time.time() - start_time
                if run_log is not None:
                    run_log.log_summary(summary)

        self._tui.display_run_summary(summary, settings.file_size_style)
        if self.verbose and run_log is not None:
            self._tui.console.print(f"[dim]Log file: {run_log.get_log_path()}[/dim]")
        return summary

    def _walk_sources(
        self,
        dispatcher: RuleDispatcher,
        journal: ResumeJournal,
        summary: RunSummary,
        run_log: Optional[BackupLogger],
    ) -> None:
        progress, progress_callback = self._tui.create_progress_callback()

        def on_entry(entry: Entry, outcome: EntryOutcome) -> None:
            progress_callback(entry, outcome)
            if run_log is not None:
                run_log.log_entry(entry, outcome)

        engine = TraversalEngine(dispatcher, journal, self._cache, on_entry=on_entry)
        self._engine = engine

        with self._stop_on_interrupt(engine), progress:
            for source in self.config.enabled_sources():
                try:
                    engine.walk_source(source, summary)
                except OSError as e:
                    if e.errno != errno.ENOSPC:
                        raise
                    # Disk full - critical error, abort remaining sources
                    error_msg = f"Disk full while backing up source '{source.id}': {e}"
                    summary.errors.append(error_msg)
                    self._tui.console.print(f"[red]Critical error: {error_msg}[/red]")
                    break
                if engine.stop_requested:
                    break

        if engine.stop_requested:
            summary.interrupted = True
        stats = self._cache.get_stats()
        logger.debug(
            f"Metadata cache: {stats['stat_calls']} stat calls, "
            f"{stats['decode_attempts']} decode attempts, "
            f"{self._predicates.evaluation_count} predicate evaluations"
        )

    def _open_run_log(self, stack: ExitStack) -> Optional[BackupLogger]:
        if self.log_file_path is None:
            return None
        try:
            run_log = stack.enter_context(BackupLogger(self.log_file_path, dry_run=self.dry_run))
        except OSError as e:
            # Non-critical: continue without the run log
            print(f"Warning: Could not create log file: {e}", file=sys.stderr)
            return None
        run_log.log_header(resumed=self.continue_run)
        run_log.log_configuration(self.config)
        return run_log

    @contextmanager
    def _stop_on_interrupt(self, engine: TraversalEngine) -> Iterator[None]:
        """Turn the first Ctrl+C into a stop request between entries.

        A second Ctrl+C raises KeyboardInterrupt as usual.
        """
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        previous = signal.getsignal(signal.SIGINT)
        if previous is None:
            previous = signal.default_int_handler

        def handle_interrupt(signum, frame) -> None:
            engine.request_stop()
            signal.signal(signal.SIGINT, previous)
            self._tui.console.print(
                "\n[yellow]Stopping after the current entry... "
                "(Ctrl+C again to abort immediately)[/yellow]"
            )

        signal.signal(signal.SIGINT, handle_interrupt)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)
