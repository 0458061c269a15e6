"""Depth-first walk of source trees.

The TraversalEngine feeds every entry of a source to the RuleDispatcher and
keeps the resume journal in step with what has durably happened:

    - excluded entries never reach the dispatcher nor the journal;
    - entries the journal already has are skipped without evaluation;
    - a file is journaled once its rule has been applied;
    - a traversed directory is journaled after its last child, and only if
      every child completed and the walk was not stopped inside it.

Walking uses an explicit stack of open directories, so tree depth is not
limited by the interpreter's recursion limit.
"""

import logging
import threading
from typing import Callable, FrozenSet, List, Optional, Tuple

from sortnbackup.exceptions import MetadataError
from sortnbackup.models import Action, Entry, EntryOutcome, RunSummary, Source
from sortnbackup.scanning import MetadataCache, SourceWalker

from .resume_journal import ResumeJournal
from .rule_dispatcher import RuleDispatcher

logger = logging.getLogger(__name__)

EntryCallback = Callable[[Entry, EntryOutcome], None]


class _OpenDirectory:
    """A directory whose children are being processed."""

    __slots__ = ("entry", "children", "index", "ok", "ancestors")

    def __init__(self, entry: Entry, children: List[Entry], ancestors: FrozenSet[Tuple[int, int]]) -> None:
        self.entry = entry
        self.children = children
        self.index = 0
        self.ok = True
        self.ancestors = ancestors


class TraversalEngine:
    """Walks sources, dispatching and journaling each entry.

    Args:
        dispatcher: Resolves and applies rules.
        journal: Completed-set consulted and extended during the walk.
        cache: Metadata cache; entries are discarded once processed.
        on_entry: Called after each dispatched entry (progress, run log).

    Example:
        >>> engine = TraversalEngine(dispatcher, journal, cache)
        >>> summary = RunSummary()
        >>> for source in config.enabled_sources():
        ...     engine.walk_source(source, summary)
    """

    def __init__(
        self,
        dispatcher: RuleDispatcher,
        journal: ResumeJournal,
        cache: MetadataCache,
        on_entry: Optional[EntryCallback] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.journal = journal
        self.cache = cache
        self.on_entry = on_entry
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Ask the walk to stop before the next entry."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def walk_source(self, source: Source, summary: RunSummary) -> bool:
        """Walk one source, adding results to ``summary``.

        Returns:
            True if every entry of the source completed.

        Raises:
            JournalError: If the journal cannot be written.
            OSError: If a destination disk is full.
        """
        walker = SourceWalker(source)
        root = walker.root_entry()
        logger.info(f"Walking source '{source.id}' at {source.path}")

        try:
            root_id = self._directory_id(root)
            stack = [_OpenDirectory(root, walker.list_children(root), frozenset({root_id}))]
        except MetadataError as e:
            self._report(e, summary)
            return False
        finally:
            self.cache.discard(root)

        complete = True
        while stack:
            if self.stop_requested:
                complete = False
                break

            directory = stack[-1]
            if directory.index == len(directory.children):
                stack.pop()
                self._close_directory(directory, stack)
                if not directory.ok and not stack:
                    complete = False
                continue

            entry = directory.children[directory.index]
            directory.index += 1

            if self.journal.is_done(entry):
                summary.entries_resumed += 1
                continue

            outcome = self.dispatcher.dispatch(entry, walker, self._stop.is_set)
            self._record(outcome, summary)

            if outcome.action is Action.TRAVERSED:
                opened = self._open_directory(entry, walker, directory.ancestors, summary)
                if opened is not None:
                    stack.append(opened)
                    # Journaled when its last child is done.
                    if self.on_entry is not None:
                        self.on_entry(entry, outcome)
                    continue
                outcome.complete = False
            elif outcome.complete:
                self.journal.mark_done(entry, outcome.action)

            if not outcome.complete:
                directory.ok = False
            self.cache.discard(entry)
            if self.on_entry is not None:
                self.on_entry(entry, outcome)

        summary.entries_excluded += walker.excluded_count
        summary.sources_processed += 1
        return complete

    def _open_directory(
        self,
        entry: Entry,
        walker: SourceWalker,
        ancestors: FrozenSet[Tuple[int, int]],
        summary: RunSummary,
    ) -> Optional[_OpenDirectory]:
        try:
            dir_id = self._directory_id(entry)
            if dir_id in ancestors:
                logger.warning(f"{entry.describe()}: not descending, links back to a parent folder")
                return _OpenDirectory(entry, [], ancestors)
            return _OpenDirectory(entry, walker.list_children(entry), ancestors | {dir_id})
        except MetadataError as e:
            self._report(e, summary)
            return None

    def _close_directory(self, directory: _OpenDirectory, stack: List[_OpenDirectory]) -> None:
        if stack:
            if directory.ok:
                self.journal.mark_done(directory.entry, Action.TRAVERSED)
            else:
                stack[-1].ok = False
        self.cache.discard(directory.entry)

    def _directory_id(self, entry: Entry) -> Tuple[int, int]:
        stat_result = self.cache.stat(entry)
        return stat_result.st_dev, stat_result.st_ino

    @staticmethod
    def _record(outcome: EntryOutcome, summary: RunSummary) -> None:
        summary.entries_processed += 1
        summary.files_copied += outcome.files_copied
        summary.bytes_copied += outcome.bytes_copied
        summary.files_up_to_date += outcome.files_up_to_date
        summary.files_skipped += outcome.files_skipped
        summary.lines_logged += outcome.lines_logged
        if outcome.action is Action.IGNORED:
            summary.files_ignored += 1
        elif outcome.action is Action.TRAVERSED:
            summary.directories_traversed += 1
        summary.errors.extend(outcome.errors)

    @staticmethod
    def _report(error: MetadataError, summary: RunSummary) -> None:
        logger.warning(error.describe())
        summary.errors.append(error.describe())
