"""First-match dispatch of entries to file group rules.

The RuleDispatcher walks the configured file groups in declaration order and
applies the rule of the first group whose source filter admits the entry's
source and whose filter matches. An entry no group matches is ignored, files
and directories alike, so a configuration without a catch-all directory group
stops descending into unmatched folders.

Per-entry failures (unrenderable paths, failed copies, unreadable metadata)
never propagate: they are returned as a FAILED outcome, or as errors on an
otherwise complete outcome, for the traversal to report.
"""

import logging
import stat
from pathlib import Path
from typing import Callable, List, Optional

from sortnbackup.exceptions import EntryError, MetadataError
from sortnbackup.matching import FilterEngine
from sortnbackup.models import Action, BackupConfig, Entry, EntryOutcome, FileGroup
from sortnbackup.models.rules import CopyExact, CopyTo, Ignore, LogFile, Traverse
from sortnbackup.operations import FileOperations
from sortnbackup.operations.file_operations import CopyResult
from sortnbackup.scanning import MetadataCache, SourceWalker
from sortnbackup.templating import PathTemplateEngine

logger = logging.getLogger(__name__)


def _never() -> bool:
    return False


class RuleDispatcher:
    """Resolves and performs the action for one entry.

    Args:
        config: The validated configuration.
        cache: Metadata cache shared with the filter engine.
        filters: Filter engine used to test group filters.
        templates: Path template engine rendering destinations.
        file_ops: File operations performing copies and appends.

    Example:
        >>> dispatcher = RuleDispatcher(config, cache, filters, templates, file_ops)
        >>> outcome = dispatcher.dispatch(entry, walker)
        >>> outcome.action
        <Action.COPIED: 'copied'>
    """

    def __init__(
        self,
        config: BackupConfig,
        cache: MetadataCache,
        filters: FilterEngine,
        templates: PathTemplateEngine,
        file_ops: FileOperations,
    ) -> None:
        self.config = config
        self.cache = cache
        self.filters = filters
        self.templates = templates
        self.file_ops = file_ops

    def find_group(self, entry: Entry, diagnostics: Optional[List[str]] = None) -> Optional[FileGroup]:
        """Return the first file group matching ``entry``, or None."""
        for group in self.config.file_groups:
            if not group.sources.includes(entry.source_id):
                continue
            if self.filters.matches(group.filter, entry, diagnostics):
                return group
        return None

    def dispatch(
        self,
        entry: Entry,
        walker: SourceWalker,
        should_stop: Callable[[], bool] = _never,
    ) -> EntryOutcome:
        """Apply the first matching rule to ``entry``.

        Args:
            entry: The entry to process.
            walker: Walker of the entry's source, used by copy_exact to copy
                directory trees with the source's exclusions.
            should_stop: Polled between files of a copy_exact tree.

        Returns:
            EntryOutcome describing what was done. ``complete`` is False when
            the entry has to be processed again by a continued run.

        Raises:
            OSError: Only for a full destination disk.
        """
        diagnostics: List[str] = []
        group = self.find_group(entry, diagnostics)

        if group is None:
            logger.debug(f"No file group matches {entry.describe()}")
            outcome = EntryOutcome(Action.IGNORED)
        else:
            logger.debug(f"{entry.describe()} matches file group '{group.id}'")
            try:
                outcome = self._apply(group, entry, walker, should_stop)
            except EntryError as e:
                if e.entry is None:
                    e.entry = entry
                logger.warning(e.describe())
                outcome = EntryOutcome(Action.FAILED, complete=False, errors=[e.describe()])
            outcome.group_id = group.id

        # The cache memoizes failures, so later groups may repeat a diagnostic.
        outcome.errors[:0] = list(dict.fromkeys(diagnostics))
        return outcome

    def _apply(
        self,
        group: FileGroup,
        entry: Entry,
        walker: SourceWalker,
        should_stop: Callable[[], bool],
    ) -> EntryOutcome:
        rule = group.rule

        if isinstance(rule, Ignore):
            return EntryOutcome(Action.IGNORED)

        if isinstance(rule, Traverse):
            if self._is_dir(entry):
                return EntryOutcome(Action.TRAVERSED)
            return EntryOutcome(Action.IGNORED)

        target = self.config.target(rule.target)

        if isinstance(rule, CopyTo):
            entry_stat = self.cache.stat(entry)
            if stat.S_ISDIR(entry_stat.st_mode):
                raise MetadataError("copy_to applies to files only; use copy_exact for folders", entry)
            destination = self.templates.destination(target.path, rule.path, entry)
            return self._copy_outcome(
                self.file_ops.copy_file(entry.full_path, destination, entry_stat), entry
            )

        if isinstance(rule, CopyExact):
            destination = target.path.joinpath(*entry.relative_path.parts)
            if self._is_dir(entry):
                return self._copy_tree(entry, walker, destination, should_stop)
            return self._copy_outcome(
                self.file_ops.copy_file(entry.full_path, destination, self.cache.stat(entry)), entry
            )

        if isinstance(rule, LogFile):
            log_path = self.templates.destination(target.path, rule.log_file, entry)
            line = str(entry.full_path) if rule.full_path else entry.relative_path.as_posix()
            self.file_ops.append_line(log_path, line)
            return EntryOutcome(Action.LOGGED, destination=log_path, lines_logged=1)

        raise MetadataError(f"unsupported rule {type(rule).__name__}", entry)

    def _copy_tree(
        self,
        directory: Entry,
        walker: SourceWalker,
        destination: Path,
        should_stop: Callable[[], bool],
    ) -> EntryOutcome:
        """Copy every file below ``directory`` to the same relative place."""
        outcome = EntryOutcome(Action.COPIED_EXACT, destination=destination)
        prefix_length = len(directory.relative_path.parts)

        try:
            for child in walker.walk_files(directory):
                if should_stop():
                    outcome.complete = False
                    break
                child_destination = destination.joinpath(*child.relative_path.parts[prefix_length:])
                try:
                    result = self.file_ops.copy_file(child.full_path, child_destination)
                except EntryError as e:
                    e.entry = child
                    self._fail(outcome, e)
                    continue
                self._count(outcome, result)
        except MetadataError as e:
            self._fail(outcome, e)
        return outcome

    @staticmethod
    def _fail(outcome: EntryOutcome, error: EntryError) -> None:
        logger.warning(error.describe())
        outcome.errors.append(error.describe())
        outcome.complete = False

    def _copy_outcome(self, result: CopyResult, entry: Entry) -> EntryOutcome:
        outcome = EntryOutcome(result.action, destination=result.destination)
        self._count(outcome, result)
        logger.debug(f"{entry.describe()} -> {result.destination} ({result.action.value})")
        return outcome

    @staticmethod
    def _count(outcome: EntryOutcome, result: CopyResult) -> None:
        if result.action is Action.COPIED:
            outcome.files_copied += 1
            outcome.bytes_copied += result.bytes_copied
        elif result.action is Action.UP_TO_DATE:
            outcome.files_up_to_date += 1
        elif result.action is Action.SKIPPED:
            outcome.files_skipped += 1

    def _is_dir(self, entry: Entry) -> bool:
        return stat.S_ISDIR(self.cache.stat(entry).st_mode)
