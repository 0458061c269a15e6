"""
File operations module for sortnbackup.

This module contains the FileOperations class for safe file copying during
a backup run: atomic copies, up-to-date detection, collision handling and
log line appends.
"""

import errno
import filecmp
import itertools
import logging
import os
import shutil
import stat
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Set

from sortnbackup.exceptions import CopyError
from sortnbackup.models import Action, CollisionPolicy
from sortnbackup.ui.prompts import NonInteractivePrompter, Prompter

# Configure module logger
logger = logging.getLogger(__name__)

# Journal decision name for an "apply to all" collision choice
COLLISION_DECISION = "collision"

# FAT stores modification times with two second resolution
MTIME_TOLERANCE = 2.0

TEMP_SUFFIX = ".sortnbackup-tmp"


@dataclass
class CopyResult:
    """Result of copying one file."""
    action: Action                    # COPIED, UP_TO_DATE or SKIPPED
    destination: Path                 # Final destination (after renaming)
    bytes_copied: int = 0


class FileOperations:
    """
    Handles safe file manipulation for backup runs.

    Files are copied to a temporary file next to the destination, flushed to
    disk and renamed into place, so a destination is either absent, the old
    file or the complete new file. A destination holding a file with the same
    size, modification time and content is considered up to date and left alone;
    any other occupied destination is a collision resolved by the
    configured policy. All operations support dry-run mode.

    Args:
        policy: Collision policy from the configuration.
        prompter: Asked when the policy is ``ask``.
        dry_run: If True, simulate operations without making filesystem changes.
        decisions: Operator decisions loaded from the journal.
        on_decision: Called with (name, value) when the operator makes an
            "apply to all" decision, so it can be journaled.
    """

    def __init__(
        self,
        policy: CollisionPolicy = CollisionPolicy.ASK,
        prompter: Optional[Prompter] = None,
        dry_run: bool = False,
        decisions: Optional[Dict[str, str]] = None,
        on_decision: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.policy = policy
        self.prompter = prompter or NonInteractivePrompter()
        self.dry_run = dry_run
        self.decisions: Dict[str, str] = dict(decisions or {})
        self._on_decision = on_decision
        self._locks: Dict[Path, _LockSlot] = {}
        self._locks_guard = threading.Lock()
        # Destinations claimed by simulated copies in dry-run mode
        self._planned: Set[Path] = set()

    def copy_file(
        self,
        source: Path,
        destination: Path,
        source_stat: Optional[os.stat_result] = None,
    ) -> CopyResult:
        """
        Copy a file to ``destination``, preserving its timestamps.

        Parameters:
            source (Path): File to copy.
            destination (Path): Where to put it; parent folders are created.
            source_stat (os.stat_result): Stat of the source if already known.

        Returns:
            CopyResult: What was done and where the file ended up.

        Raises:
            CopyError: If the copy fails or the collision policy is ``fail``.
            OSError: If the destination disk is full, to abort the run.
        """
        if source_stat is None:
            try:
                source_stat = os.stat(source)
            except OSError as e:
                raise CopyError(f"cannot read {source}: {e.strerror or e}") from e

        with self._locked(destination):
            existing = self._destination_stat(destination)
            if existing is None:
                return self._write(source, destination, source_stat)
            if existing is not _PLANNED and self._is_up_to_date(source, destination, source_stat, existing):
                logger.debug(f"Up to date: {destination}")
                return CopyResult(Action.UP_TO_DATE, destination)
            return self._resolve_collision(source, destination, source_stat)

    def append_line(self, log_path: Path, line: str) -> None:
        """
        Append one line to a text file, creating it and its folders if needed.

        Raises:
            CopyError: If the file cannot be written.
            OSError: If the disk is full.
        """
        with self._locked(log_path):
            if self.dry_run:
                logger.debug(f"[DRY RUN] Would append to {log_path}: {line}")
                return
            try:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                self._raise_if_disk_full(e)
                raise CopyError(f"cannot append to {log_path}: {e.strerror or e}") from e

    def remember(self, name: str, value: str) -> None:
        """Record an operator decision for the rest of the run."""
        self.decisions[name] = value
        if self._on_decision is not None:
            self._on_decision(name, value)

    def _resolve_collision(
        self, source: Path, destination: Path, source_stat: os.stat_result
    ) -> CopyResult:
        policy = self._collision_policy(source, destination)

        if policy is CollisionPolicy.SKIP:
            logger.info(f"Collision, kept existing file: {destination}")
            return CopyResult(Action.SKIPPED, destination)
        if policy is CollisionPolicy.FAIL:
            raise CopyError(f"destination already exists: {destination}")
        if policy is CollisionPolicy.OVERWRITE:
            logger.info(f"Collision, overwriting: {destination}")
            return self._write(source, destination, source_stat)
        return self._write_renamed(source, destination, source_stat)

    def _collision_policy(self, source: Path, destination: Path) -> CollisionPolicy:
        if self.policy is not CollisionPolicy.ASK:
            return self.policy

        remembered = self.decisions.get(COLLISION_DECISION)
        if remembered is not None:
            return CollisionPolicy(remembered)

        choice, apply_to_all = self.prompter.choose_collision(source, destination)
        if apply_to_all:
            self.remember(COLLISION_DECISION, choice.value)
        return choice

    def _write_renamed(
        self, source: Path, destination: Path, source_stat: os.stat_result
    ) -> CopyResult:
        """Copy next to an occupied destination as "name (n).ext".

        A candidate already holding this very file is reused, so repeating a
        run does not pile up copies.
        """
        for n in itertools.count(1):
            candidate = destination.with_name(f"{destination.stem} ({n}){destination.suffix}")
            with self._locked(candidate):
                existing = self._destination_stat(candidate)
                if existing is None:
                    logger.info(f"Collision, copying as: {candidate.name}")
                    return self._write(source, candidate, source_stat)
                if existing is not _PLANNED and self._is_up_to_date(source, candidate, source_stat, existing):
                    return CopyResult(Action.UP_TO_DATE, candidate)

    def _write(self, source: Path, destination: Path, source_stat: os.stat_result) -> CopyResult:
        if self.dry_run:
            self._planned.add(destination)
            logger.debug(f"[DRY RUN] Would copy: {source} -> {destination}")
            return CopyResult(Action.COPIED, destination, source_stat.st_size)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{destination.name}.", suffix=TEMP_SUFFIX, dir=destination.parent
            )
            os.close(fd)
            try:
                shutil.copy2(source, temp_name)
                _fsync(temp_name)
                os.replace(temp_name, destination)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as e:
            self._raise_if_disk_full(e)
            raise CopyError(f"cannot copy to {destination}: {e.strerror or e}") from e

        logger.debug(f"Copied: {source} -> {destination}")
        return CopyResult(Action.COPIED, destination, source_stat.st_size)

    def _destination_stat(self, destination: Path):
        """Stat of an occupied destination, _PLANNED, or None when free."""
        if destination in self._planned:
            return _PLANNED
        try:
            existing = os.stat(destination)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CopyError(f"cannot inspect {destination}: {e.strerror or e}") from e
        if stat.S_ISDIR(existing.st_mode):
            raise CopyError(f"destination is a directory: {destination}")
        return existing

    @staticmethod
    def _is_up_to_date(
        source: Path, destination: Path, source_stat: os.stat_result, existing: os.stat_result
    ) -> bool:
        """True if ``destination`` already holds the same bytes as ``source``.

        Size and modification time only preselect; a different file with the
        same name, size and time is a collision, not a backup of this one.
        """
        if source_stat.st_size != existing.st_size:
            return False
        if abs(source_stat.st_mtime - existing.st_mtime) > MTIME_TOLERANCE:
            return False
        try:
            return filecmp.cmp(source, destination, shallow=False)
        except OSError as e:
            raise CopyError(f"cannot compare {source} with {destination}: {e.strerror or e}") from e

    @contextmanager
    def _locked(self, path: Path) -> Iterator[None]:
        """Hold the lock of one destination path.

        Entries are dropped once nobody holds or waits for them, so the
        table only ever contains paths being written right now.
        """
        with self._locks_guard:
            slot = self._locks.get(path)
            if slot is None:
                slot = self._locks[path] = _LockSlot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._locks_guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._locks[path]

    @staticmethod
    def _raise_if_disk_full(error: OSError) -> None:
        if error.errno == errno.ENOSPC:
            logger.critical(f"Disk full - aborting backup run: {error}")
            raise error


class _LockSlot:
    """A destination lock and the number of threads holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


_PLANNED = object()


def _fsync(path: str) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
