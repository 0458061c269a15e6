"""Append-only record of completed entries.

The journal is a JSON Lines file. The first record is a header naming the
format version and the run scope (source and target roots); every later
record is either a completion marker or an operator decision::

    {"kind": "header", "version": 1, "fingerprint": {...}, "started": "..."}
    {"kind": "done", "source": "usb", "path": "DCIM/photo.jpg", "action": "copied"}
    {"kind": "decision", "name": "collision", "value": "rename"}

Each record is written with a single write, flushed and fsync'ed before the
call returns. A crash can therefore only leave a torn final line, which is
discarded on load.
"""

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sortnbackup.exceptions import JournalError
from sortnbackup.models import Action, Entry

logger = logging.getLogger(__name__)

JOURNAL_VERSION = 1


class ResumeJournal:
    """Completed-set of entries, persisted as they complete.

    Use ``open_fresh`` for a new run or ``open_continue`` to resume one, then
    ``is_done`` / ``mark_done`` while traversing. A journal without a file
    (``path`` None, dry run, or bypassed) keeps the in-memory set only.

    Args:
        path: Journal file, or None to run without one.
        fingerprint: Run scope; a continued run must have the same one.
        read_only: Load but never write (dry runs).

    Example:
        >>> with ResumeJournal(path, config.fingerprint()) as journal:
        ...     journal.open_continue()
        ...     if not journal.is_done(entry):
        ...         journal.mark_done(entry, Action.COPIED)
    """

    def __init__(
        self,
        path: Optional[Path],
        fingerprint: Dict[str, Any],
        read_only: bool = False,
    ) -> None:
        self.path = path
        self.fingerprint = fingerprint
        self.read_only = read_only
        self.decisions: Dict[str, str] = {}
        self._done: Set[Tuple[str, str]] = set()
        self._handle = None
        self._lock = threading.Lock()
        self._loaded_count = 0

    def __enter__(self) -> "ResumeJournal":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def enabled(self) -> bool:
        """True if completed entries are persisted."""
        return self._handle is not None

    @property
    def loaded_count(self) -> int:
        """Number of completed entries loaded by open_continue."""
        return self._loaded_count

    def open_fresh(
        self,
        confirm_discard: Callable[[Path], bool],
        allow_no_journal: bool = False,
    ) -> None:
        """Start a new journal, discarding an existing one if confirmed.

        Args:
            confirm_discard: Asked whether an existing journal may be
                discarded.
            allow_no_journal: Continue without a journal if it cannot be
                written, instead of failing.

        Raises:
            JournalError: If the operator keeps the existing journal, or the
                journal cannot be written and no bypass is allowed.
        """
        if self.path is None or self.read_only:
            return
        if self.path.exists() and not confirm_discard(self.path):
            raise JournalError(
                f"journal {self.path} from a previous run was kept; "
                "resume it with --continue or confirm discarding it"
            )

        try:
            self._handle = open(self.path, "w", encoding="utf-8")
            self._append({
                "kind": "header",
                "version": JOURNAL_VERSION,
                "fingerprint": self.fingerprint,
                "started": datetime.now().isoformat(timespec="seconds"),
            })
        except (OSError, JournalError) as e:
            self.close()
            if not allow_no_journal:
                raise JournalError(f"cannot write journal {self.path}: {e}") from e
            logger.warning(
                f"Cannot write journal {self.path} ({e}); continuing without resume support"
            )

    def open_continue(self) -> None:
        """Load the completed-set of a previous run and append to it.

        A missing journal starts an empty one with a warning.

        Raises:
            JournalError: If the journal is unreadable, corrupt, from another
                format version, or recorded for different sources/targets.
        """
        if self.path is None:
            return
        if not self.path.exists():
            logger.warning(f"No journal found at {self.path}; starting from scratch")
            self.open_fresh(lambda _: True)
            return

        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise JournalError(f"cannot read journal {self.path}: {e.strerror or e}") from e

        records, valid_length = self._parse(raw)
        if not records:
            logger.warning(f"Journal {self.path} is empty; starting from scratch")
            self.open_fresh(lambda _: True)
            return

        self._check_header(records[0])
        for line_no, record in enumerate(records[1:], start=2):
            self._load_record(record, line_no)
        self._loaded_count = len(self._done)
        logger.info(f"Loaded {self._loaded_count} completed entries from {self.path}")

        if self.read_only:
            return
        try:
            if valid_length != len(raw):
                os.truncate(self.path, valid_length)
            self._handle = open(self.path, "a", encoding="utf-8")
            if valid_length and not raw[:valid_length].endswith(b"\n"):
                self._handle.write("\n")
        except OSError as e:
            raise JournalError(f"cannot append to journal {self.path}: {e.strerror or e}") from e

    def is_done(self, entry: Entry) -> bool:
        return entry.key in self._done

    def mark_done(self, entry: Entry, action: Action) -> None:
        """Record that an entry is fully processed.

        Only call this once the entry's side effects are durable.

        Raises:
            JournalError: If the record cannot be written.
        """
        with self._lock:
            self._done.add(entry.key)
            self._append({
                "kind": "done",
                "source": entry.source_id,
                "path": entry.relative_path.as_posix(),
                "action": action.value,
            })

    def record_decision(self, name: str, value: str) -> None:
        """Record an operator decision so a continued run does not ask again."""
        with self._lock:
            self.decisions[name] = value
            self._append({"kind": "decision", "name": name, "value": value})

    def close(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.close()

    def _append(self, record: Dict[str, Any]) -> None:
        if self._handle is None:
            return
        try:
            self._handle.write(json.dumps(record) + "\n")
            self._handle.flush()
            os.fsync(self._handle.fileno())
        except OSError as e:
            raise JournalError(f"cannot write journal {self.path}: {e.strerror or e}") from e

    def _parse(self, raw: bytes) -> Tuple[List[Dict[str, Any]], int]:
        """Parse all complete records; returns them and the valid byte length."""
        records = []
        offset = 0
        lines = raw.split(b"\n")
        for index, line in enumerate(lines):
            is_last = index == len(lines) - 1
            if not line.strip():
                offset += len(line) + (0 if is_last else 1)
                continue
            try:
                record = json.loads(line.decode("utf-8"))
                if not isinstance(record, dict):
                    raise ValueError("record is not an object")
            except ValueError as e:
                # Only an unterminated final line can be the victim of a crash.
                if is_last:
                    logger.warning(f"Discarding incomplete last line of journal {self.path}")
                    return records, offset
                raise JournalError(
                    f"journal {self.path} is corrupt at line {index + 1}: {e}"
                ) from e
            records.append(record)
            offset += len(line) + (0 if is_last else 1)
        return records, offset

    def _check_header(self, record: Dict[str, Any]) -> None:
        if record.get("kind") != "header":
            raise JournalError(f"journal {self.path} has no header")
        if record.get("version") != JOURNAL_VERSION:
            raise JournalError(
                f"journal {self.path} has format version {record.get('version')}, "
                f"expected {JOURNAL_VERSION}"
            )
        if record.get("fingerprint") != self.fingerprint:
            raise JournalError(
                f"journal {self.path} was written for different sources or targets; "
                "start a fresh run or point --journal elsewhere"
            )

    def _load_record(self, record: Dict[str, Any], line_no: int) -> None:
        kind = record.get("kind")
        if kind == "done" and isinstance(record.get("source"), str) and isinstance(record.get("path"), str):
            self._done.add((record["source"], record["path"]))
        elif kind == "decision" and isinstance(record.get("name"), str):
            self.decisions[record["name"]] = str(record.get("value"))
        else:
            raise JournalError(f"journal {self.path} is corrupt at record {line_no}: unexpected record")
