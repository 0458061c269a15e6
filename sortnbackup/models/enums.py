"""Enums shared across the configuration and runtime models."""

from enum import Enum


class CollisionPolicy(Enum):
    """How to handle a destination already occupied by a different file."""
    ASK = "ask"              # Prompt the operator (falls back when non-interactive)
    SKIP = "skip"            # Leave the existing file, do not copy
    OVERWRITE = "overwrite"  # Replace the existing file
    RENAME = "rename"        # Copy next to it as "name (1).ext", "name (2).ext", ...
    FAIL = "fail"            # Report a CopyError for the entry


class FileSizeStyle(Enum):
    """Unit system used when printing byte counts."""
    BINARY = "binary"        # KiB, MiB, GiB
    DECIMAL = "decimal"      # kB, MB, GB


class Action(Enum):
    """What the dispatcher did with an entry."""
    IGNORED = "ignored"
    TRAVERSED = "traversed"
    COPIED = "copied"
    UP_TO_DATE = "up_to_date"
    SKIPPED = "skipped"
    COPIED_EXACT = "copied_exact"
    LOGGED = "logged"
    FAILED = "failed"
