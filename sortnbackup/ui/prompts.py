"""Operator prompts used by the run.

The core never talks to the terminal directly; it asks a Prompter. BackupTUI
implements it with Rich prompts, NonInteractivePrompter answers every question
with a fixed default (``--yes``, pipes, tests).
"""

from pathlib import Path
from typing import Protocol, Tuple

from sortnbackup.models import CollisionPolicy

# Choices offered when a destination is already occupied.
COLLISION_CHOICES = (CollisionPolicy.OVERWRITE, CollisionPolicy.SKIP, CollisionPolicy.RENAME)


class Prompter(Protocol):
    """Questions the run may need to ask the operator."""

    def choose_collision(self, source: Path, destination: Path) -> Tuple[CollisionPolicy, bool]:
        """Return the chosen resolution and whether it applies to all later collisions."""
        ...

    def confirm_discard_journal(self, journal_path: Path) -> bool:
        """Return True if an existing journal may be discarded for a fresh run."""
        ...


class NonInteractivePrompter:
    """Answers every prompt without asking.

    Args:
        collision_default: Resolution used for every collision. Any policy
            except ask; fail reports the entry as an error.
        discard_journal: Answer to the stale journal question.
    """

    def __init__(
        self,
        collision_default: CollisionPolicy = CollisionPolicy.RENAME,
        discard_journal: bool = True,
    ) -> None:
        if collision_default is CollisionPolicy.ASK:
            raise ValueError("a non-interactive prompter cannot ask")
        self.collision_default = collision_default
        self.discard_journal = discard_journal

    def choose_collision(self, source: Path, destination: Path) -> Tuple[CollisionPolicy, bool]:
        return self.collision_default, False

    def confirm_discard_journal(self, journal_path: Path) -> bool:
        return self.discard_journal
