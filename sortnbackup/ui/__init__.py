"""User interface package for sortnbackup.

- BackupTUI: Rich console output and interactive prompts.
- Prompter / NonInteractivePrompter: The questions a run may ask, and fixed
  answers for runs that must not prompt.
"""

from .backup_tui import BackupTUI
from .prompts import NonInteractivePrompter, Prompter

__all__ = ["BackupTUI", "NonInteractivePrompter", "Prompter"]
