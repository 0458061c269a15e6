"""Run orchestration package for sortnbackup.

This package contains the components that drive a backup run:
- ResumeJournal: Crash-safe record of completed entries and decisions.
- RuleDispatcher: First-match dispatch of entries to file group rules.
- TraversalEngine: Depth-first walk of a source with journaling.
- BackupLogger: Structured run log file.
- BackupOrchestrator: Central coordinator for a complete run.
"""

from sortnbackup.orchestration.backup_logger import BackupLogger
from sortnbackup.orchestration.backup_orchestrator import BackupOrchestrator
from sortnbackup.orchestration.resume_journal import ResumeJournal
from sortnbackup.orchestration.rule_dispatcher import RuleDispatcher
from sortnbackup.orchestration.traversal_engine import TraversalEngine

__all__ = [
    "BackupLogger",
    "BackupOrchestrator",
    "ResumeJournal",
    "RuleDispatcher",
    "TraversalEngine",
]
