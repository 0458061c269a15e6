"""Unit tests for BackupLogger."""

import os
import re
from pathlib import Path, PurePosixPath

import pytest

from sortnbackup.models import Action, BackupConfig, Entry, EntryOutcome, RunSummary
from sortnbackup.orchestration import BackupLogger


def entry(relative: str) -> Entry:
    return Entry("phone", Path("/data/phone"), PurePosixPath(relative))


class TestBackupLoggerBasic:
    """Test basic BackupLogger functionality."""

    def test_log_file_creation_with_auto_generated_filename(self, temp_dir: Path):
        """Test that the default log file name carries a timestamp."""
        original_cwd = os.getcwd()
        try:
            os.chdir(temp_dir)
            with BackupLogger() as run_log:
                log_path = run_log.get_log_path()
                assert log_path.parent == Path.cwd()
                pattern = r"backup_log_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.log"
                assert re.match(pattern, log_path.name)
        finally:
            os.chdir(original_cwd)

    def test_missing_parent_directory_raises(self, temp_dir: Path):
        with pytest.raises(OSError, match="Parent directory does not exist"):
            BackupLogger(log_file_path=temp_dir / "missing" / "run.log")

    def test_write_after_close_warns(self, temp_dir: Path, capsys: pytest.CaptureFixture):
        run_log = BackupLogger(log_file_path=temp_dir / "run.log")
        with run_log:
            run_log.log_header()

        run_log.log_header()

        assert "closed log file" in capsys.readouterr().err


class TestBackupLoggerSections:
    """Test the content of each log section."""

    def test_header(self, temp_dir: Path):
        log_path = temp_dir / "run.log"
        with BackupLogger(log_file_path=log_path, dry_run=True) as run_log:
            run_log.log_header(resumed=True)

        content = log_path.read_text()
        assert "sortnbackup - Backup Log" in content
        assert "Mode: DRY RUN" in content
        assert "Run: continued" in content
        assert BackupLogger.SEPARATOR in content

    def test_configuration(self, temp_dir: Path, photo_config: BackupConfig):
        log_path = temp_dir / "run.log"
        with BackupLogger(log_file_path=log_path) as run_log:
            run_log.log_configuration(photo_config)

        content = log_path.read_text()
        assert "CONFIGURATION" in content
        assert "Collision policy: rename" in content
        assert "- src:" in content
        assert "ignore: .cache" in content
        assert "1. folders [all] traverse" in content
        assert "2. dated_images [all] copy_to -> backup" in content

    def test_entries_skip_quiet_outcomes(self, temp_dir: Path):
        """Ignored, traversed and up-to-date entries are only counted."""
        log_path = temp_dir / "run.log"
        with BackupLogger(log_file_path=log_path) as run_log:
            run_log.log_entry(entry("DCIM"), EntryOutcome(Action.TRAVERSED, group_id="folders"))
            run_log.log_entry(entry("junk.tmp"), EntryOutcome(Action.IGNORED))
            run_log.log_entry(entry("old.jpg"), EntryOutcome(Action.UP_TO_DATE, group_id="images"))
            run_log.log_entry(
                entry("DCIM/photo.jpg"),
                EntryOutcome(Action.COPIED, group_id="images", destination=Path("/backup/photo.jpg")),
            )

        content = log_path.read_text()
        assert "ENTRIES" in content
        assert "copied (images): [phone] DCIM/photo.jpg -> /backup/photo.jpg" in content
        assert "junk.tmp" not in content
        assert "old.jpg" not in content
        assert "[phone] DCIM\n" not in content

    def test_entry_errors(self, temp_dir: Path):
        log_path = temp_dir / "run.log"
        with BackupLogger(log_file_path=log_path) as run_log:
            run_log.log_entry(
                entry("notes.txt"),
                EntryOutcome(Action.FAILED, group_id="docs", complete=False,
                             errors=["[phone] notes.txt: copy: disk says no"]),
            )

        content = log_path.read_text()
        assert "failed (docs): [phone] notes.txt" in content
        assert "    ! [phone] notes.txt: copy: disk says no" in content

    def test_copy_exact_counts(self, temp_dir: Path):
        log_path = temp_dir / "run.log"
        with BackupLogger(log_file_path=log_path) as run_log:
            run_log.log_entry(
                entry("project"),
                EntryOutcome(Action.COPIED_EXACT, group_id="projects", files_copied=3, files_up_to_date=2),
            )

        assert "Files copied: 3, up to date: 2" in log_path.read_text()

    def test_summary(self, temp_dir: Path):
        log_path = temp_dir / "run.log"
        summary = RunSummary(
            sources_processed=2,
            entries_processed=1234,
            files_copied=120,
            bytes_copied=5_000_000,
            errors=["[phone] a.jpg: copy: failed"],
            duration_seconds=323.5,
            interrupted=True,
        )
        with BackupLogger(log_file_path=log_path) as run_log:
            run_log.log_summary(summary)

        content = log_path.read_text()
        assert "SUMMARY" in content
        assert "Entries processed: 1,234" in content
        assert "Files copied: 120" in content
        assert "Bytes copied: 5,000,000" in content
        assert "Total errors: 1" in content
        assert "Run interrupted; resume with --continue" in content
        assert "Duration: 5m 23s" in content
        assert f"Log file: {log_path}" in content

    @pytest.mark.parametrize(
        "seconds, expected",
        [(45, "45s"), (323.5, "5m 23s"), (3930, "1h 5m 30s")],
    )
    def test_format_duration(self, temp_dir: Path, seconds: float, expected: str):
        run_log = BackupLogger(log_file_path=temp_dir / "run.log")
        assert run_log._format_duration(seconds) == expected
