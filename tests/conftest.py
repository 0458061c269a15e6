"""Pytest fixtures for sortnbackup tests."""

import io
import os
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Generator, Optional

import pytest
from PIL import Image
from rich.console import Console

from sortnbackup.config import build_config
from sortnbackup.models import BackupConfig, Entry, Source
from sortnbackup.scanning import MetadataCache
from sortnbackup.ui import BackupTUI

# EXIF tag holding "YYYY:MM:DD HH:MM:SS"
EXIF_DATE_TIME = 0x0132


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line("markers", "integration: tests running against a real file tree")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for isolated test environments.

    Yields:
        Path to the temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def write_jpeg(
    path: Path,
    size=(400, 300),
    date_time: Optional[datetime] = None,
) -> Path:
    """Write a small JPEG, optionally with an EXIF DateTime tag.

    Args:
        path: Destination file; parent folders are created.
        size: (width, height) in pixels.
        date_time: Capture time to embed.

    Returns:
        The written path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color=(200, 120, 40))
    if date_time is not None:
        exif = Image.Exif()
        exif[EXIF_DATE_TIME] = date_time.strftime("%Y:%m:%d %H:%M:%S")
        image.save(path, format="JPEG", exif=exif)
    else:
        image.save(path, format="JPEG")
    return path


def write_png(path: Path, size=(50, 50)) -> Path:
    """Write a small PNG without metadata."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=(10, 200, 90)).save(path, format="PNG")
    return path


def make_entry(root: Path, relative: str, source_id: str = "src") -> Entry:
    """Create an Entry for a path below ``root``."""
    return Entry(source_id, root, PurePosixPath(relative))


@pytest.fixture
def jpeg_factory() -> Callable[..., Path]:
    """Return the JPEG writer helper."""
    return write_jpeg


@pytest.fixture
def png_factory() -> Callable[..., Path]:
    """Return the PNG writer helper."""
    return write_png


@pytest.fixture
def cache() -> MetadataCache:
    """Return an empty MetadataCache."""
    return MetadataCache()


@pytest.fixture
def photo_tree(temp_dir: Path) -> Dict[str, Path]:
    """Create a small source tree with photos, thumbnails, documents and a cache folder.

    Creates:
        temp_dir/
        ├── source/
        │   ├── DCIM/
        │   │   ├── photo.jpg       (400x300, EXIF 2020-01-02 10:00:00)
        │   │   └── nodate.jpg      (400x300, no EXIF)
        │   ├── thumbs/
        │   │   └── thumb.png       (50x50)
        │   ├── docs/
        │   │   └── notes.txt
        │   ├── .cache/
        │   │   └── junk.bin        (excluded)
        │   └── readme.md
        └── backup/                 (empty target)

    Returns:
        Dictionary with 'source', 'backup' and 'base' paths.
    """
    source = temp_dir / "source"
    write_jpeg(source / "DCIM" / "photo.jpg", date_time=datetime(2020, 1, 2, 10, 0, 0))
    write_jpeg(source / "DCIM" / "nodate.jpg")
    write_png(source / "thumbs" / "thumb.png")
    (source / "docs").mkdir()
    (source / "docs" / "notes.txt").write_text("meeting notes")
    (source / ".cache").mkdir()
    (source / ".cache" / "junk.bin").write_bytes(b"\x00" * 64)
    (source / "readme.md").write_text("# readme")

    backup = temp_dir / "backup"
    backup.mkdir()

    return {"base": temp_dir, "source": source, "backup": backup}


def photo_config_data(journal: str = "backup.journal") -> Dict[str, Any]:
    """Configuration used by the end-to-end tests, relative to the tree's base directory.

    Images with a capture time go to Images/<year-month>/<day>/, small images
    to Thumbnails/<extension>/, text files are logged, everything else is
    copied as is and all folders are traversed.
    """
    return {
        "settings": {
            "collision_policy": "rename",
            "journal_path": journal,
        },
        "sources": {
            "src": {"path": "source", "ignore_paths": [".cache"]},
        },
        "targets": {
            "backup": "backup",
        },
        "file_groups": {
            "folders": {"filter": "is_dir", "rule": "traverse"},
            "dated_images": {
                "filter": {"all": [
                    {"has_extension": ["jpg", "jpeg"]},
                    "has_img_date_time",
                ]},
                "rule": {"copy_to": {
                    "target": "backup",
                    "path": [
                        {"file_name": "Images"},
                        {"img_date_time": "%Y-%m"},
                        {"img_date_time": "%d"},
                        "file_name_with_extension",
                    ],
                }},
            },
            "thumbnails": {
                "filter": {"all": [
                    {"has_extension": ["png", "jpg"]},
                    {"img_size": {"max": 100}},
                ]},
                "rule": {"copy_to": {
                    "target": "backup",
                    "path": [
                        {"file_name": "Thumbnails"},
                        "file_extension",
                        "file_name_with_extension",
                    ],
                }},
            },
            "text": {
                "filter": {"has_extension": "txt"},
                "rule": {"log_file": {
                    "target": "backup",
                    "log_file": [{"file_name": "text-files.log"}],
                }},
            },
            "rest": {"filter": "catch_all", "rule": {"copy_exact": "backup"}},
        },
    }


@pytest.fixture
def photo_config(photo_tree: Dict[str, Path]) -> BackupConfig:
    """Build the end-to-end configuration for ``photo_tree``."""
    return build_config(photo_config_data(), base_dir=photo_tree["base"])


@pytest.fixture
def source(temp_dir: Path) -> Source:
    """A source rooted at temp_dir/source (created)."""
    root = temp_dir / "source"
    root.mkdir(exist_ok=True)
    return Source(id="src", path=root)


@pytest.fixture
def tui_with_captured_output() -> BackupTUI:
    """Create a BackupTUI instance with Console output captured to StringIO.

    Access captured output via: tui.console.file.getvalue()

    Returns:
        BackupTUI instance with StringIO-backed Console for output inspection.
    """
    output = io.StringIO()
    console = Console(file=output, force_terminal=False, width=160)
    return BackupTUI(console=console)


def set_mtime(path: Path, when: datetime) -> None:
    """Set access and modification time of ``path``."""
    timestamp = when.timestamp()
    os.utime(path, (timestamp, timestamp))
