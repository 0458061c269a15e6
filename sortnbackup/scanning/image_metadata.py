"""Image metadata decoding with Pillow.

The format is sniffed from the file contents, so a JPEG named ``photo.png``
still decodes and a text file named ``photo.jpg`` does not.

Example:
    >>> from sortnbackup.scanning.image_metadata import read_image_metadata
    >>> meta = read_image_metadata(Path("photo.jpg"))
    >>> if meta is not None:
    ...     print(meta.width, meta.height, meta.date_time)
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from sortnbackup.exceptions import MetadataError

# EXIF tag ids
EXIF_IFD_POINTER = 0x8769
TAG_DATE_TIME = 0x0132
TAG_DATE_TIME_ORIGINAL = 0x9003
TAG_DATE_TIME_DIGITIZED = 0x9004

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


@dataclass(frozen=True)
class ImageMetadata:
    """Facts decoded from an image file."""
    width: int
    height: int
    format: Optional[str] = None             # Pillow format name, e.g. "JPEG"
    date_time: Optional[datetime] = None     # Embedded capture time, if any


def read_image_metadata(path: Path) -> Optional[ImageMetadata]:
    """Decode dimensions and capture time of an image.

    Args:
        path: File to decode.

    Returns:
        ImageMetadata, or None if the file is not an image.

    Raises:
        MetadataError: If the file looks like an image but cannot be decoded,
            or cannot be opened at all.
    """
    try:
        with Image.open(path) as image:
            width, height = image.size
            return ImageMetadata(
                width=width,
                height=height,
                format=image.format,
                date_time=_capture_time(image),
            )
    except UnidentifiedImageError:
        return None
    except (OSError, ValueError, SyntaxError) as e:
        # Pillow reports broken headers as OSError and some plugins as
        # SyntaxError/ValueError.
        raise MetadataError(f"cannot decode image {path.name}: {e}") from e


def _capture_time(image: Image.Image) -> Optional[datetime]:
    """Return the first parseable EXIF timestamp, preferring the original capture time."""
    try:
        exif = image.getexif()
    except (OSError, ValueError, SyntaxError):
        return None
    if not exif:
        return None

    candidates = []
    try:
        exif_ifd = exif.get_ifd(EXIF_IFD_POINTER)
    except (KeyError, OSError, ValueError):
        exif_ifd = {}
    candidates.append(exif_ifd.get(TAG_DATE_TIME_ORIGINAL))
    candidates.append(exif_ifd.get(TAG_DATE_TIME_DIGITIZED))
    candidates.append(exif.get(TAG_DATE_TIME))

    for value in candidates:
        parsed = _parse_exif_datetime(value)
        if parsed is not None:
            return parsed
    return None


def _parse_exif_datetime(value) -> Optional[datetime]:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if not isinstance(value, str):
        return None
    value = value.strip().rstrip("\x00")
    try:
        return datetime.strptime(value, EXIF_DATE_FORMAT)
    except ValueError:
        return None
