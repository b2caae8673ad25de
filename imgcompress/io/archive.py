"""Zip archive expansion for batch intake.

One level only: archives inside archives are not opened, and entries that
do not look like images are skipped without counting as rejections.
"""

import io
import logging
import posixpath
import zipfile
from typing import List, Optional

from imgcompress.formats import SUPPORTED_EXTENSIONS, ImageFormat
from imgcompress.jobs.models import InputUnit

logger = logging.getLogger(__name__)

ARCHIVE_MIME_TYPES = ("application/zip", "application/x-zip-compressed")


def is_archive(unit: InputUnit) -> bool:
    return unit.media_type in ARCHIVE_MIME_TYPES or unit.name.lower().endswith(".zip")


def _entry_media_type(name: str) -> str:
    fmt = ImageFormat.from_filename(name)
    return fmt.mime_type if fmt else "application/octet-stream"


def expand_archive(unit: InputUnit, max_entry_bytes: Optional[int] = None) -> List[InputUnit]:
    """Return the image entries of a zip archive as independent input units."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(unit.data))
    except (zipfile.BadZipFile, OSError) as e:
        logger.warning("Failed to unzip %s: %s", unit.name, e)
        return []

    units: List[InputUnit] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            lower = info.filename.lower()
            if not lower.endswith(tuple(f".{ext}" for ext in SUPPORTED_EXTENSIONS)):
                continue
            if max_entry_bytes is not None and info.file_size > max_entry_bytes:
                logger.warning(
                    "Skipping %s in %s: %d bytes exceeds limit",
                    info.filename, unit.name, info.file_size,
                )
                continue
            try:
                data = archive.read(info)
            except (zipfile.BadZipFile, RuntimeError, OSError, EOFError) as e:
                logger.warning("Failed to extract %s from %s: %s", info.filename, unit.name, e)
                continue
            basename = posixpath.basename(info.filename) or info.filename
            units.append(
                InputUnit(
                    name=basename,
                    media_type=_entry_media_type(basename),
                    data=data,
                )
            )
    return units
