"""Download file naming."""

import re
from datetime import date
from typing import Optional, Sequence

from imgcompress.formats import ImageFormat
from imgcompress.jobs.models import JobRecord
from imgcompress.jobs.options import RenamingOptions

MAX_NAME_LENGTH = 200
FALLBACK_NAME = "optimized_image"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f\x80-\x9f\u200b-\u200d\ufeff]")
_RESERVED_CHARS = re.compile(r'[/\\?%*:|"<>]')


def generate_filename(
    original: str,
    pattern: str,
    sequence: int,
    today: Optional[date] = None,
) -> str:
    """Expand a renaming pattern into a safe base name (no extension).

    Placeholders: ``{o}`` original base name, ``{n}`` sequence number,
    ``{d}`` ISO date.
    """
    base = re.sub(r"\.[^/.]+$", "", original)
    day = (today or date.today()).isoformat()

    name = pattern.replace("{o}", base).replace("{n}", str(sequence)).replace("{d}", day)
    name = _CONTROL_CHARS.sub("", name)
    name = _RESERVED_CHARS.sub("-", name)
    name = name.strip(".")
    name = name[:MAX_NAME_LENGTH]

    if not name.strip():
        return FALLBACK_NAME
    return name


def sequence_index(job_id: str, jobs: Sequence[JobRecord], start: int) -> int:
    """Rank of a job by ascending size, offset by ``start`` (0 counts as 1)."""
    ordered = sorted(jobs, key=lambda j: j.size)
    position = next((i for i, j in enumerate(ordered) if j.id == job_id), -1)
    return position + (start or 1)


def download_filename(job: JobRecord, jobs: Sequence[JobRecord], renaming: RenamingOptions) -> str:
    """Full file name (with extension) for a completed job's result."""
    seq = sequence_index(job.id, jobs, renaming.start_sequence)
    name = generate_filename(job.payload.name, renaming.pattern, seq)
    fmt = ImageFormat.from_mime(job.result.media_type) if job.result else None
    extension = fmt.extension if fmt else ImageFormat.PNG.extension
    return f"{name}.{extension}"
