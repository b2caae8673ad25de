"""Deterministic duration heuristic used to drive advisory progress."""

from datetime import datetime
from typing import Optional

from imgcompress.formats import ImageFormat, OutputFormat
from imgcompress.jobs.models import JobRecord, JobStatus, utcnow
from imgcompress.jobs.options import OptimizerConfig, ResizeMode

MAX_ESTIMATE_MS = 60_000

# Format cost multipliers relative to PNG
_FORMAT_FACTORS = {
    OutputFormat.PNG: 1.0,
    OutputFormat.WEBP: 1.0,
    OutputFormat.JPEG: 1.0,
    OutputFormat.AVIF: 2.5,
    OutputFormat.QOI: 0.5,
    OutputFormat.JXL: 1.0,
}
if set(_FORMAT_FACTORS) != set(OutputFormat):
    raise RuntimeError("_FORMAT_FACTORS must cover every OutputFormat")


def estimate_duration(
    size_bytes: int,
    source_format: Optional[ImageFormat],
    config: OptimizerConfig,
) -> int:
    """Estimated encode time in milliseconds.

    ``config`` must already be the effective config for the job, i.e. with
    ``maintain_original_format`` resolved.
    """
    size_mb = size_bytes / (1024 * 1024)
    resizing = config.resize.mode != ResizeMode.OFF

    fast_path = (
        source_format is ImageFormat.PNG
        and config.output_format is OutputFormat.PNG
        and not resizing
        and not config.palette.enabled
    )
    if fast_path:
        return round(200 + size_mb * 100)

    duration = 1500 + size_mb * 3000
    duration *= 1 + config.level * 0.1
    if config.palette.enabled:
        duration *= 2.0
    if resizing:
        duration *= 1.3
    duration *= _FORMAT_FACTORS[config.output_format]
    if config.output_format is not OutputFormat.PNG and config.is_lossless():
        duration *= 1.5

    return min(round(duration), MAX_ESTIMATE_MS)


def estimated_progress(job: JobRecord, now: Optional[datetime] = None) -> int:
    """Advisory 0-100 progress for display.

    Eases out over ``estimated_duration`` and holds at 95 until the encoder
    actually reports back.
    """
    if job.status in (JobStatus.DONE, JobStatus.ERROR):
        return 100
    if job.status == JobStatus.QUEUED or job.started_at is None:
        return 0
    total = job.estimated_duration or 5000
    elapsed_ms = ((now or utcnow()) - job.started_at).total_seconds() * 1000
    t = max(0.0, min(1.0, elapsed_ms / total))
    eased = 1 - (1 - t) ** 3
    return min(95, int(eased * 100))
