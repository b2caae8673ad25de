"""Batch upload endpoint.

Files are read fully into memory; validation (signature sniffing, archive
expansion, SVG sanitizing) happens inside the scheduler, so the response
only reports how many inputs made it into the queue.
"""

from typing import List

from fastapi import APIRouter, File, HTTPException, UploadFile

from imgcompress.config import settings
from imgcompress.formats import format_bytes
from imgcompress.jobs.models import InputUnit

router = APIRouter()

# Wired in during lifespan (same pattern as jobs.py)
_scheduler = None


def set_scheduler(scheduler):
    global _scheduler
    _scheduler = scheduler


async def _read_limited(file: UploadFile, limit: int) -> bytes:
    chunks = []
    total = 0
    while True:
        chunk = await file.read(1024 * 1024)  # 1 MB chunks
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=413,
                detail=f"{file.filename or 'upload'} is too large (max {format_bytes(limit)})",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/upload")
async def upload_images(files: List[UploadFile] = File(...)):
    """Accept images and zip archives of images, and queue them.

    Returns:
        {accepted, rejected, job_ids}
    """
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialized")

    units = []
    for file in files:
        data = await _read_limited(file, settings.max_upload_bytes)
        units.append(
            InputUnit(
                name=file.filename or "upload",
                media_type=file.content_type or "",
                data=data,
            )
        )

    job_ids, rejected = await _scheduler.enqueue(units)
    return {"accepted": len(job_ids), "rejected": rejected, "job_ids": job_ids}
