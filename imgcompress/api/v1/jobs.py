"""Job management API: list, inspect, download and remove jobs."""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Response

from imgcompress.jobs.estimate import estimated_progress
from imgcompress.jobs.models import JobRecord, JobStatus
from imgcompress.naming import download_filename

router = APIRouter()

# Set by main.py during lifespan
_scheduler = None


def set_scheduler(scheduler):
    global _scheduler
    _scheduler = scheduler


def _require_scheduler():
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialized")
    return _scheduler


def view_url(token: Optional[str]) -> Optional[str]:
    return f"/api/v1/views/{token}" if token else None


def job_summary(job: JobRecord) -> dict:
    """Wire shape of one job. Payload and result bytes are never inlined."""
    response = {
        "job_id": job.id,
        "name": job.payload.name,
        "format": job.payload.format.value if job.payload.format else None,
        "status": job.status.value,
        "progress": estimated_progress(job),
        "estimated_duration": job.estimated_duration,
        "original_size": job.size,
        "created_at": job.created_at.isoformat(),
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "preview_url": view_url(job.preview_handle),
    }

    if job.status == JobStatus.DONE and job.stats:
        response["stats"] = {
            "original_size": job.stats.original_size,
            "optimized_size": job.stats.optimized_size,
            "time_taken": job.stats.time_taken,
            "is_original": job.stats.is_original,
            "savings_percent": job.stats.savings_percent,
        }
        response["result_media_type"] = job.result.media_type
        response["download_url"] = f"/api/v1/jobs/{job.id}/download"

    if job.status == JobStatus.ERROR:
        response["error"] = job.error

    return response


@router.get("/status")
async def get_status():
    """Pipeline-wide counters for polling clients."""
    scheduler = _require_scheduler()
    return {
        "is_busy": scheduler.is_busy,
        "active": scheduler.active_count,
        "queued": scheduler.queued_count,
        "total": len(scheduler.jobs),
        "is_restoring": scheduler.is_restoring,
    }


@router.get("/jobs")
async def list_jobs():
    scheduler = _require_scheduler()
    return {"jobs": [job_summary(job) for job in scheduler.jobs]}


@router.post("/jobs/clear-completed")
async def clear_completed():
    """Remove every job that finished, successfully or not."""
    scheduler = _require_scheduler()
    return {"removed": scheduler.clear_completed()}


@router.post("/jobs/clear-all")
async def clear_all():
    """Cancel outstanding encodes and remove every job."""
    scheduler = _require_scheduler()
    return {"removed": scheduler.clear_all()}


@router.delete("/jobs/inspection")
async def close_inspection():
    scheduler = _require_scheduler()
    scheduler.close_inspection()
    return {"closed": True}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str):
    scheduler = _require_scheduler()
    job = scheduler.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_summary(job)


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    scheduler = _require_scheduler()
    if not scheduler.remove(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"job_id": job_id, "removed": True}


@router.get("/jobs/{job_id}/download")
async def download_job(job_id: str):
    """Stream the encoded result under its renamed file name."""
    scheduler = _require_scheduler()
    job = scheduler.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.status != JobStatus.DONE or job.result is None:
        raise HTTPException(status_code=409, detail=f"Job is {job.status.value}, no result yet")

    filename = download_filename(job, scheduler.jobs, scheduler.config.renaming)
    return Response(
        content=job.result.data,
        media_type=job.result.media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.get("/jobs/{job_id}/inspect")
async def inspect_job(job_id: str):
    """Open the side-by-side comparison view for a finished job."""
    scheduler = _require_scheduler()
    job = scheduler.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    view = scheduler.inspect(job_id)
    if view is None:
        raise HTTPException(status_code=409, detail="Only finished jobs can be inspected")
    return {
        "job_id": job_id,
        "original_url": view_url(view.original),
        "optimized_url": view_url(view.optimized),
        "stats": job_summary(job).get("stats"),
    }
