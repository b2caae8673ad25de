"""Auto-download notifications.

Clients poll ``/auto-download/next`` and download whatever comes back.
Which jobs have already been announced is tracked here, outside the job
records, so the scheduler's data stays free of presentation state.
"""

from typing import Iterable, Optional, Set

from fastapi import APIRouter, HTTPException, Response

from imgcompress.api.v1.jobs import job_summary
from imgcompress.jobs.models import JobRecord, JobStatus

router = APIRouter()

_scheduler = None


class NotificationTracker:
    """Remembers which finished jobs a client has been told about."""

    def __init__(self) -> None:
        self._notified: Set[str] = set()

    def next_pending(self, jobs: Iterable[JobRecord]) -> Optional[JobRecord]:
        """Mark and return the first done job not yet announced.

        Ids of jobs that have left the job set are forgotten on the way.
        """
        jobs = list(jobs)
        self._notified &= {job.id for job in jobs}
        for job in jobs:
            if job.status == JobStatus.DONE and job.id not in self._notified:
                self._notified.add(job.id)
                return job
        return None

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._notified


tracker = NotificationTracker()


def set_scheduler(scheduler):
    global _scheduler
    _scheduler = scheduler


@router.get("/auto-download/next")
async def next_auto_download():
    """Next finished job to download, or 204 when there is none.

    Always 204 while auto-download is switched off in the settings.
    """
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialized")
    if not _scheduler.config.auto_download:
        return Response(status_code=204)
    job = tracker.next_pending(_scheduler.jobs)
    if job is None:
        return Response(status_code=204)
    return job_summary(job)
