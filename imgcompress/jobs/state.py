"""
State transition rules for jobs.

Job lifecycle: QUEUED -> PROCESSING -> DONE | ERROR
Vector inputs skip the encoder: QUEUED -> DONE.

DONE and ERROR are terminal. Removing a job is not a transition; the
record simply leaves the job set.
"""

from datetime import datetime
from typing import Any, FrozenSet, Optional, Set, Tuple

from imgcompress.errors import InvalidStateTransitionError
from imgcompress.jobs.models import JobRecord, JobStats, JobStatus, JobResult, utcnow


TERMINAL_STATES: FrozenSet[JobStatus] = frozenset({JobStatus.DONE, JobStatus.ERROR})

_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    (JobStatus.QUEUED, JobStatus.PROCESSING),
    (JobStatus.QUEUED, JobStatus.DONE),
    (JobStatus.PROCESSING, JobStatus.DONE),
    (JobStatus.PROCESSING, JobStatus.ERROR),
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATES


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """Check if a job state transition is legal."""
    if is_terminal(from_status):
        return False
    return (from_status, to_status) in _TRANSITIONS


def assert_transition(job: JobRecord, to_status: JobStatus) -> None:
    if not can_transition(job.status, to_status):
        raise InvalidStateTransitionError(job.id, job.status.value, to_status.value)


def _apply(job: JobRecord, to_status: JobStatus, **changes: Any) -> JobRecord:
    assert_transition(job, to_status)
    updated = job.model_copy(update={"status": to_status, **changes})
    updated.check_invariants()
    return updated


def start(job: JobRecord, estimated_duration: int, now: Optional[datetime] = None) -> JobRecord:
    """queued -> processing."""
    return _apply(
        job,
        JobStatus.PROCESSING,
        progress=0,
        estimated_duration=estimated_duration,
        started_at=now or utcnow(),
    )


def complete(
    job: JobRecord,
    result: JobResult,
    time_taken: float,
    is_original: bool,
    now: Optional[datetime] = None,
) -> JobRecord:
    """processing -> done (or queued -> done for the vector bypass)."""
    stats = JobStats(
        original_size=job.size,
        optimized_size=result.size,
        time_taken=time_taken,
        is_original=is_original,
    )
    return _apply(
        job,
        JobStatus.DONE,
        progress=100,
        result=result,
        stats=stats,
        completed_at=now or utcnow(),
    )


def fail(job: JobRecord, message: str, now: Optional[datetime] = None) -> JobRecord:
    """processing -> error."""
    return _apply(
        job,
        JobStatus.ERROR,
        progress=100,
        error=message or "Unknown error",
        completed_at=now or utcnow(),
    )


def recover(job: JobRecord) -> JobRecord:
    """Demote a record found mid-processing after a restart.

    Not an edge of the state machine: nothing is executing the job any more,
    so it goes back to the queue as if it had never been dispatched.
    """
    if job.status != JobStatus.PROCESSING:
        return job
    return job.model_copy(
        update={
            "status": JobStatus.QUEUED,
            "progress": 0,
            "started_at": None,
            "estimated_duration": None,
        }
    )
