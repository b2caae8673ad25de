"""Job record data model for the compression pipeline."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from imgcompress.formats import ImageFormat


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class InputUnit(BaseModel):
    """One file as submitted: declared name and type plus raw content.

    ``format`` is filled in by the validator once the content has been
    sniffed; an unvalidated unit has ``format=None``.
    """
    name: str
    media_type: str = ""
    data: bytes = Field(repr=False)
    format: Optional[ImageFormat] = None

    @property
    def size(self) -> int:
        return len(self.data)


class JobStats(BaseModel):
    original_size: int
    optimized_size: int
    time_taken: float  # milliseconds
    # True when the encoder kept the input because re-encoding would not help
    is_original: bool = False

    @property
    def savings_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return round(100.0 * (1 - self.optimized_size / self.original_size), 1)


class JobResult(BaseModel):
    data: bytes = Field(repr=False)
    media_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class JobRecord(BaseModel):
    """Tracks one image from intake to a terminal outcome."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    payload: InputUnit
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    estimated_duration: Optional[int] = None  # ms, advisory
    stats: Optional[JobStats] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # Process-local view handle; never persisted
    preview_handle: Optional[str] = None

    @model_validator(mode="after")
    def _outcome_matches_status(self) -> "JobRecord":
        self.check_invariants()
        return self

    def check_invariants(self) -> None:
        """Raise ValueError unless result/stats exist iff done and error iff error."""
        done = self.status == JobStatus.DONE
        has_outcome = self.result is not None or self.stats is not None
        if done and (self.result is None or self.stats is None):
            raise ValueError(f"job {self.id} is done without result and stats")
        if not done and has_outcome:
            raise ValueError(f"job {self.id} has a result while {self.status.value}")
        if (self.status == JobStatus.ERROR) != (self.error is not None):
            raise ValueError(f"job {self.id} error message does not match status {self.status.value}")

    @property
    def size(self) -> int:
        return self.payload.size

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE, JobStatus.ERROR)
