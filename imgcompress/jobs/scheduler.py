"""Priority-ordered, concurrency-bounded job scheduler.

There is no background worker loop. Every operation that changes the job
set (submit, completion, removal, settings change) ends with a synchronous
``reconcile()`` that fills free slots with the smallest queued jobs. Encodes
run in a thread pool via ``run_in_executor``; job store writes go through a
single-worker pool so writes for one job land in the order they were made.

All public methods must be called from the event loop thread.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from imgcompress.encoders.base import CancelToken, EncodeResult, Encoder
from imgcompress.errors import EncodeCancelled
from imgcompress.formats import ImageFormat, format_bytes
from imgcompress.io.validator import validate_batch
from imgcompress.jobs import state
from imgcompress.jobs.estimate import estimate_duration
from imgcompress.jobs.models import InputUnit, JobRecord, JobResult, JobStatus
from imgcompress.jobs.options import OptimizerConfig
from imgcompress.storage.job_store import JobStore
from imgcompress.storage.resources import INSPECTION_SCOPE, ResourceManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InspectionView:
    job_id: str
    original: Optional[str]
    optimized: Optional[str]


class JobScheduler:
    """Owns the job set and is its only writer."""

    def __init__(
        self,
        encoder: Encoder,
        resources: ResourceManager,
        store: Optional[JobStore] = None,
        config: Optional[OptimizerConfig] = None,
        encoder_threads: int = 8,
        max_upload_bytes: Optional[int] = None,
    ):
        self._encoder = encoder
        self._resources = resources
        self._store = store
        self._config = config or OptimizerConfig()
        self._max_upload_bytes = max_upload_bytes

        self._jobs: Dict[str, JobRecord] = {}
        self._seq: Dict[str, int] = {}
        self._next_seq = 0
        self._tasks: Dict[str, asyncio.Task] = {}
        self._pending_writes: Set[asyncio.Future] = set()
        self._inspection: Optional[InspectionView] = None
        self._restoring = False
        self._closed = False

        self._encode_pool = ThreadPoolExecutor(max_workers=encoder_threads, thread_name_prefix="encode")
        self._store_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="jobstore")

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def jobs(self) -> Tuple[JobRecord, ...]:
        """Current jobs in submission order."""
        return tuple(self._jobs.values())

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    @property
    def config(self) -> OptimizerConfig:
        return self._config

    @property
    def resources(self) -> ResourceManager:
        return self._resources

    @property
    def encoder(self) -> Encoder:
        return self._encoder

    @property
    def active_count(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status == JobStatus.PROCESSING)

    @property
    def queued_count(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status == JobStatus.QUEUED)

    @property
    def is_busy(self) -> bool:
        return self.active_count > 0

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def submit(self, units: Iterable[InputUnit]) -> int:
        """Validate and enqueue a batch. Returns the number of rejected inputs."""
        _, rejected = await self.enqueue(units)
        return rejected

    async def enqueue(self, units: Iterable[InputUnit]) -> Tuple[List[str], int]:
        """Like ``submit`` but also returns the ids of the jobs created."""
        loop = asyncio.get_running_loop()
        batch = list(units)
        result = await loop.run_in_executor(None, validate_batch, batch, self._max_upload_bytes)

        job_ids = []
        for unit in result.accepted:
            job = JobRecord(payload=unit)
            handle = self._resources.allocate(job.id, unit.data, unit.media_type)
            job = job.model_copy(update={"preview_handle": handle})
            self._add(job)
            self._persist(self._store_save, job)
            job_ids.append(job.id)

        logger.info(
            "Accepted %d file(s), rejected %d", len(result.accepted), result.rejected_count
        )
        self.reconcile()
        return job_ids, result.rejected_count

    async def restore(self) -> int:
        """Reload persisted jobs from the store. Returns the number restored."""
        if self._store is None or self._config.disable_storage:
            return 0
        self._restoring = True
        restored = 0
        try:
            loop = asyncio.get_running_loop()
            records = await loop.run_in_executor(self._store_pool, self._store.load_all)
            for record in records:
                if record.id in self._jobs:
                    continue
                handle = self._resources.allocate(
                    record.id, record.payload.data, record.payload.media_type
                )
                self._add(record.model_copy(update={"preview_handle": handle}))
                restored += 1
        finally:
            self._restoring = False
        if restored:
            logger.info("Restored %d job(s) from previous session", restored)
        self.reconcile()
        return restored

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def reconcile(self) -> List[str]:
        """Dispatch queued jobs into free slots. Returns the ids dispatched."""
        if self._restoring or self._closed:
            return []

        # Vector inputs never reach the encoder and need no slot
        for job in [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]:
            if job.payload.format is not None and job.payload.format.is_vector:
                self._pass_through(job)

        queued = [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]
        # An encode abandoned by remove() keeps its slot until the thread returns
        in_flight = max(self.active_count, len(self._tasks))
        slots = self._config.concurrency - in_flight
        if not queued or slots <= 0:
            return []

        queued.sort(key=lambda j: (j.size, self._seq[j.id]))
        dispatched = []
        for job in queued[:slots]:
            self._dispatch(job)
            dispatched.append(job.id)
        return dispatched

    def _dispatch(self, job: JobRecord) -> None:
        source = job.payload.format
        effective = self._config.effective_for(source) if source else self._config
        estimate = estimate_duration(job.size, source, effective)

        started = state.start(job, estimate)
        self._replace(started)
        self._persist(self._store_save, started)

        token = self._encoder.new_token()
        loop = asyncio.get_running_loop()
        self._tasks[job.id] = loop.create_task(
            self._run(job.id, job.payload.data, source, effective, token)
        )

    def _pass_through(self, job: JobRecord) -> None:
        payload = job.payload
        result = JobResult(data=payload.data, media_type=payload.media_type or payload.format.mime_type)
        done = state.complete(job, result, time_taken=0, is_original=True)
        self._replace(done)
        self._persist(self._store_save, done)

    async def _run(
        self,
        job_id: str,
        data: bytes,
        source: Optional[ImageFormat],
        config: OptimizerConfig,
        token: CancelToken,
    ) -> None:
        loop = asyncio.get_running_loop()
        try:
            outcome = await loop.run_in_executor(
                self._encode_pool, self._encoder.encode, data, source, config, token
            )
        except EncodeCancelled as e:
            self._finish_failed(job_id, str(e), cancelled=True)
        except Exception as e:
            # The encoder is a black box: anything it raises fails this job only
            self._finish_failed(job_id, str(e) or type(e).__name__, cancelled=False)
        else:
            self._finish_done(job_id, outcome)
        finally:
            self._tasks.pop(job_id, None)
            self.reconcile()

    def _current_processing(self, job_id: str) -> Optional[JobRecord]:
        if self._closed:
            return None
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            logger.debug("Discarding encode outcome for removed job %s", job_id)
            return None
        return job

    def _finish_done(self, job_id: str, outcome: EncodeResult) -> None:
        job = self._current_processing(job_id)
        if job is None:
            return
        result = JobResult(data=outcome.data, media_type=outcome.format.mime_type)
        done = state.complete(job, result, time_taken=outcome.elapsed_ms, is_original=outcome.is_original)
        self._replace(done)
        self._persist(self._store_save, done)
        logger.info(
            "Job %s (%s) done: %s -> %s in %.0f ms",
            job_id, job.payload.name, format_bytes(job.size), format_bytes(result.size),
            outcome.elapsed_ms,
        )

    def _finish_failed(self, job_id: str, message: str, cancelled: bool) -> None:
        job = self._current_processing(job_id)
        if job is None:
            return
        if cancelled:
            logger.debug("Job %s cancelled", job_id)
        else:
            logger.error("Job %s (%s) failed: %s", job_id, job.payload.name, message)
        failed = state.fail(job, message)
        self._replace(failed)
        self._persist(self._store_save, failed)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, job_id: str) -> bool:
        """Drop one job in any state.

        An in-flight encode finishes unobserved but holds its slot until then.
        """
        removed = self._drop(job_id)
        if removed:
            self.reconcile()
        return removed

    def clear_completed(self) -> int:
        finished = [j.id for j in self._jobs.values() if j.is_terminal]
        for job_id in finished:
            self._drop(job_id)
        self.reconcile()
        return len(finished)

    def clear_all(self) -> int:
        """Cancel outstanding encodes and drop every job."""
        self._encoder.cancel_all()
        count = len(self._jobs)
        for job_id in list(self._jobs):
            self._resources.release(job_id)
        self._jobs.clear()
        self._seq.clear()
        self.close_inspection()
        if self._store is not None:
            self._persist(self._store.clear)
        return count

    def _drop(self, job_id: str) -> bool:
        self._resources.release(job_id)
        job = self._jobs.pop(job_id, None)
        self._seq.pop(job_id, None)
        if self._inspection is not None and self._inspection.job_id == job_id:
            self.close_inspection()
        if job is None:
            return False
        if self._store is not None:
            self._persist(self._store.delete, job_id)
        return True

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_config(self, config: OptimizerConfig) -> None:
        previous = self._config
        if config.disable_storage and not previous.disable_storage and self._store is not None:
            # Going incognito wipes what was stored; nothing is written after this
            self._persist(self._store.clear)
        self._config = config
        if previous.disable_storage and not config.disable_storage:
            for job in self._jobs.values():
                self._persist(self._store_save, job)
        self.reconcile()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def inspect(self, job_id: str) -> Optional[InspectionView]:
        """Allocate a comparison view for a finished job, replacing any previous one."""
        job = self._jobs.get(job_id)
        if job is None or job.result is None:
            return None
        self.close_inspection()
        fmt = ImageFormat.from_mime(job.result.media_type)
        if fmt is not None and fmt.previewable:
            optimized = self._resources.allocate(INSPECTION_SCOPE, job.result.data, job.result.media_type)
        else:
            optimized = job.preview_handle
        self._inspection = InspectionView(job_id=job_id, original=job.preview_handle, optimized=optimized)
        return self._inspection

    def close_inspection(self) -> None:
        self._resources.release(INSPECTION_SCOPE)
        self._inspection = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self, poll_interval: float = 0.01) -> None:
        """Wait until nothing is queued or processing, then flush the store."""
        while self._tasks or (self.queued_count and not self._closed):
            await asyncio.sleep(poll_interval)
        await self.flush()

    async def flush(self) -> None:
        """Wait for outstanding job store writes."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop dispatching, abandon in-flight encodes and release every view.

        Jobs still processing keep that status in the store, so the next
        start recovers them as queued.
        """
        self._closed = True
        self._encoder.cancel_all()
        tasks = list(self._tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        await self.flush()
        self._store_pool.shutdown(wait=True)
        self._encode_pool.shutdown(wait=False, cancel_futures=True)
        self._resources.release_all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(self, job: JobRecord) -> None:
        self._jobs[job.id] = job
        self._seq[job.id] = self._next_seq
        self._next_seq += 1

    def _replace(self, job: JobRecord) -> None:
        self._jobs[job.id] = job

    def _store_save(self, job: JobRecord) -> None:
        if self._store is not None:
            self._store.save(job)

    def _persist(self, op: Callable[..., Any], *args: Any) -> None:
        """Fire-and-forget a job store call on the writer thread."""
        if self._store is None or self._config.disable_storage:
            return
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(self._store_pool, op, *args)
        self._pending_writes.add(fut)
        fut.add_done_callback(self._write_done)

    def _write_done(self, fut: asyncio.Future) -> None:
        self._pending_writes.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Job store write failed: %s", exc)
