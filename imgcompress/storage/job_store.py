"""
SQLite persistence for job records.

One row per job: the record's metadata as JSON plus the original and result
payloads as BLOBs. Writes are last-write-wins per job id; there are no
cross-job transactions.

Every public operation absorbs its own failures (logged, never raised): the
in-memory job set stays authoritative when the disk misbehaves.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from pydantic import ValidationError

from imgcompress.errors import PersistenceError
from imgcompress.jobs import state
from imgcompress.jobs.models import JobRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Fields that never reach the JSON column: binary data has its own columns,
# and view handles are meaningless to any other process.
_JSON_EXCLUDE = {
    "preview_handle": True,
    "payload": {"data": True},
    "result": {"data": True},
}


class JobStore:
    """Durable keyed storage of job records with crash-recovery on load."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        try:
            self._ensure_schema()
        except PersistenceError:
            logger.exception("Job store at %s could not be initialised", db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            current = conn.execute("PRAGMA user_version").fetchone()[0]
            if current < 1:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS jobs (
                        id TEXT PRIMARY KEY,
                        seq INTEGER NOT NULL,
                        record TEXT NOT NULL,
                        payload BLOB NOT NULL,
                        result BLOB
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_seq ON jobs (seq)")
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, job: JobRecord) -> bool:
        """Insert or replace a job. Returns False if the write failed."""
        record = job.model_dump_json(exclude=_JSON_EXCLUDE)
        result = job.result.data if job.result is not None else None
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO jobs (id, seq, record, payload, result)
                    VALUES (?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM jobs), ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        record = excluded.record,
                        payload = excluded.payload,
                        result = excluded.result
                    """,
                    (job.id, record, sqlite3.Binary(job.payload.data),
                     sqlite3.Binary(result) if result is not None else None),
                )
        except PersistenceError:
            logger.exception("Failed to save job %s", job.id)
            return False
        return True

    def delete(self, job_id: str) -> bool:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        except PersistenceError:
            logger.exception("Failed to delete job %s", job_id)
            return False
        return True

    def clear(self) -> bool:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM jobs")
        except PersistenceError:
            logger.exception("Failed to clear job store")
            return False
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_all(self) -> List[JobRecord]:
        """All persisted jobs in insertion order, normalized for recovery.

        A job stored as ``processing`` can only mean the previous process
        died mid-encode, so it comes back ``queued`` with zero progress.
        Rows that no longer parse are dropped. Performs no writes.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id, record, payload, result FROM jobs ORDER BY seq"
                ).fetchall()
        except PersistenceError:
            logger.exception("Failed to load jobs")
            return []

        jobs: List[JobRecord] = []
        for row in rows:
            job = self._decode(row)
            if job is not None:
                jobs.append(state.recover(job))
        return jobs

    def count(self) -> int:
        try:
            with self._connect() as conn:
                return int(conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0])
        except PersistenceError:
            logger.exception("Failed to count jobs")
            return 0

    @staticmethod
    def _decode(row: sqlite3.Row) -> Optional[JobRecord]:
        try:
            doc = json.loads(row["record"])
            doc["payload"]["data"] = bytes(row["payload"])
            if doc.get("result") is not None:
                if row["result"] is None:
                    raise ValueError("result metadata without result data")
                doc["result"]["data"] = bytes(row["result"])
            return JobRecord.model_validate(doc)
        except (ValidationError, ValueError, TypeError, KeyError) as e:
            logger.warning("Dropping unreadable job record %s: %s", row["id"], e)
            return None
