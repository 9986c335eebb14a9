"""
SQLite-backed job store.

Single source of truth for job records within one server process.

Rules:
- get() always reads the database; the in-memory mirror is never trusted
  for reads that feed clients
- update() merges into the LATEST stored record inside one write
  transaction, so interleaved writers never lose fields
- Terminal jobs are never rewritten
- Records are removed only by sweep()

One database file per data directory. Concurrent multi-process writers
are serialized by SQLite's own locking; there is no job queue here.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import ValidationError

from .errors import JobStoreError, JobValidationError
from .models import Job, JobStatus, utc_now
from .state import TERMINAL_JOB_STATES, validate_job_transition

logger = logging.getLogger(__name__)


DEFAULT_DB_NAME = "jobs.db"
BUSY_TIMEOUT_SECONDS = 5.0


class JobStore:
    """
    Durable job records with a write-through in-process mirror.

    The mirror (cached()) holds the last snapshot this process wrote and
    is only a fast path for writers deciding whether a write is needed.
    """

    def __init__(self, db_path: Path, clock: Callable[[], datetime] = utc_now):
        """
        Initialize job store.

        Args:
            db_path: Path to the SQLite database file (created if missing)
            clock: Source of "now" for timestamps and sweeps
        """
        self.db_path = Path(db_path)
        self._clock = clock
        self._cache: Dict[str, Job] = {}
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connect(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """One connection per operation; commits on success, rolls back on error."""
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=BUSY_TIMEOUT_SECONDS,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise JobStoreError(f"Cannot open job database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise JobStoreError(f"Job database operation failed: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect(immediate=True) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_ts REAL NOT NULL,
                    updated_ts REAL NOT NULL,
                    payload TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status_updated
                ON jobs (status, updated_ts)
            """)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        try:
            return Job.model_validate_json(row["payload"])
        except ValidationError as e:
            raise JobStoreError(f"Corrupt job record {row['id']}: {e}") from e

    @staticmethod
    def _write(conn: sqlite3.Connection, job: Job) -> None:
        conn.execute(
            """
            INSERT INTO jobs (id, status, created_ts, updated_ts, payload)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                updated_ts = excluded.updated_ts,
                payload = excluded.payload
            """,
            (
                job.id,
                job.status.value,
                job.created_at.timestamp(),
                job.updated_at.timestamp(),
                job.model_dump_json(by_alias=True),
            ),
        )

    @staticmethod
    def _load(conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
        row = conn.execute("SELECT id, payload FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return JobStore._row_to_job(row) if row else None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self) -> Job:
        """
        Allocate a new QUEUED job and persist it immediately.

        Returns:
            The new job (progress 0)
        """
        now = self._clock()
        job = Job(status=JobStatus.QUEUED, progress=0, created_at=now, updated_at=now)
        with self._connect(immediate=True) as conn:
            exists = conn.execute("SELECT 1 FROM jobs WHERE id = ?", (job.id,)).fetchone()
            if exists:
                raise JobStoreError(f"Job id collision: {job.id}")
            self._write(conn, job)
        self._cache[job.id] = job
        logger.info(f"[Jobs] Job created: {job.id}")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        """
        Retrieve the freshest stored state of a job.

        Args:
            job_id: The job ID

        Returns:
            The job if found, None otherwise
        """
        if not job_id:
            return None
        with self._connect() as conn:
            job = self._load(conn, job_id)
        if job is None:
            self._cache.pop(job_id, None)
        else:
            self._cache[job_id] = job
        return job

    def cached(self, job_id: str) -> Optional[Job]:
        """Last snapshot written or read by this process (may be stale)."""
        return self._cache.get(job_id)

    def update(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Merge fields into a job and persist it.

        - Unknown job: returns None (callers must check)
        - Terminal job: returned unchanged, nothing is written
        - Progress lower than the stored value is ignored
        - Transition to DONE forces progress to 100

        Raises:
            InvalidStateTransitionError: If status would move backwards
            JobValidationError: If the merged record breaks a payload rule
                (e.g. done without a result, failed without an error)
        """
        with self._connect(immediate=True) as conn:
            current = self._load(conn, job_id)
            if current is None:
                logger.error(f"[Jobs] Job not found for update: {job_id}")
                return None

            if current.is_terminal:
                logger.warning(
                    f"[Jobs] Ignoring update to terminal job {job_id} ({current.status.value})"
                )
                self._cache[job_id] = current
                return current

            changes: Dict[str, Any] = {}
            if status is not None and status != current.status:
                validate_job_transition(current.status, status)
                changes["status"] = status
            if progress is not None and progress > current.progress:
                changes["progress"] = progress
            if status == JobStatus.DONE:
                changes["progress"] = 100
            if result is not None:
                changes["result"] = result
            if error is not None:
                changes["error"] = error

            if not changes:
                self._cache[job_id] = current
                return current

            merged = current.model_dump()
            merged.update(changes)
            merged["updated_at"] = self._clock()
            try:
                job = Job.model_validate(merged)
            except ValidationError as e:
                problems = [err.get("msg", "invalid value") for err in e.errors()]
                raise JobValidationError(f"Invalid update for job {job_id}", problems) from e

            self._write(conn, job)

        self._cache[job_id] = job
        if "status" in changes:
            logger.info(f"[Jobs] Job {job_id}: {current.status.value} -> {job.status.value}")
        return job

    def sweep(self, retention_seconds: float, now: Optional[datetime] = None) -> int:
        """
        Remove terminal jobs last updated before now - retention.

        Args:
            retention_seconds: How long finished jobs stay visible
            now: Reference time (defaults to the store clock)

        Returns:
            Number of jobs removed
        """
        cutoff = (now or self._clock()) - timedelta(seconds=retention_seconds)
        terminal = [s.value for s in TERMINAL_JOB_STATES]
        placeholders = ", ".join("?" for _ in terminal)

        with self._connect(immediate=True) as conn:
            rows = conn.execute(
                f"SELECT id FROM jobs WHERE status IN ({placeholders}) AND updated_ts < ?",
                (*terminal, cutoff.timestamp()),
            ).fetchall()
            removed = [row["id"] for row in rows]
            conn.executemany("DELETE FROM jobs WHERE id = ?", [(job_id,) for job_id in removed])

        for job_id in removed:
            self._cache.pop(job_id, None)
        if removed:
            logger.info(f"[Jobs] Cleaned up {len(removed)} old job(s)")
        return len(removed)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_jobs(self) -> List[Job]:
        """
        List all stored jobs.

        Returns:
            Jobs ordered by creation time (newest first)
        """
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, payload FROM jobs ORDER BY created_ts DESC"
            ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0])
