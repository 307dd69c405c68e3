"""Job queue access: Postgres queue functions or an in-memory queue."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from psycopg.types.json import Jsonb
from pydantic import ValidationError

from mealworker.jobs.models import BackgroundJob, JobStatus
from mealworker.store.postgres import PgConnection

logger = logging.getLogger(__name__)


class JobSource(Protocol):
    """Claim/heartbeat/settle operations over the shared job table.

    ``claim_next`` raises on transport errors. The other three are
    best-effort from the worker's point of view: callers log their failures.
    """

    def claim_next(self, job_types: Sequence[str], worker_id: str) -> BackgroundJob | None: ...
    def heartbeat(self, job_id: str, worker_id: str) -> None: ...
    def complete(self, job_id: str, worker_id: str, result: dict[str, Any]) -> None: ...
    def fail(self, job_id: str, worker_id: str, message: str) -> None: ...


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresJobSource:
    """Calls the queue's SQL functions; the claim is atomic on the database side."""

    def __init__(self, conn: PgConnection):
        self._conn = conn

    def claim_next(self, job_types: Sequence[str], worker_id: str) -> BackgroundJob | None:
        rows = self._conn.fetch_all(
            "SELECT * FROM get_next_background_job(p_job_types => %s, p_worker_id => %s)",
            (list(job_types), worker_id),
        )
        if not rows:
            return None
        row = rows[0]
        try:
            return self._row_to_job(row)
        except ValidationError as e:
            # already claimed on the database side, so it must still be settled
            self._fail_unreadable(row, worker_id, e)
            return None

    def _fail_unreadable(self, row: dict[str, Any], worker_id: str, error: ValidationError) -> None:
        job_id = row.get("job_id")
        if job_id is None:
            logger.error("Claimed a job row without job_id, cannot report it: %s", error)
            return
        job_id = str(job_id)
        logger.error("Claimed job %s has an invalid row: %s", job_id, error)
        try:
            self.fail(job_id, worker_id, f"Invalid job row: {error}")
        except Exception as e:
            logger.error("Failed to mark job %s failed: %s", job_id, e)

    def heartbeat(self, job_id: str, worker_id: str) -> None:
        self._conn.fetch_all(
            "SELECT update_job_heartbeat(p_job_id => %s, p_worker_id => %s)",
            (job_id, worker_id),
        )

    def complete(self, job_id: str, worker_id: str, result: dict[str, Any]) -> None:
        self._conn.fetch_all(
            """
            SELECT complete_background_job(
                p_job_id => %s, p_worker_id => %s, p_result => %s, p_status => %s
            )
            """,
            (job_id, worker_id, Jsonb(result), JobStatus.COMPLETED.value),
        )

    def fail(self, job_id: str, worker_id: str, message: str) -> None:
        self._conn.fetch_all(
            "SELECT fail_background_job(p_job_id => %s, p_worker_id => %s, p_error_message => %s)",
            (job_id, worker_id, message),
        )

    def _row_to_job(self, row: dict[str, Any]) -> BackgroundJob:
        data = {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in row.items()}
        data["payload"] = data.get("payload") or {}
        return BackgroundJob.model_validate(data)


# ---------------------------------------------------------------------------
# In-memory implementation (tests and local runs)
# ---------------------------------------------------------------------------

@dataclass
class QueuedJob:
    job: BackgroundJob
    status: JobStatus = JobStatus.PENDING
    worker_id: str | None = None
    heartbeats: int = 0
    last_heartbeat_at: datetime | None = None
    result: dict[str, Any] | None = None
    error_message: str | None = None


class InMemoryJobSource:
    """Job queue held in process memory.

    Claims are exclusive (one worker per job) and a job settles exactly once;
    settling twice, or settling/heartbeating a job owned by another worker,
    raises ``ValueError``.
    """

    def __init__(self, jobs: Sequence[BackgroundJob] = ()):
        self._lock = threading.Lock()
        self._entries: dict[str, QueuedJob] = {}
        for job in jobs:
            self.enqueue(job)

    def enqueue(self, job: BackgroundJob) -> None:
        with self._lock:
            if job.job_id in self._entries:
                raise ValueError(f"Duplicate job id: {job.job_id}")
            self._entries[job.job_id] = QueuedJob(job=job.model_copy(deep=True))

    def claim_next(self, job_types: Sequence[str], worker_id: str) -> BackgroundJob | None:
        with self._lock:
            for entry in self._entries.values():
                if entry.status is JobStatus.PENDING and entry.job.job_type in job_types:
                    entry.status = JobStatus.PROCESSING
                    entry.worker_id = worker_id
                    entry.job.attempts += 1
                    return entry.job.model_copy(deep=True)
        return None

    def heartbeat(self, job_id: str, worker_id: str) -> None:
        with self._lock:
            entry = self._owned(job_id, worker_id)
            entry.heartbeats += 1
            entry.last_heartbeat_at = datetime.now(timezone.utc)

    def complete(self, job_id: str, worker_id: str, result: dict[str, Any]) -> None:
        with self._lock:
            entry = self._owned(job_id, worker_id)
            entry.status = JobStatus.COMPLETED
            entry.result = dict(result)

    def fail(self, job_id: str, worker_id: str, message: str) -> None:
        with self._lock:
            entry = self._owned(job_id, worker_id)
            entry.status = JobStatus.FAILED
            entry.error_message = message

    def get(self, job_id: str) -> QueuedJob | None:
        with self._lock:
            return self._entries.get(job_id)

    def count(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for e in self._entries.values() if e.status is status)

    def _owned(self, job_id: str, worker_id: str) -> QueuedJob:
        entry = self._entries.get(job_id)
        if entry is None:
            raise ValueError(f"Unknown job: {job_id}")
        if entry.status is not JobStatus.PROCESSING:
            raise ValueError(f"Job {job_id} is not processing (status={entry.status.value})")
        if entry.worker_id != worker_id:
            raise ValueError(f"Job {job_id} is owned by {entry.worker_id}, not {worker_id}")
        return entry


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_job_source(database_url: str | None = None, conn: PgConnection | None = None) -> JobSource:
    """Return the Postgres job source when a database is configured, else an in-memory queue."""
    if conn is not None:
        return PostgresJobSource(conn)
    if database_url:
        logger.info("Using Postgres job source")
        return PostgresJobSource(PgConnection(database_url))
    logger.warning("No DATABASE_URL configured, using an empty in-memory job queue")
    return InMemoryJobSource()
