"""Job processor: claims jobs, runs them under a concurrency limit, drains on shutdown.

The polling loop runs on the calling (main) thread. Each claimed job runs in
its own daemon thread and occupies a slot until it has been reported as
completed or failed.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from mealworker.config import Settings
from mealworker.errors import UnknownJobTypeError, WorkerError
from mealworker.heartbeat import Heartbeat, send_heartbeat
from mealworker.jobs.models import BackgroundJob
from mealworker.jobs.source import JobSource

logger = logging.getLogger(__name__)

JobHandler = Callable[[BackgroundJob], dict[str, Any]]


class WorkerState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class JobSlot:
    """One in-flight job. ``future`` resolves once the job has been reported."""

    job: BackgroundJob
    future: Future = field(default_factory=Future)
    thread: threading.Thread | None = None


class JobProcessor:
    def __init__(
        self,
        job_source: JobSource,
        handlers: Mapping[str, JobHandler],
        worker_id: str,
        max_concurrent_jobs: int = 3,
        poll_interval_s: float = 1.0,
        heartbeat_interval_s: float = 30.0,
        drain_timeout_s: float = 300.0,
        drain_check_interval_s: float = 5.0,
        claim_error_backoff_s: float | None = None,
    ):
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self._source = job_source
        self._handlers = dict(handlers)
        self.worker_id = worker_id
        self.max_concurrent_jobs = max_concurrent_jobs
        self._poll_interval_s = poll_interval_s
        self._heartbeat_interval_s = heartbeat_interval_s
        self._drain_timeout_s = drain_timeout_s
        self._drain_check_interval_s = drain_check_interval_s
        self._claim_error_backoff_s = (
            claim_error_backoff_s if claim_error_backoff_s is not None else 5 * poll_interval_s
        )

        self._slots: dict[str, JobSlot] = {}
        self._cond = threading.Condition()
        self._shutdown = threading.Event()
        self._state = WorkerState.RUNNING

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        job_source: JobSource,
        handlers: Mapping[str, JobHandler],
    ) -> JobProcessor:
        return cls(
            job_source,
            handlers,
            worker_id=settings.worker_id,
            max_concurrent_jobs=settings.max_concurrent_jobs,
            poll_interval_s=settings.poll_interval_s,
            heartbeat_interval_s=settings.heartbeat_interval_s,
            drain_timeout_s=settings.drain_timeout_s,
            drain_check_interval_s=settings.drain_check_interval_s,
            claim_error_backoff_s=settings.claim_error_backoff_s,
        )

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def job_types(self) -> list[str]:
        return list(self._handlers)

    def in_flight(self) -> list[str]:
        """Ids of the jobs currently occupying a slot."""
        with self._cond:
            return list(self._slots)

    def request_shutdown(self, signum: int | None = None, frame: Any = None) -> None:
        """Stop claiming and drain. Safe to install directly as a signal handler."""
        if signum is not None:
            logger.info("Received signal %s, shutting down", signum)
        self._shutdown.set()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Poll for jobs until shutdown is requested, then drain and return."""
        logger.info(
            "Worker %s started (max %d concurrent jobs, polling every %.2fs, job types %s)",
            self.worker_id,
            self.max_concurrent_jobs,
            self._poll_interval_s,
            self.job_types,
        )
        while not self._shutdown.is_set():
            delay = self.poll_once()
            if delay > 0:
                self._shutdown.wait(delay)
        self._drain()
        self._state = WorkerState.STOPPED
        logger.info("Worker %s stopped", self.worker_id)

    def poll_once(self) -> float:
        """Claim at most one job if a slot is free; return how long to wait before the next poll."""
        with self._cond:
            if len(self._slots) >= self.max_concurrent_jobs:
                return self._poll_interval_s
        if self._shutdown.is_set():
            return 0
        try:
            job = self._source.claim_next(self.job_types, self.worker_id)
        except Exception as e:
            logger.error(
                "Failed to claim job, retrying in %.2fs: %s", self._claim_error_backoff_s, e
            )
            return self._claim_error_backoff_s
        if job is None:
            return self._poll_interval_s
        self._start(job)
        return 0

    def _start(self, job: BackgroundJob) -> None:
        logger.info(
            "Claimed job %s (%s, attempt %d)", job.job_id, job.job_type, job.attempts
        )
        slot = JobSlot(job=job)
        with self._cond:
            self._slots[job.job_id] = slot
        slot.future.add_done_callback(lambda _f, job_id=job.job_id: self._release(job_id))
        slot.thread = threading.Thread(
            target=self._execute, args=(slot,), name=f"job-{job.job_id}", daemon=True
        )
        try:
            slot.thread.start()
        except Exception as e:
            logger.error("Could not start job %s: %s", job.job_id, e)
            self._report_failure(job, e)
            # settling the future runs the callback that frees the slot
            slot.future.set_exception(e)

    def _release(self, job_id: str) -> None:
        with self._cond:
            self._slots.pop(job_id, None)
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Job execution (runs on the job's thread)
    # ------------------------------------------------------------------

    def _execute(self, slot: JobSlot) -> None:
        job = slot.job
        slot.future.set_running_or_notify_cancel()
        result: dict[str, Any] = {}
        error: BaseException | None = None
        try:
            send_heartbeat(self._source, job.job_id, self.worker_id)
            with Heartbeat(self._source, job.job_id, self.worker_id, self._heartbeat_interval_s):
                result = self._dispatch(job)
        except BaseException as e:
            error = e
            if isinstance(e, WorkerError):
                logger.error("Job %s failed: %s", job.job_id, e)
            else:
                logger.exception("Job %s failed", job.job_id)
            self._report_failure(job, e)
            if not isinstance(e, Exception):
                raise
        else:
            self._report_success(job, result)
        finally:
            # the slot is only released once the future settles
            if error is None:
                slot.future.set_result(result)
            else:
                slot.future.set_exception(error)

    def _dispatch(self, job: BackgroundJob) -> dict[str, Any]:
        handler = self._handlers.get(job.job_type)
        if handler is None:
            raise UnknownJobTypeError(job.job_type)
        return handler(job) or {}

    def _report_success(self, job: BackgroundJob, result: dict[str, Any]) -> None:
        try:
            self._source.complete(job.job_id, self.worker_id, result)
        except Exception as e:
            logger.error("Failed to mark job %s completed: %s", job.job_id, e)
            return
        logger.info("Job %s completed", job.job_id)

    def _report_failure(self, job: BackgroundJob, error: BaseException) -> None:
        message = str(error) or type(error).__name__
        try:
            self._source.fail(job.job_id, self.worker_id, message)
        except Exception as e:
            logger.error("Failed to mark job %s failed: %s", job.job_id, e)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _drain(self) -> None:
        self._state = WorkerState.DRAINING
        deadline = time.monotonic() + self._drain_timeout_s
        with self._cond:
            if self._slots:
                logger.info("Draining: waiting for %d in-flight job(s)", len(self._slots))
            while self._slots:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(min(self._drain_check_interval_s, remaining))
                if self._slots:
                    logger.info("Still waiting for %d job(s): %s", len(self._slots), list(self._slots))
            abandoned = list(self._slots)
        if abandoned:
            logger.warning(
                "Drain timeout after %.0fs; abandoning %d job(s): %s",
                self._drain_timeout_s,
                len(abandoned),
                abandoned,
            )
