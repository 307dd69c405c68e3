"""Periodic liveness signal for one in-flight job."""

from __future__ import annotations

import logging
import threading

from mealworker.jobs.source import JobSource

logger = logging.getLogger(__name__)


def send_heartbeat(job_source: JobSource, job_id: str, worker_id: str) -> bool:
    """Report liveness once. Failures are logged and never raised."""
    try:
        job_source.heartbeat(job_id, worker_id)
    except Exception as e:
        logger.warning("Heartbeat failed for job %s: %s", job_id, e)
        return False
    return True


class Heartbeat:
    """Background timer that heartbeats a job every *interval* seconds.

    Use as a context manager around the job's execution; leaving the block
    stops the timer whether the job succeeded or raised::

        with Heartbeat(source, job.job_id, worker_id, interval=30):
            handler(job)
    """

    def __init__(self, job_source: JobSource, job_id: str, worker_id: str, interval: float):
        self._job_source = job_source
        self._job_id = job_id
        self._worker_id = worker_id
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.sent = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name=f"heartbeat-{self._job_id}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._interval)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            if send_heartbeat(self._job_source, self._job_id, self._worker_id):
                self.sent += 1

    def __enter__(self) -> Heartbeat:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
