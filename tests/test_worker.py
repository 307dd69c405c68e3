"""Tests for the job processor: slots, settlement, heartbeats and draining."""

import threading
import time

import pytest

from mealworker.config import Settings
from mealworker.heartbeat import Heartbeat
from mealworker.jobs.models import MEAL_PLAN_GENERATION, JobStatus
from mealworker.jobs.source import InMemoryJobSource
from mealworker.worker import JobProcessor, WorkerState

from conftest import make_job

WORKER_ID = "worker-test"


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _processor(source, handler, **kwargs):
    options = dict(
        worker_id=WORKER_ID,
        max_concurrent_jobs=3,
        poll_interval_s=0.01,
        heartbeat_interval_s=30.0,
        drain_timeout_s=5.0,
        drain_check_interval_s=5.0,
    )
    options.update(kwargs)
    return JobProcessor(source, {MEAL_PLAN_GENERATION: handler}, **options)


def _run_in_background(processor):
    thread = threading.Thread(target=processor.run, daemon=True)
    thread.start()
    return thread


def _stop(processor, thread, timeout=5.0):
    processor.request_shutdown()
    thread.join(timeout)
    assert not thread.is_alive()


class CountingSource(InMemoryJobSource):
    """In-memory queue that records report calls and can be told to fail them."""

    def __init__(self, jobs=(), fail_complete=False, fail_heartbeat=False, claim_errors=0, any_type=False):
        super().__init__(jobs)
        self.fail_complete = fail_complete
        self.fail_heartbeat = fail_heartbeat
        self.claim_errors = claim_errors
        self.any_type = any_type
        self.claims = 0
        self.complete_calls = 0
        self.fail_calls = 0

    def claim_next(self, job_types, worker_id):
        self.claims += 1
        if self.claim_errors:
            self.claim_errors -= 1
            raise ConnectionError("queue unreachable")
        if self.any_type:
            job_types = [e.job.job_type for e in self._entries.values()]
        return super().claim_next(job_types, worker_id)

    def heartbeat(self, job_id, worker_id):
        if self.fail_heartbeat:
            raise ConnectionError("heartbeat lost")
        super().heartbeat(job_id, worker_id)

    def complete(self, job_id, worker_id, result):
        self.complete_calls += 1
        if self.fail_complete:
            raise ConnectionError("complete lost")
        super().complete(job_id, worker_id, result)

    def fail(self, job_id, worker_id, message):
        self.fail_calls += 1
        super().fail(job_id, worker_id, message)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def test_successful_job_is_completed_with_handler_result():
    source = InMemoryJobSource([make_job("job-1")])
    processor = _processor(source, lambda job: {"planId": "plan-1", "completedAt": "now"})
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 1)
    _stop(processor, thread)

    entry = source.get("job-1")
    assert entry.result == {"planId": "plan-1", "completedAt": "now"}
    assert entry.job.attempts == 1
    assert entry.heartbeats >= 1
    assert processor.state is WorkerState.STOPPED
    assert processor.in_flight() == []


def test_handler_error_is_reported_as_failure():
    def handler(job):
        raise ValueError("AI returned garbage")

    source = CountingSource([make_job("job-1")])
    processor = _processor(source, handler)
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.FAILED) == 1)
    _stop(processor, thread)

    assert source.get("job-1").error_message == "AI returned garbage"
    assert (source.complete_calls, source.fail_calls) == (0, 1)


def test_unknown_job_type_fails_without_calling_handler():
    called = []
    source = CountingSource([make_job("job-x", job_type="weekly_report")], any_type=True)
    processor = _processor(source, lambda job: called.append(job) or {})
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.FAILED) == 1)
    _stop(processor, thread)

    assert called == []
    assert source.get("job-x").error_message == "Unknown job type: weekly_report"


def test_failed_completion_report_is_not_retried():
    source = CountingSource([make_job("job-1")], fail_complete=True)
    processor = _processor(source, lambda job: {"planId": "plan-1"})
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.complete_calls == 1 and not processor.in_flight())
    time.sleep(0.05)
    _stop(processor, thread)

    assert source.complete_calls == 1
    assert source.fail_calls == 0
    assert source.get("job-1").job.attempts == 1


def test_each_job_settles_exactly_once():
    jobs = [make_job(f"job-{i}") for i in range(8)]
    source = CountingSource(jobs)
    processor = _processor(source, lambda job: {"planId": job.job_id})
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 8)
    _stop(processor, thread)

    assert source.complete_calls == 8
    assert source.fail_calls == 0


def test_job_thread_that_cannot_start_fails_job_and_frees_slot(monkeypatch):
    def refuse_start(self):
        raise RuntimeError("can't start new thread")

    monkeypatch.setattr(threading.Thread, "start", refuse_start)
    source = CountingSource([make_job("job-1")])
    processor = _processor(source, lambda job: {"planId": "plan-1"})

    assert processor.poll_once() == 0
    assert processor.in_flight() == []
    assert source.get("job-1").status is JobStatus.FAILED
    assert source.get("job-1").error_message == "can't start new thread"
    assert (source.complete_calls, source.fail_calls) == (0, 1)


@pytest.mark.filterwarnings("ignore::pytest.PytestUnhandledThreadExceptionWarning")
def test_handler_exit_still_fails_job_and_frees_slot():
    def handler(job):
        raise SystemExit("handler exit")

    source = CountingSource([make_job("job-1"), make_job("job-2")])
    processor = _processor(source, handler, max_concurrent_jobs=1)
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.FAILED) == 2)
    _stop(processor, thread)

    assert source.get("job-1").error_message == "handler exit"
    assert processor.in_flight() == []
    assert source.complete_calls == 0


# ---------------------------------------------------------------------------
# Concurrency limit
# ---------------------------------------------------------------------------

def test_in_flight_jobs_never_exceed_limit():
    release = threading.Event()
    lock = threading.Lock()
    active = [0]
    peak = [0]

    def handler(job):
        with lock:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        release.wait(5)
        with lock:
            active[0] -= 1
        return {}

    source = InMemoryJobSource([make_job(f"job-{i}") for i in range(6)])
    processor = _processor(source, handler, max_concurrent_jobs=2)
    thread = _run_in_background(processor)

    assert wait_until(lambda: len(processor.in_flight()) == 2)
    time.sleep(0.1)
    assert source.count(JobStatus.PENDING) == 4
    assert len(processor.in_flight()) == 2

    release.set()
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 6)
    _stop(processor, thread)
    assert peak[0] <= 2


def test_claim_failure_backs_off_and_recovers():
    source = CountingSource([make_job("job-1")], claim_errors=1)
    processor = _processor(source, lambda job: {}, poll_interval_s=0.1, claim_error_backoff_s=0.5)
    assert processor.poll_once() == 0.5
    assert processor.poll_once() == 0
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 1)


def test_empty_queue_waits_one_poll_interval():
    processor = _processor(InMemoryJobSource(), lambda job: {}, poll_interval_s=0.25)
    assert processor.poll_once() == 0.25


def test_default_claim_backoff_is_five_poll_intervals():
    source = CountingSource(claim_errors=1)
    processor = _processor(source, lambda job: {}, poll_interval_s=0.2)
    assert processor.poll_once() == 0.2 * 5


# ---------------------------------------------------------------------------
# Heartbeats
# ---------------------------------------------------------------------------

def test_heartbeats_sent_while_job_runs():
    def handler(job):
        time.sleep(0.3)
        return {}

    source = InMemoryJobSource([make_job("job-1")])
    processor = _processor(source, handler, heartbeat_interval_s=0.05)
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 1)
    _stop(processor, thread)
    # one immediate heartbeat plus periodic ones
    assert source.get("job-1").heartbeats >= 3


def test_heartbeat_failures_do_not_fail_job():
    source = CountingSource([make_job("job-1")], fail_heartbeat=True)
    processor = _processor(source, lambda job: {"planId": "p"}, heartbeat_interval_s=0.02)
    thread = _run_in_background(processor)
    assert wait_until(lambda: source.count(JobStatus.COMPLETED) == 1)
    _stop(processor, thread)
    assert source.fail_calls == 0


def test_heartbeat_stops_on_exit():
    source = InMemoryJobSource([make_job("job-1")])
    source.claim_next([MEAL_PLAN_GENERATION], WORKER_ID)
    with Heartbeat(source, "job-1", WORKER_ID, interval=0.02) as heartbeat:
        assert wait_until(lambda: heartbeat.sent >= 2)
    sent = source.get("job-1").heartbeats
    time.sleep(0.1)
    assert source.get("job-1").heartbeats == sent


# ---------------------------------------------------------------------------
# Draining
# ---------------------------------------------------------------------------

def test_drain_returns_as_soon_as_jobs_settle():
    release = threading.Event()
    source = CountingSource([make_job("job-1"), make_job("job-2")])
    processor = _processor(source, lambda job: release.wait(5) and {}, max_concurrent_jobs=1)
    thread = _run_in_background(processor)
    assert wait_until(lambda: processor.in_flight() == ["job-1"])

    processor.request_shutdown()
    assert wait_until(lambda: processor.state is WorkerState.DRAINING)
    claims_at_shutdown = source.claims
    started = time.monotonic()
    release.set()
    thread.join(5)

    assert not thread.is_alive()
    # drain check interval is 5s; settling the job must wake the drain early
    assert time.monotonic() - started < 2
    assert processor.state is WorkerState.STOPPED
    assert source.get("job-1").status is JobStatus.COMPLETED
    assert source.get("job-2").status is JobStatus.PENDING
    assert source.claims == claims_at_shutdown


def test_drain_timeout_abandons_in_flight_jobs():
    release = threading.Event()
    source = InMemoryJobSource([make_job("job-1")])
    processor = _processor(
        source, lambda job: release.wait(5) and {}, drain_timeout_s=0.2, drain_check_interval_s=0.05
    )
    thread = _run_in_background(processor)
    assert wait_until(lambda: processor.in_flight() == ["job-1"])
    _stop(processor, thread)

    assert processor.state is WorkerState.STOPPED
    assert processor.in_flight() == ["job-1"]
    assert source.get("job-1").status is JobStatus.PROCESSING
    release.set()


def test_shutdown_before_start_claims_nothing():
    source = CountingSource([make_job("job-1")])
    processor = _processor(source, lambda job: {})
    processor.request_shutdown()
    processor.run()
    assert source.claims == 0
    assert processor.state is WorkerState.STOPPED


def test_from_settings_uses_configured_intervals():
    settings = Settings(
        _env_file=None,
        worker_id="w-1",
        poll_interval_ms=200,
        max_concurrent_jobs=4,
        claim_error_backoff_factor=5,
    )
    processor = JobProcessor.from_settings(settings, InMemoryJobSource(), {MEAL_PLAN_GENERATION: lambda job: {}})
    assert processor.worker_id == "w-1"
    assert processor.max_concurrent_jobs == 4
    assert processor.job_types == [MEAL_PLAN_GENERATION]
