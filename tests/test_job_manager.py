from __future__ import annotations

import threading
import time

from toolmark_engine.job_manager import TERMINAL_STATUSES, JobManager, JobOutcome
from toolmark_engine.models import JobStatus, JobSummary


def _wait_for_terminal(jobs: JobManager, job_id: str, timeout_s: float = 5.0) -> JobSummary:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        job = jobs.get_job(job_id)
        if job is not None and job.status in TERMINAL_STATUSES:
            return job
        time.sleep(0.01)
    raise TimeoutError(f"job {job_id} did not finish in time")


def test_outcome_is_published_when_body_returns():
    jobs = JobManager(max_workers=1)
    job = jobs.create_job("engine-1", "cut")
    assert job.status == JobStatus.queued

    jobs.submit(job.jobId, lambda job_id: JobOutcome(message="stopped early", progress=0.4))
    final = _wait_for_terminal(jobs, job.jobId)
    assert final.status == JobStatus.completed
    assert final.message == "stopped early"
    assert final.progress == 0.4
    assert jobs.job_version(job.jobId) >= 2


def test_cancel_is_published_only_after_body_stops():
    jobs = JobManager(max_workers=1)
    job = jobs.create_job("engine-1", "cut")
    gate = threading.Event()
    stopped: list[str] = []

    def body(job_id: str) -> JobOutcome:
        gate.wait(timeout=5.0)
        stopped.append(job_id)
        return JobOutcome()

    jobs.submit(job.jobId, body)
    requested = jobs.cancel(job.jobId)
    assert requested is not None
    assert requested.status == JobStatus.running
    assert requested.message == "cancel requested"
    assert jobs.is_canceled(job.jobId)

    gate.set()
    final = _wait_for_terminal(jobs, job.jobId)
    assert final.status == JobStatus.canceled
    assert stopped == [job.jobId]


def test_failing_body_marks_job_failed():
    jobs = JobManager(max_workers=1)
    job = jobs.create_job("engine-1", "cut")

    def body(job_id: str) -> JobOutcome:
        raise RuntimeError("surface exploded")

    jobs.submit(job.jobId, body)
    final = _wait_for_terminal(jobs, job.jobId)
    assert final.status == JobStatus.failed
    assert final.error == "surface exploded"


def test_terminal_jobs_ignore_later_updates():
    jobs = JobManager(max_workers=1)
    job = jobs.create_job("engine-1", "cut")
    jobs.fail(job.jobId, "engine busy", message="rejected")
    version = jobs.job_version(job.jobId)

    jobs.report_progress(job.jobId, 0.5, "step 10")
    canceled = jobs.cancel(job.jobId)
    assert canceled is not None
    assert canceled.status == JobStatus.failed
    assert canceled.message == "rejected"
    assert jobs.job_version(job.jobId) == version
    assert jobs.cancel("missing") is None
