from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from .models import CutResult, JobStatus, JobSummary
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (JobStatus.completed, JobStatus.failed, JobStatus.canceled)


@dataclass(frozen=True)
class JobOutcome:
    # progress=None means the body ran its work to the end.
    result: CutResult | None = None
    message: str = "completed"
    progress: float | None = None


JobBody = Callable[[str], JobOutcome]


@dataclass
class JobRuntimeState:
    summary: JobSummary
    version: int = 0
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def touch(self) -> None:
        self.summary.updatedAt = utc_now_iso()
        self.version += 1


def _clamp_progress(value: float) -> float:
    return max(0.0, min(1.0, value))


class JobManager:
    """Runs job bodies on a thread pool and keeps a versioned summary per job.

    Only the worker publishes a terminal state, and only after the body has
    returned. Whatever the body holds (an engine claim) is therefore released
    by the time a client sees completed, failed or canceled.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tm-job")
        self._states: dict[str, JobRuntimeState] = {}
        self._lock = threading.Lock()

    def create_job(self, engine_id: str, kind: str, message: str = "queued") -> JobSummary:
        now = utc_now_iso()
        job = JobSummary(
            jobId=str(uuid.uuid4()),
            engineId=engine_id,
            kind=kind,
            status=JobStatus.queued,
            message=message,
            createdAt=now,
            updatedAt=now,
        )
        with self._lock:
            self._states[job.jobId] = JobRuntimeState(summary=job)
        return job.model_copy()

    def submit(self, job_id: str, body: JobBody) -> None:
        self._update(job_id, status=JobStatus.running, progress=0.0, message="running")
        self._executor.submit(self._run, job_id, body)

    def _run(self, job_id: str, body: JobBody) -> None:
        try:
            outcome = body(job_id)
        except Exception as exc:
            logger.exception("job %s failed", job_id)
            self.fail(job_id, str(exc))
            return
        self._finish(job_id, outcome)

    def _finish(self, job_id: str, outcome: JobOutcome) -> None:
        with self._lock:
            state = self._states.get(job_id)
            if state is None or state.summary.status in TERMINAL_STATUSES:
                return
            summary = state.summary
            summary.result = outcome.result
            if state.cancel_event.is_set():
                summary.status = JobStatus.canceled
                summary.message = "canceled"
            else:
                summary.status = JobStatus.completed
                summary.message = outcome.message
                summary.progress = 1.0 if outcome.progress is None else _clamp_progress(outcome.progress)
            state.touch()
        logger.debug("job %s finished as %s", job_id, summary.status.value)

    def report_progress(self, job_id: str, progress: float, message: str) -> None:
        self._update(job_id, progress=progress, message=message)

    def fail(self, job_id: str, error: str, message: str = "failed") -> None:
        self._update(job_id, status=JobStatus.failed, message=message, error=error)

    def get_job(self, job_id: str) -> JobSummary | None:
        with self._lock:
            state = self._states.get(job_id)
            return state.summary.model_copy() if state else None

    def is_canceled(self, job_id: str) -> bool:
        with self._lock:
            state = self._states.get(job_id)
            return state.cancel_event.is_set() if state else False

    def cancel(self, job_id: str) -> JobSummary | None:
        """Ask a running job to stop; the worker publishes ``canceled`` once it has."""
        with self._lock:
            state = self._states.get(job_id)
            if state is None:
                return None
            if state.summary.status not in TERMINAL_STATUSES and not state.cancel_event.is_set():
                state.cancel_event.set()
                state.summary.message = "cancel requested"
                state.touch()
            return state.summary.model_copy()

    def _update(
        self,
        job_id: str,
        *,
        status: JobStatus | None = None,
        progress: float | None = None,
        message: str | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            state = self._states.get(job_id)
            # Terminal summaries are final.
            if state is None or state.summary.status in TERMINAL_STATUSES:
                return
            summary = state.summary
            if status is not None:
                summary.status = status
            if progress is not None:
                summary.progress = _clamp_progress(progress)
            if message is not None:
                summary.message = message
            if error is not None:
                summary.error = error
            state.touch()

    def job_version(self, job_id: str) -> int:
        with self._lock:
            state = self._states.get(job_id)
            return state.version if state else 0

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
