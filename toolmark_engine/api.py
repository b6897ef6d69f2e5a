from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .engine import EngineConfig
from .job_manager import TERMINAL_STATUSES, JobManager, JobOutcome
from .logging_config import setup_logging
from .models import CutRequest, EngineCreateRequest, EngineSummary, JobSummary, SurfacePayload
from .modules.validation import KernelInvariantError
from .settings import Settings, load_settings
from .simulation_service import EngineBusyError, EngineNotFoundError, SimulationService


def create_app(settings: Settings | None = None, config: EngineConfig | None = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    simulation = SimulationService(settings, config)
    jobs = JobManager(max_workers=settings.max_workers)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        jobs.shutdown()

    app = FastAPI(title="Toolmark Engine", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.simulation = simulation
    app.state.jobs = jobs

    def record_or_404(engine_id: str):
        try:
            return simulation.get_record(engine_id)
        except EngineNotFoundError:
            raise HTTPException(status_code=404, detail="engine not found") from None

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/engines", response_model=EngineSummary)
    def create_engine(request: EngineCreateRequest) -> EngineSummary:
        try:
            return simulation.create_engine(request)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from None

    @app.get("/v1/engines/{engine_id}", response_model=EngineSummary)
    def get_engine(engine_id: str) -> EngineSummary:
        return simulation.summarize(record_or_404(engine_id))

    @app.post("/v1/engines/{engine_id}/reset", response_model=EngineSummary)
    def reset_engine(engine_id: str) -> EngineSummary:
        record_or_404(engine_id)
        try:
            return simulation.reset_engine(engine_id)
        except EngineBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from None

    @app.get("/v1/engines/{engine_id}/surface", response_model=SurfacePayload)
    def get_surface(engine_id: str) -> SurfacePayload:
        record_or_404(engine_id)
        return simulation.surface_payload(engine_id)

    @app.post("/v1/engines/{engine_id}/cuts", response_model=JobSummary)
    def start_cut(engine_id: str, request: CutRequest) -> JobSummary:
        record_or_404(engine_id)
        job = jobs.create_job(engine_id, "cut", message="queued cut")
        try:
            prepared = simulation.prepare_cut(engine_id, request, job.jobId)
        except EngineBusyError as exc:
            jobs.fail(job.jobId, str(exc), message="rejected")
            raise HTTPException(status_code=409, detail=str(exc)) from None
        except (TypeError, ValueError, KernelInvariantError) as exc:
            jobs.fail(job.jobId, str(exc), message="rejected")
            raise HTTPException(status_code=400, detail=str(exc)) from None

        def run(job_id: str) -> JobOutcome:
            try:
                result = simulation.drive_cut(
                    prepared,
                    job_callback=lambda progress, message: jobs.report_progress(job_id, progress, message),
                    is_canceled=lambda: jobs.is_canceled(job_id),
                )
            finally:
                simulation.release(prepared.record)
            if result.completed:
                return JobOutcome(result=result)
            return JobOutcome(
                result=result,
                message=f"step budget exhausted after {result.stepsTaken} steps",
                progress=result.progress / 100.0,
            )

        jobs.submit(job.jobId, run)
        latest = jobs.get_job(job.jobId)
        if latest is None:
            raise HTTPException(status_code=500, detail="job not available")
        return latest

    @app.get("/v1/jobs/{job_id}", response_model=JobSummary)
    def get_job(job_id: str) -> JobSummary:
        job = jobs.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="job not found")
        return job

    @app.post("/v1/jobs/{job_id}/cancel", response_model=JobSummary)
    def cancel_job(job_id: str) -> JobSummary:
        job = jobs.cancel(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="job not found")
        return job

    @app.get("/v1/jobs/{job_id}/events")
    async def stream_job(job_id: str) -> StreamingResponse:
        job = jobs.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="job not found")

        async def event_gen() -> AsyncGenerator[str, None]:
            last_version = -1
            while True:
                current = jobs.get_job(job_id)
                if current is None:
                    yield "event: error\ndata: {\"message\":\"job not found\"}\n\n"
                    return
                version = jobs.job_version(job_id)
                if version != last_version:
                    last_version = version
                    payload = current.model_dump(mode="json")
                    yield f"event: update\ndata: {json.dumps(payload)}\n\n"
                if current.status in TERMINAL_STATUSES:
                    return
                await asyncio.sleep(0.4)

        return StreamingResponse(event_gen(), media_type="text/event-stream")

    return app
