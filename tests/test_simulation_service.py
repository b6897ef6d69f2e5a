from __future__ import annotations

import threading
import time

import pytest

from toolmark_engine.models import CutRequest, EngineCreateRequest
from toolmark_engine.settings import Settings
from toolmark_engine.simulation_service import RESET_OWNER, EngineBusyError, SimulationService


def _service() -> SimulationService:
    return SimulationService(Settings(advance_chunk_steps=20, log_level="WARNING"))


def _create_engine(service: SimulationService) -> str:
    summary = service.create_engine(EngineCreateRequest(widthMm=10, heightMm=10, resolution=5, seed=101))
    return summary.engineId


def _cut_request(**overrides) -> CutRequest:
    payload = {
        "tool": {"archetype": "flat-blade", "sizeMm": 4, "wear": 0.2},
        "startX": 2,
        "startY": 5,
        "forceN": 40,
        "material": "aluminum",
        "speedMmPerSec": 400,
    }
    payload.update(overrides)
    return CutRequest.model_validate(payload)


def _wait_for_claim(record, timeout_s: float = 5.0) -> None:
    deadline = time.time() + timeout_s
    while record.claimed_by is None:
        if time.time() > deadline:
            raise TimeoutError("engine was never claimed")
        time.sleep(0.01)


def test_reset_holds_its_claim_while_waiting_for_a_running_step():
    service = _service()
    engine_id = _create_engine(service)
    record = service.get_record(engine_id)
    errors: list[Exception] = []

    def reset() -> None:
        try:
            service.reset_engine(engine_id)
        except Exception as exc:
            errors.append(exc)

    # Holding the surface lock mimics an advance chunk in progress.
    with record.lock:
        worker = threading.Thread(target=reset)
        worker.start()
        _wait_for_claim(record)
        assert record.claimed_by == RESET_OWNER
        with pytest.raises(EngineBusyError, match=RESET_OWNER):
            service.prepare_cut(engine_id, _cut_request(), "job-1")
    worker.join(timeout=5.0)

    assert not worker.is_alive()
    assert errors == []
    assert record.claimed_by is None
    service.prepare_cut(engine_id, _cut_request(), "job-2")
    assert record.claimed_by == "job-2"


def test_reset_is_refused_while_a_cut_holds_the_engine():
    service = _service()
    engine_id = _create_engine(service)
    record = service.get_record(engine_id)

    service.prepare_cut(engine_id, _cut_request(), "job-1")
    assert service.summarize(record).busy is True
    with pytest.raises(EngineBusyError, match="job-1"):
        service.reset_engine(engine_id)
    with pytest.raises(EngineBusyError, match="job-1"):
        service.prepare_cut(engine_id, _cut_request(), "job-2")

    service.release(record)
    assert service.reset_engine(engine_id).busy is False


def test_rejected_cut_releases_the_engine():
    service = _service()
    engine_id = _create_engine(service)
    with pytest.raises(ValueError, match="speed_mm_per_sec"):
        service.prepare_cut(engine_id, _cut_request(speedMmPerSec=-1), "job-1")
    assert service.get_record(engine_id).claimed_by is None


def test_drive_cut_stops_between_chunks_when_canceled():
    service = _service()
    engine_id = _create_engine(service)
    prepared = service.prepare_cut(engine_id, _cut_request(), "job-1")
    updates: list[float] = []

    result = service.drive_cut(
        prepared,
        job_callback=lambda progress, message: updates.append(progress),
        is_canceled=lambda: len(updates) >= 2,
    )
    assert result.stepsTaken == 40
    assert result.completed is False
    assert updates == sorted(updates)
    assert result.surfaceHash == service.summarize(prepared.record).surfaceHash


def test_drive_cut_honours_request_budget():
    service = _service()
    engine_id = _create_engine(service)
    prepared = service.prepare_cut(engine_id, _cut_request(stepBudget=30), "job-1")
    result = service.drive_cut(prepared, job_callback=lambda progress, message: None, is_canceled=lambda: False)
    assert result.stepsTaken == 30
    assert result.completed is False
    assert 0 < result.progress < 90
