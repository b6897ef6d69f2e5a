from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable

from .engine import EngineConfig, ForensicEngine
from .models import CutRequest, CutResult, EngineCreateRequest, EngineSummary, SurfacePayload, ToolKernelRequest
from .modules.cut_simulator import CutSimulator
from .modules.random_stream import RandomStream
from .modules.tool_kernel import ToolKernel
from .settings import Settings
from .utils import array_digest, stable_hash, utc_now_iso

logger = logging.getLogger(__name__)

RESET_OWNER = "reset"


class EngineNotFoundError(KeyError):
    pass


class EngineBusyError(RuntimeError):
    pass


@dataclass
class EngineRecord:
    engine_id: str
    engine: ForensicEngine
    request: EngineCreateRequest
    created_at: str
    lock: threading.Lock = field(default_factory=threading.Lock)
    claimed_by: str | None = None


@dataclass
class PreparedCut:
    record: EngineRecord
    simulator: CutSimulator
    step_budget: int


class SimulationService:
    def __init__(self, settings: Settings, config: EngineConfig | None = None):
        self.settings = settings
        self.config = config
        self._engines: dict[str, EngineRecord] = {}
        self._lock = threading.Lock()

    def create_engine(self, request: EngineCreateRequest) -> EngineSummary:
        engine = ForensicEngine(
            request.widthMm,
            request.heightMm,
            request.resolution,
            request.seed,
            config=self.config,
        )
        record = EngineRecord(
            engine_id=str(uuid.uuid4()),
            engine=engine,
            request=request,
            created_at=utc_now_iso(),
        )
        with self._lock:
            self._engines[record.engine_id] = record
        return self.summarize(record)

    def get_record(self, engine_id: str) -> EngineRecord:
        with self._lock:
            record = self._engines.get(engine_id)
        if record is None:
            raise EngineNotFoundError(engine_id)
        return record

    def summarize(self, record: EngineRecord) -> EngineSummary:
        with record.lock:
            grid = record.engine.height_grid()
        return EngineSummary(
            engineId=record.engine_id,
            widthMm=record.request.widthMm,
            heightMm=record.request.heightMm,
            resolution=record.request.resolution,
            seed=record.request.seed,
            gridWidth=grid.width,
            gridHeight=grid.height,
            parameterHash=stable_hash(record.request.model_dump(mode="json")),
            surfaceHash=array_digest(grid.heights),
            createdAt=record.created_at,
            busy=record.claimed_by is not None,
        )

    def _claim(self, record: EngineRecord, owner: str) -> None:
        # Check and claim under one lock so a reset and a cut can never both win.
        with self._lock:
            if record.claimed_by is not None:
                raise EngineBusyError(f"engine {record.engine_id} is busy with {record.claimed_by}")
            record.claimed_by = owner

    def reset_engine(self, engine_id: str) -> EngineSummary:
        record = self.get_record(engine_id)
        self._claim(record, RESET_OWNER)
        try:
            with record.lock:
                record.engine.reset()
        finally:
            self.release(record)
        return self.summarize(record)

    def surface_payload(self, engine_id: str) -> SurfacePayload:
        record = self.get_record(engine_id)
        with record.lock:
            grid = record.engine.height_grid()
        return SurfacePayload(
            engineId=engine_id,
            width=grid.width,
            height=grid.height,
            resolution=grid.resolution,
            minHeight=float(grid.heights.min()),
            maxHeight=float(grid.heights.max()),
            checksum=array_digest(grid.heights),
            heights=grid.heights.tolist(),
        )

    def build_kernel(self, record: EngineRecord, tool: ToolKernelRequest, drag_direction_deg: float) -> ToolKernel:
        override = None
        if tool.striationOverride is not None:
            override = {
                "pitch_mm": tool.striationOverride.pitchMm,
                "amplitude_mm": tool.striationOverride.amplitudeMm,
                "irregularity": tool.striationOverride.irregularity,
            }
        direction = drag_direction_deg if tool.directionDeg is None else tool.directionDeg
        return record.engine.create_tool_kernel(
            tool.archetype,
            tool.sizeMm,
            tool.wear,
            tool.angleDeg,
            direction,
            base_random=RandomStream(tool.baseSeed),
            striation_random=RandomStream(tool.striationSeed),
            striations_enabled=tool.striationsEnabled,
            striation_override=override,
        )

    def prepare_cut(self, engine_id: str, request: CutRequest, job_id: str) -> PreparedCut:
        record = self.get_record(engine_id)
        self._claim(record, job_id)
        try:
            kernel = self.build_kernel(record, request.tool, request.dragDirectionDeg)
            simulator = record.engine.simulate_cut(
                request.startX,
                request.startY,
                request.dragDirectionDeg,
                request.forceN,
                kernel,
                request.material,
                request.speedMmPerSec,
                request.chatter,
            )
        except Exception:
            self.release(record)
            raise
        budget = request.stepBudget or self.settings.cut_step_budget
        return PreparedCut(record=record, simulator=simulator, step_budget=budget)

    def release(self, record: EngineRecord) -> None:
        with self._lock:
            record.claimed_by = None

    def drive_cut(
        self,
        prepared: PreparedCut,
        *,
        job_callback: Callable[[float, str], None],
        is_canceled: Callable[[], bool],
    ) -> CutResult:
        record = prepared.record
        simulator = prepared.simulator
        chunk = max(1, self.settings.advance_chunk_steps)

        while not is_canceled():
            remaining = prepared.step_budget - simulator.steps_taken
            if remaining <= 0:
                logger.warning(
                    "engine %s cut stopped at step budget %d (%.1f%%)",
                    record.engine_id,
                    prepared.step_budget,
                    simulator.progress,
                )
                break
            # Steps are committed whole under the lock, so readers never see a half-applied step.
            with record.lock:
                progress = simulator.advance(min(chunk, remaining))
            job_callback(progress.progress / 100.0, f"step {progress.steps_taken}")
            if progress.done:
                break

        with record.lock:
            surface_hash = array_digest(record.engine.height_grid().heights)
        return CutResult(
            stepsTaken=simulator.steps_taken,
            pathLengthMm=simulator.distance_mm,
            completed=simulator.summary is not None,
            progress=simulator.progress,
            displacedVolume=simulator.displaced_volume,
            pileUpVolume=simulator.pile_up_volume,
            crackCount=simulator.crack_count,
            penetrationMm=simulator.penetration,
            surfaceHash=surface_hash,
        )
