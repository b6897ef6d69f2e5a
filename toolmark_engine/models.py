from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .modules.materials import MaterialName
from .modules.tool_archetypes import ToolArchetype


class EngineCreateRequest(BaseModel):
    widthMm: float
    heightMm: float
    resolution: float
    seed: int


class EngineSummary(BaseModel):
    engineId: str
    widthMm: float
    heightMm: float
    resolution: float
    seed: int
    gridWidth: int
    gridHeight: int
    parameterHash: str
    surfaceHash: str
    createdAt: str
    busy: bool = False


class StriationOverride(BaseModel):
    pitchMm: float
    amplitudeMm: float
    irregularity: float


class ToolKernelRequest(BaseModel):
    archetype: ToolArchetype
    sizeMm: float
    wear: float = 0.0
    angleDeg: float = 45.0
    directionDeg: float | None = None
    baseSeed: int = 1
    striationSeed: int = 2
    striationsEnabled: bool = True
    striationOverride: StriationOverride | None = None


class CutRequest(BaseModel):
    tool: ToolKernelRequest
    startX: float
    startY: float
    dragDirectionDeg: float = 0.0
    forceN: float
    material: MaterialName
    speedMmPerSec: float
    chatter: float = 0.0
    stepBudget: int | None = Field(default=None, gt=0)


class CutResult(BaseModel):
    stepsTaken: int
    pathLengthMm: float
    completed: bool
    progress: float
    displacedVolume: float = 0.0
    pileUpVolume: float = 0.0
    crackCount: int = 0
    penetrationMm: float
    surfaceHash: str


class JobStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"
    canceled = "canceled"


class JobSummary(BaseModel):
    jobId: str
    engineId: str
    kind: str
    status: JobStatus
    progress: float = 0.0
    message: str = ""
    result: CutResult | None = None
    error: str | None = None
    createdAt: str
    updatedAt: str


class SurfacePayload(BaseModel):
    engineId: str
    width: int
    height: int
    resolution: float
    minHeight: float
    maxHeight: float
    checksum: str
    heights: list[list[float]] = Field(default_factory=list)
