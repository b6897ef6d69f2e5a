from .engine import EngineConfig, ForensicEngine, HeightGrid, default_engine_config
from .modules.cut_simulator import CutProgress, CutSimulator, CutState, CutSummary, StepReport
from .modules.materials import MaterialName, MaterialProperties
from .modules.random_stream import RandomStream, create_seeded_random, derive_seed
from .modules.tool_archetypes import StriationTuning, ToolArchetype
from .modules.tool_kernel import ToolKernel

__all__ = [
    "CutProgress",
    "CutSimulator",
    "CutState",
    "CutSummary",
    "EngineConfig",
    "ForensicEngine",
    "HeightGrid",
    "MaterialName",
    "MaterialProperties",
    "RandomStream",
    "StepReport",
    "StriationTuning",
    "ToolArchetype",
    "ToolKernel",
    "create_seeded_random",
    "default_engine_config",
    "derive_seed",
]
