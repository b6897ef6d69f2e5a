from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import numpy as np

from .modules.cut_simulator import CutSimulator
from .modules.materials import DEFAULT_MATERIALS, MaterialName, MaterialProperties, resolve_material
from .modules.random_stream import RandomSource, RandomStream, require_integer
from .modules.surface import build_surface, regenerate_surface
from .modules.tool_archetypes import DEFAULT_STRIATION_TUNING, StriationTuning, ToolArchetype, parse_archetype
from .modules.tool_kernel import ToolKernel, build_tool_kernel, resolve_striation_tuning
from .modules.validation import require_positive

logger = logging.getLogger(__name__)

CUT_STREAM_SALT = 0x51


@dataclass(frozen=True)
class EngineConfig:
    materials: Mapping[MaterialName, MaterialProperties] = field(default_factory=lambda: DEFAULT_MATERIALS)
    striation_tuning: Mapping[ToolArchetype, StriationTuning] = field(
        default_factory=lambda: DEFAULT_STRIATION_TUNING
    )

    def __post_init__(self) -> None:
        # Snapshot the tables so later edits to the caller's dicts cannot leak in.
        object.__setattr__(self, "materials", MappingProxyType(dict(self.materials)))
        object.__setattr__(self, "striation_tuning", MappingProxyType(dict(self.striation_tuning)))


def default_engine_config() -> EngineConfig:
    return EngineConfig()


@dataclass(frozen=True)
class HeightGrid:
    width: int
    height: int
    resolution: float
    heights: np.ndarray


class ForensicEngine:
    def __init__(
        self,
        width_mm: float,
        height_mm: float,
        resolution: float,
        seed: int,
        config: EngineConfig | None = None,
    ):
        self.width_mm = require_positive(width_mm, "width_mm")
        self.height_mm = require_positive(height_mm, "height_mm")
        self.resolution = require_positive(resolution, "resolution")
        self.seed = require_integer(seed, "seed")
        self.config = config or default_engine_config()
        self._surface = build_surface(self.width_mm, self.height_mm, self.resolution, self.seed)
        logger.info(
            "engine ready: %dx%d cells at %.3g cells/mm, seed=%d",
            self._surface.width,
            self._surface.height,
            self.resolution,
            self.seed,
        )

    @property
    def width(self) -> int:
        return self._surface.width

    @property
    def height(self) -> int:
        return self._surface.height

    def reset(self) -> None:
        regenerate_surface(self._surface, self.seed)
        logger.info("engine surface reset from seed %d", self.seed)

    def height_grid(self) -> HeightGrid:
        heights = self._surface.heights.copy()
        heights.setflags(write=False)
        return HeightGrid(
            width=self._surface.width,
            height=self._surface.height,
            resolution=self._surface.resolution,
            heights=heights,
        )

    def plastic_strain(self) -> np.ndarray:
        strain = self._surface.plastic_strain.copy()
        strain.setflags(write=False)
        return strain

    def material(self, name: MaterialName | str) -> MaterialProperties:
        return resolve_material(self.config.materials, name)

    def create_tool_kernel(
        self,
        archetype: ToolArchetype | str,
        size_mm: float,
        wear: float,
        angle_deg: float,
        direction_deg: float,
        *,
        base_random: RandomSource,
        striation_random: RandomSource,
        striations_enabled: bool,
        striation_override: StriationTuning | Mapping[str, Any] | None = None,
    ) -> ToolKernel:
        archetype = parse_archetype(archetype)
        tuning = resolve_striation_tuning(self.config.striation_tuning, archetype, striation_override)
        return build_tool_kernel(
            resolution=self.resolution,
            archetype=archetype,
            size_mm=size_mm,
            wear=wear,
            angle_deg=angle_deg,
            direction_deg=direction_deg,
            base_random=base_random,
            striation_random=striation_random,
            striations_enabled=striations_enabled,
            striation_tuning=tuning,
        )

    def simulate_cut(
        self,
        start_x: float,
        start_y: float,
        drag_direction_deg: float,
        force_n: float,
        kernel: ToolKernel,
        material: MaterialName | str,
        speed_mm_per_sec: float,
        chatter: float,
    ) -> CutSimulator:
        props = self.material(material)
        return CutSimulator(
            self._surface,
            kernel,
            props,
            start_x=start_x,
            start_y=start_y,
            direction_deg=drag_direction_deg,
            force_n=force_n,
            speed_mm_per_sec=speed_mm_per_sec,
            chatter=chatter,
            random=RandomStream.from_salt(self.seed, CUT_STREAM_SALT),
        )
