from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .crack import propagate_crack
from .elastic_plastic import ElasticPlasticModel
from .materials import MaterialProperties
from .random_stream import RandomSource, require_random_source
from .surface import SurfaceGrid
from .tool_kernel import ToolKernel, characteristic_length
from .validation import require_finite, require_positive, require_unit_range

logger = logging.getLogger(__name__)

TIME_STEP_S = 0.0005
PATH_LENGTH_MM = 40.0
PROGRESS_INTERVAL_STEPS = 500
STEPPING_PROGRESS_CAP = 90.0

SHARP_TOOL_THRESHOLD = 0.8
PENETRATION_GAIN = 2.0
HARDNESS_SCALE = 1000.0

CHATTER_BASE_HZ = 20.0
CHATTER_HZ_PER_UNIT = 50.0
CHATTER_AMPLITUDE_MM = 0.15

PILE_UP_RINGS = 4
PILE_UP_GUARD_MM = -0.5
CHIP_RATIO_THRESHOLD = 0.5
CHIP_ROUGHNESS_MM = 0.05
CUT_FLOOR_MM = -0.01
FRACTURE_THRESHOLD_MM = 0.5
FRACTURE_PROBABILITY = 0.1
TREMOR_MM = 0.05


class CutState(str, Enum):
    idle = "idle"
    stepping = "stepping"
    finalizing = "finalizing"
    done = "done"


@dataclass(frozen=True)
class StepReport:
    tool_z: float
    characteristic_length: float
    displaced_volume: float
    flow_volume: float
    pile_up_added: float
    chip_ratio: float
    crack_cells: int


@dataclass(frozen=True)
class CutProgress:
    done: bool
    progress: float
    steps_taken: int


@dataclass(frozen=True)
class CutSummary:
    steps_taken: int
    path_length_mm: float
    displaced_volume: float
    pile_up_volume: float
    crack_count: int
    penetration_mm: float


def penetration_depth(force_n: float, hardness: float, sharpness: float) -> float:
    base_depth = force_n / (hardness * HARDNESS_SCALE)
    if sharpness > SHARP_TOOL_THRESHOLD:
        # Sharp edges follow Meyer's law: depth grows with the square root of load.
        return math.sqrt(base_depth) * PENETRATION_GAIN
    return base_depth * PENETRATION_GAIN


def ring_cell_count(width: int, height: int) -> int:
    if width < 2 or height < 2:
        return width * height
    return 2 * (width + height) - 4


class CutSimulator:
    """Drags one tool kernel in a straight line across a surface.

    Driven explicitly by the host: ``step()`` runs one time step, ``advance``
    runs a bounded batch, and iteration yields progress every 500 steps and
    100 once the path is complete. Every call returns with the grid fully
    committed, so a host may stop driving at any point.
    """

    def __init__(
        self,
        surface: SurfaceGrid,
        kernel: ToolKernel,
        material: MaterialProperties,
        *,
        start_x: float,
        start_y: float,
        direction_deg: float,
        force_n: float,
        speed_mm_per_sec: float,
        chatter: float,
        random: RandomSource,
    ):
        if not isinstance(kernel, ToolKernel):
            raise TypeError("kernel must be a ToolKernel")
        if not isinstance(material, MaterialProperties):
            raise TypeError("material must be MaterialProperties")
        if not math.isclose(kernel.resolution, surface.resolution):
            raise ValueError("kernel resolution does not match the surface resolution")

        self.surface = surface
        self.kernel = kernel
        self.material = material
        self.model = ElasticPlasticModel(material)
        self.random = require_random_source(random, "random")

        self.x = require_finite(start_x, "start_x")
        self.y = require_finite(start_y, "start_y")
        direction = math.radians(require_finite(direction_deg, "direction_deg"))
        self.dir_x = math.cos(direction)
        self.dir_y = math.sin(direction)
        self.force_n = require_positive(force_n, "force_n")
        self.velocity = require_positive(speed_mm_per_sec, "speed_mm_per_sec")
        self.chatter = require_unit_range(chatter, "chatter")

        self.penetration = penetration_depth(self.force_n, material.hardness, kernel.sharpness)
        self.natural_freq_hz = CHATTER_BASE_HZ + self.chatter * CHATTER_HZ_PER_UNIT
        self.chip_ratio = kernel.sharpness * material.brittleness

        self.state = CutState.idle
        self.distance_mm = 0.0
        self.steps_taken = 0
        self._phase = 0.0
        self._displaced_total = 0.0
        self._pile_up_total = 0.0
        self._crack_count = 0
        self.summary: CutSummary | None = None

    @property
    def progress(self) -> float:
        if self.state == CutState.done:
            return 100.0
        return min(STEPPING_PROGRESS_CAP, (self.distance_mm / PATH_LENGTH_MM) * STEPPING_PROGRESS_CAP)

    @property
    def displaced_volume(self) -> float:
        return self._displaced_total

    @property
    def pile_up_volume(self) -> float:
        return self._pile_up_total

    @property
    def crack_count(self) -> int:
        return self._crack_count

    @property
    def finished(self) -> bool:
        return self.state in (CutState.finalizing, CutState.done)

    def step(self) -> StepReport:
        if self.finished:
            raise RuntimeError("cut path is complete; start a new simulation to cut again")
        self.state = CutState.stepping

        self._phase += 2.0 * math.pi * self.natural_freq_hz * TIME_STEP_S
        vibration = math.sin(self._phase) * (self.chatter * CHATTER_AMPLITUDE_MM)
        tool_z = -self.penetration + vibration
        contact_length = characteristic_length(self.kernel, max(0.0, -tool_z))

        displaced, origin = self._carve(tool_z, contact_length)

        flow_volume = 0.0
        pile_up = 0.0
        if displaced > 0:
            flow_volume = displaced * self.material.flow_fraction * (1.0 - self.chip_ratio)
            if flow_volume > 0:
                pile_up = self._distribute_pile_up(origin, flow_volume)
            if self.chip_ratio > CHIP_RATIO_THRESHOLD:
                self._roughen_cut(origin)

        crack_cells = 0
        if self.material.brittleness > 0.5 and abs(tool_z) > FRACTURE_THRESHOLD_MM:
            if self.random() < self.material.brittleness * FRACTURE_PROBABILITY:
                crack_cells = propagate_crack(
                    self.surface,
                    origin_x=self.x,
                    origin_y=self.y,
                    dir_x=self.dir_x,
                    dir_y=self.dir_y,
                    energy=abs(tool_z) * 2.0,
                    brittleness=self.material.brittleness,
                    random=self.random,
                )
                self._crack_count += 1

        # Hand tremor nudges the tool sideways.
        tremor = (self.random() - 0.5) * TREMOR_MM
        travel = self.velocity * TIME_STEP_S
        self.x += self.dir_x * travel - self.dir_y * tremor
        self.y += self.dir_y * travel + self.dir_x * tremor
        self.distance_mm += travel
        self.steps_taken += 1

        self._displaced_total += displaced
        self._pile_up_total += pile_up
        if self.distance_mm >= PATH_LENGTH_MM:
            self.state = CutState.finalizing

        return StepReport(
            tool_z=tool_z,
            characteristic_length=contact_length,
            displaced_volume=displaced,
            flow_volume=flow_volume,
            pile_up_added=pile_up,
            chip_ratio=self.chip_ratio,
            crack_cells=crack_cells,
        )

    def advance(self, max_steps: int) -> CutProgress:
        if isinstance(max_steps, bool) or not isinstance(max_steps, int) or max_steps < 1:
            raise ValueError("max_steps must be a positive integer")
        for _ in range(max_steps):
            if self.finished:
                break
            self.step()
        if self.state == CutState.finalizing:
            self._finalize()
        return CutProgress(done=self.state == CutState.done, progress=self.progress, steps_taken=self.steps_taken)

    def __iter__(self) -> "CutSimulator":
        return self

    def __next__(self) -> float:
        if self.state == CutState.done:
            raise StopIteration
        while self.state != CutState.finalizing:
            self.step()
            if self.steps_taken % PROGRESS_INTERVAL_STEPS == 0:
                return self.progress
        self._finalize()
        return 100.0

    def _finalize(self) -> None:
        self.summary = CutSummary(
            steps_taken=self.steps_taken,
            path_length_mm=self.distance_mm,
            displaced_volume=self._displaced_total,
            pile_up_volume=self._pile_up_total,
            crack_count=self._crack_count,
            penetration_mm=self.penetration,
        )
        self.state = CutState.done
        logger.info(
            "cut finished after %d steps: displaced=%.4f pile_up=%.4f cracks=%d",
            self.steps_taken,
            self._displaced_total,
            self._pile_up_total,
            self._crack_count,
        )

    def _kernel_origin(self) -> tuple[int, int]:
        gx, gy = self.surface.cell_of(self.x, self.y)
        return gx - self.kernel.center_x, gy - self.kernel.center_y

    def _window(self, origin: tuple[int, int], width: int, height: int) -> tuple[slice, slice, slice, slice] | None:
        x0, y0 = origin
        sx0 = max(0, x0)
        sy0 = max(0, y0)
        sx1 = min(self.surface.width, x0 + width)
        sy1 = min(self.surface.height, y0 + height)
        if sx0 >= sx1 or sy0 >= sy1:
            return None
        return (
            slice(sy0, sy1),
            slice(sx0, sx1),
            slice(sy0 - y0, sy1 - y0),
            slice(sx0 - x0, sx1 - x0),
        )

    def _carve(self, tool_z: float, contact_length: float) -> tuple[float, tuple[int, int]]:
        origin = self._kernel_origin()
        window = self._window(origin, self.kernel.width, self.kernel.height)
        if window is None:
            return 0.0, origin
        rows, cols, k_rows, k_cols = window

        heights = self.surface.heights[rows, cols]
        strain = self.surface.plastic_strain[rows, cols]
        tool_heights = tool_z + self.kernel.profile[k_rows, k_cols]
        penetration = np.where(tool_heights < heights, heights - tool_heights, 0.0)

        # Only the plastic share is carved; the elastic share springs back.
        permanent, increment = self.model.compute_permanent_depth_field(penetration, contact_length, strain)
        heights -= permanent
        strain += increment
        return float(permanent.sum()), origin

    def _distribute_pile_up(self, origin: tuple[int, int], flow_volume: float) -> float:
        x0, y0 = origin
        rings = []
        total_weighted = 0.0
        for radius in range(1, PILE_UP_RINGS + 1):
            width = self.kernel.width + radius * 2
            height = self.kernel.height + radius * 2
            weight = 1.0 / radius
            rings.append((radius, width, height, weight))
            total_weighted += ring_cell_count(width, height) * weight

        added = 0.0
        for radius, width, height, weight in rings:
            amount = (flow_volume * weight) / total_weighted
            added += self._raise_ring(x0 - radius, y0 - radius, width, height, amount)
        return added

    def _raise_ring(self, x: int, y: int, width: int, height: int, amount: float) -> float:
        row = np.arange(x, x + width)
        side = np.arange(y + 1, y + height - 1)
        xs = np.concatenate([row, row, np.full(side.shape, x), np.full(side.shape, x + width - 1)])
        ys = np.concatenate([np.full(row.shape, y), np.full(row.shape, y + height - 1), side, side])

        inside = (xs >= 0) & (xs < self.surface.width) & (ys >= 0) & (ys < self.surface.height)
        xs = xs[inside]
        ys = ys[inside]
        # Material does not pile onto the floor of an existing groove.
        open_cells = self.surface.heights[ys, xs] > PILE_UP_GUARD_MM
        self.surface.heights[ys[open_cells], xs[open_cells]] += amount
        return amount * int(open_cells.sum())

    def _roughen_cut(self, origin: tuple[int, int]) -> None:
        window = self._window(origin, self.kernel.width, self.kernel.height)
        if window is None:
            return
        rows, cols, _, _ = window
        heights = self.surface.heights[rows, cols]
        cut_cells = np.argwhere(heights < CUT_FLOOR_MM)
        if cut_cells.size == 0:
            return
        amount = self.chip_ratio * CHIP_ROUGHNESS_MM
        tears = np.array([self.random() for _ in range(cut_cells.shape[0])], dtype=np.float64)
        heights[cut_cells[:, 0], cut_cells[:, 1]] -= tears * amount
