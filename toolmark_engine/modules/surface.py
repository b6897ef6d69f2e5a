from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .random_stream import RandomStream
from .validation import require_positive


@dataclass
class SurfaceGrid:
    width: int
    height: int
    resolution: float
    heights: np.ndarray
    plastic_strain: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        return self.heights.shape

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def cell_of(self, x_mm: float, y_mm: float) -> tuple[int, int]:
        return int(math.floor(x_mm * self.resolution)), int(math.floor(y_mm * self.resolution))


def grid_dims(width_mm: float, height_mm: float, resolution: float) -> tuple[int, int]:
    width_mm = require_positive(width_mm, "width_mm")
    height_mm = require_positive(height_mm, "height_mm")
    resolution = require_positive(resolution, "resolution")
    width = int(math.floor(width_mm * resolution))
    height = int(math.floor(height_mm * resolution))
    if width < 1 or height < 1:
        raise ValueError("width_mm * resolution and height_mm * resolution must cover at least one cell")
    return width, height


def synthesize_base_topography(width: int, height: int, random: RandomStream) -> np.ndarray:
    # Anisotropic machining texture: ridges across x, a slow drift along y,
    # plus fine jitter drawn row-major from the root stream.
    xs = np.arange(width, dtype=np.float64)
    ys = np.arange(height, dtype=np.float64)
    x_grid, y_grid = np.meshgrid(xs, ys)

    freq_x = 0.1
    freq_y = 0.005
    jitter = random.fill(width * height).reshape(height, width)
    return (
        np.sin(x_grid * freq_x * 2.0) * 0.005
        + np.sin(x_grid * freq_x * 5.0 + y_grid * freq_y) * 0.002
        + (jitter - 0.5) * 0.002
    )


def build_surface(width_mm: float, height_mm: float, resolution: float, seed: int) -> SurfaceGrid:
    width, height = grid_dims(width_mm, height_mm, resolution)
    heights = synthesize_base_topography(width, height, RandomStream(seed))
    return SurfaceGrid(
        width=width,
        height=height,
        resolution=float(resolution),
        heights=heights,
        plastic_strain=np.zeros((height, width), dtype=np.float64),
    )


def regenerate_surface(surface: SurfaceGrid, seed: int) -> None:
    surface.heights[:, :] = synthesize_base_topography(surface.width, surface.height, RandomStream(seed))
    surface.plastic_strain.fill(0.0)
