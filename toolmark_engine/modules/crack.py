from __future__ import annotations

import logging
import math

from .random_stream import RandomSource
from .surface import SurfaceGrid

logger = logging.getLogger(__name__)

CRACK_MAX_DEPTH_MM = 0.2
CRACK_LENGTH_PER_ENERGY = 5.0
CRACK_SPREAD_RAD = 1.0
CRACK_JITTER_MM = 0.05


def propagate_crack(
    surface: SurfaceGrid,
    *,
    origin_x: float,
    origin_y: float,
    dir_x: float,
    dir_y: float,
    energy: float,
    brittleness: float,
    random: RandomSource,
) -> int:
    """Carve one tapering fissure sideways from the cut; returns cells touched."""
    res = surface.resolution

    # Pick a side of the groove and spread the normal by up to +/- 0.5 rad.
    normal_x = -dir_y
    normal_y = dir_x
    side = 1.0 if random() > 0.5 else -1.0
    spread = (random() - 0.5) * CRACK_SPREAD_RAD
    cos_s = math.cos(spread)
    sin_s = math.sin(spread)
    crack_x = (normal_x * cos_s - normal_y * sin_s) * side
    crack_y = (normal_x * sin_s + normal_y * cos_s) * side
    norm = math.hypot(crack_x, crack_y)
    if norm == 0:
        return 0
    crack_x /= norm
    crack_y /= norm

    length_mm = energy * CRACK_LENGTH_PER_ENERGY * brittleness
    steps = int(math.floor(length_mm * res))

    x = origin_x
    y = origin_y
    touched = 0
    for idx in range(steps):
        x += crack_x / res + (random() - 0.5) * CRACK_JITTER_MM
        y += crack_y / res + (random() - 0.5) * CRACK_JITTER_MM
        gx, gy = surface.cell_of(x, y)
        if surface.contains(gx, gy):
            surface.heights[gy, gx] -= (1.0 - idx / steps) * CRACK_MAX_DEPTH_MM
            touched += 1

    if steps:
        logger.debug("crack from (%.2f, %.2f) length=%.2fmm cells=%d", origin_x, origin_y, length_mm, touched)
    return touched
