from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from .random_stream import RandomSource, require_random_source
from .striations import StriationProfile, create_striation_profile, striation_offsets
from .tool_archetypes import KERNEL_SENTINEL, StriationTuning, ToolArchetype, parse_archetype, shape_for
from .validation import (
    KernelInvariantError,
    require_finite,
    require_positive,
    require_range,
    require_unit_range,
    validate_contact_patch_lut,
)

logger = logging.getLogger(__name__)

CONTACT_PATCH_SAMPLES = 24
WEAR_DAMAGE_SCALE = 0.2


@dataclass(frozen=True)
class ContactPatchEntry:
    depth: float
    width_mm: float
    height_mm: float


@dataclass(frozen=True)
class ToolKernel:
    archetype: ToolArchetype
    profile: np.ndarray
    width: int
    height: int
    center_x: int
    center_y: int
    resolution: float
    sharpness: float
    contact_patch_lut: tuple[ContactPatchEntry, ...]
    max_profile_depth: float
    striation_profile: StriationProfile

    def __post_init__(self) -> None:
        self.profile.setflags(write=False)

    @property
    def footprint(self) -> np.ndarray:
        return self.profile < KERNEL_SENTINEL


def resolve_striation_tuning(
    table: Mapping[ToolArchetype, StriationTuning],
    archetype: ToolArchetype,
    override: StriationTuning | Mapping[str, Any] | None = None,
) -> StriationTuning:
    if override is not None:
        if isinstance(override, StriationTuning):
            return override
        if not isinstance(override, Mapping):
            raise ValueError("striation_override must be a StriationTuning or a mapping")
        try:
            return StriationTuning(**override)
        except TypeError as exc:
            raise ValueError(f"invalid striation_override: {exc}") from None

    tuning = table.get(archetype)
    if tuning is None:
        raise ValueError(f"missing striation config for tool archetype {archetype.value!r}")
    return tuning


def build_contact_patch_lut(
    profile: np.ndarray,
    resolution: float,
    samples: int = CONTACT_PATCH_SAMPLES,
) -> tuple[tuple[ContactPatchEntry, ...], float]:
    footprint = profile < KERNEL_SENTINEL
    if not footprint.any():
        raise KernelInvariantError("tool kernel has no valid cells")

    max_profile_depth = float(profile[footprint].max())
    if not math.isfinite(max_profile_depth) or max_profile_depth <= 0:
        raise KernelInvariantError("max_profile_depth must be a positive finite number")

    entries: list[ContactPatchEntry] = []
    for idx in range(samples):
        depth = (idx / (samples - 1)) * max_profile_depth
        in_contact = footprint & (profile <= depth)
        rows = np.flatnonzero(in_contact.any(axis=1))
        cols = np.flatnonzero(in_contact.any(axis=0))
        if rows.size == 0 or cols.size == 0:
            raise KernelInvariantError(f"contact patch lookup failed at depth {depth}")
        entries.append(
            ContactPatchEntry(
                depth=depth,
                width_mm=(int(cols[-1]) - int(cols[0]) + 1) / resolution,
                height_mm=(int(rows[-1]) - int(rows[0]) + 1) / resolution,
            )
        )

    lut = tuple(entries)
    validate_contact_patch_lut(lut, max_profile_depth)
    return lut, max_profile_depth


def characteristic_length(kernel: ToolKernel, penetration_depth: float) -> float:
    if not math.isfinite(penetration_depth) or penetration_depth < 0:
        raise ValueError("penetration_depth must be a non-negative finite number")
    lut = kernel.contact_patch_lut
    if not lut:
        raise KernelInvariantError("contact_patch_lut must not be empty")
    if not math.isfinite(kernel.max_profile_depth) or kernel.max_profile_depth <= 0:
        raise KernelInvariantError("max_profile_depth must be a positive finite number")

    depth = min(penetration_depth, kernel.max_profile_depth)
    if depth <= lut[0].depth:
        length = max(lut[0].width_mm, lut[0].height_mm)
    else:
        length = max(lut[-1].width_mm, lut[-1].height_mm)
        for prev, nxt in zip(lut, lut[1:]):
            if depth <= nxt.depth:
                span = nxt.depth - prev.depth
                if span <= 0:
                    raise KernelInvariantError("contact_patch_lut depth span must be positive")
                t = (depth - prev.depth) / span
                width_mm = prev.width_mm + (nxt.width_mm - prev.width_mm) * t
                height_mm = prev.height_mm + (nxt.height_mm - prev.height_mm) * t
                length = max(width_mm, height_mm)
                break

    if not math.isfinite(length) or length <= 0:
        raise KernelInvariantError("characteristic length must be a positive finite number")
    return length


def _wear_damage(base_random: RandomSource, cells: int, wear: float) -> np.ndarray:
    # Two draws per cell, row-major: a rare sign flip, then the magnitude.
    magnitude = wear * WEAR_DAMAGE_SCALE
    damage = np.empty(cells, dtype=np.float64)
    for idx in range(cells):
        sign = -1.0 if base_random() > 0.95 else 1.0
        damage[idx] = sign * base_random() * magnitude
    return damage


def build_tool_kernel(
    *,
    resolution: float,
    archetype: ToolArchetype | str,
    size_mm: float,
    wear: float,
    angle_deg: float,
    direction_deg: float,
    base_random: RandomSource,
    striation_random: RandomSource,
    striations_enabled: bool,
    striation_tuning: StriationTuning,
) -> ToolKernel:
    archetype = parse_archetype(archetype)
    resolution = require_positive(resolution, "resolution")
    size_mm = require_positive(size_mm, "size_mm")
    wear = require_unit_range(wear, "wear")
    angle_deg = require_range(angle_deg, "angle_deg", 0.0, 90.0)
    if angle_deg == 0:
        raise ValueError("angle_deg must be greater than 0")
    direction_deg = require_finite(direction_deg, "direction_deg")
    base_random = require_random_source(base_random, "base_random")
    striation_random = require_random_source(striation_random, "striation_random")
    if not isinstance(striations_enabled, bool):
        raise TypeError("striations_enabled must be a boolean")

    grid = int(math.floor(size_mm * resolution))
    if grid < 2:
        raise ValueError("size_mm * resolution must cover at least two cells")
    center = grid // 2

    striation_profile = create_striation_profile(
        width_mm=size_mm,
        pitch_mm=striation_tuning.pitch_mm,
        amplitude_mm=striation_tuning.amplitude_mm,
        irregularity=striation_tuning.irregularity,
        wear=wear,
        random=striation_random,
    )

    yaw = math.radians(direction_deg)
    cos_yaw = math.cos(yaw)
    sin_yaw = math.sin(yaw)
    tilt_slope = math.tan(math.radians(90.0 - angle_deg))

    cells = np.arange(grid, dtype=np.float64)
    x_grid, y_grid = np.meshgrid(cells, cells)
    raw_dx = (x_grid - center) / resolution
    raw_dy = (y_grid - center) / resolution
    along = raw_dx * cos_yaw + raw_dy * sin_yaw
    across = -raw_dx * sin_yaw + raw_dy * cos_yaw

    raw_height, sharpness = shape_for(archetype, size_mm).shape(along, across)
    footprint = np.asarray(raw_height) < KERNEL_SENTINEL

    # Handle leads the drag, so the tip rises toward the front of the tool.
    tilted = raw_height + along * tilt_slope
    micro_noise = np.sin(across * 50.0) * 0.01 + np.sin(across * 120.0) * 0.005
    damage = _wear_damage(base_random, grid * grid, wear).reshape(grid, grid)
    surface_z = tilted + micro_noise + damage * 0.1
    if striations_enabled:
        surface_z = surface_z + striation_offsets(striation_profile, across + size_mm / 2.0)

    if not footprint.any():
        raise KernelInvariantError("tool kernel has no valid cells")

    profile = np.full((grid, grid), KERNEL_SENTINEL, dtype=np.float64)
    profile[footprint] = surface_z[footprint]
    # Lowest point of the tip is the contact origin for penetration depth.
    profile[footprint] -= profile[footprint].min()

    lut, max_profile_depth = build_contact_patch_lut(profile, resolution)
    logger.debug(
        "built %s kernel %dx%d sharpness=%.2f max_depth=%.4f",
        archetype.value,
        grid,
        grid,
        sharpness,
        max_profile_depth,
    )
    return ToolKernel(
        archetype=archetype,
        profile=profile,
        width=grid,
        height=grid,
        center_x=center,
        center_y=center,
        resolution=resolution,
        sharpness=float(sharpness),
        contact_patch_lut=lut,
        max_profile_depth=max_profile_depth,
        striation_profile=striation_profile,
    )
