from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .random_stream import RandomSource, require_random_source
from .validation import require_finite, require_non_negative, require_positive, require_unit_range

SAMPLES_PER_MM = 32
MIN_SAMPLES = 32


@dataclass(frozen=True)
class StriationProfile:
    width_mm: float
    values: np.ndarray

    def __post_init__(self) -> None:
        self.values.setflags(write=False)


def create_striation_profile(
    *,
    width_mm: float,
    pitch_mm: float,
    amplitude_mm: float,
    irregularity: float,
    wear: float,
    random: RandomSource,
) -> StriationProfile:
    width_mm = require_positive(width_mm, "width_mm")
    pitch_mm = require_positive(pitch_mm, "pitch_mm")
    amplitude_mm = require_non_negative(amplitude_mm, "amplitude_mm")
    irregularity = require_unit_range(irregularity, "irregularity")
    wear = require_unit_range(wear, "wear")
    random = require_random_source(random, "random")

    samples = max(MIN_SAMPLES, math.ceil(width_mm * SAMPLES_PER_MM))
    cycles = max(1.0, width_mm / pitch_mm)
    phase = random() * math.pi * 2.0
    wear_scale = 0.6 + wear

    values = np.zeros(samples, dtype=np.float64)
    for idx in range(samples):
        x = idx / (samples - 1)
        value = math.sin(x * cycles * math.pi * 2.0 + phase)
        value += math.sin(x * cycles * math.pi * 4.0 + phase * 1.7) * 0.35 * irregularity
        value += (random() - 0.5) * 2.0 * irregularity * 0.3
        value += (random() - 0.5) * 2.0 * wear * 0.2

        # Chipped edge: rare one-sided gouge.
        if random() < wear * 0.08:
            value -= (0.5 + random()) * wear * 1.2

        values[idx] = value * amplitude_mm * wear_scale

    return StriationProfile(width_mm=width_mm, values=values)


def _check_profile(profile: StriationProfile) -> int:
    if not isinstance(profile, StriationProfile):
        raise TypeError("profile must be a StriationProfile")
    require_positive(profile.width_mm, "profile.width_mm")
    max_index = profile.values.shape[0] - 1
    if max_index <= 0:
        raise ValueError("striation profile must contain at least two samples")
    return max_index


def get_striation_offset(profile: StriationProfile, position_mm: float) -> float:
    max_index = _check_profile(profile)
    position_mm = require_finite(position_mm, "position_mm")

    clamped = min(profile.width_mm, max(0.0, position_mm))
    t = (clamped / profile.width_mm) * max_index
    idx = int(math.floor(t))
    nxt = min(max_index, idx + 1)
    frac = t - idx
    v0 = float(profile.values[idx])
    v1 = float(profile.values[nxt])
    return v0 + (v1 - v0) * frac


def striation_offsets(profile: StriationProfile, positions_mm: np.ndarray) -> np.ndarray:
    max_index = _check_profile(profile)
    positions = np.asarray(positions_mm, dtype=np.float64)
    if not np.all(np.isfinite(positions)):
        raise ValueError("positions_mm must be finite")
    t = (np.clip(positions, 0.0, profile.width_mm) / profile.width_mm) * max_index
    return np.interp(t, np.arange(max_index + 1, dtype=np.float64), profile.values)
