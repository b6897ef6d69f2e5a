from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

import numpy as np

from .validation import require_non_negative, require_positive, require_unit_range

KERNEL_SENTINEL = 999.0

Coordinate = Union[float, np.ndarray]


class ToolArchetype(str, Enum):
    flat_blade = "flat-blade"
    wedge = "wedge"
    round_tip = "round-tip"
    flat_disc_bevel = "flat-disc-with-bevel"
    dual_prong_claw = "dual-prong-claw"
    bowl = "bowl"


def parse_archetype(value: ToolArchetype | str) -> ToolArchetype:
    if isinstance(value, ToolArchetype):
        return value
    try:
        return ToolArchetype(str(value))
    except ValueError:
        raise ValueError(f"archetype must be one of {[a.value for a in ToolArchetype]}, got {value!r}") from None


# Shapes take tool-local coordinates in mm: ``along`` follows the drag
# direction, ``across`` is perpendicular to it. They return the raw tip height
# (KERNEL_SENTINEL outside the footprint) and the archetype's sharpness.


@dataclass(frozen=True)
class FlatBlade:
    size_mm: float
    sharpness: float = 0.3
    edge_round_mm: float = 0.2

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        half = self.size_mm / 2.0
        dist = np.abs(across)
        edge = np.where(dist > half - self.edge_round_mm, dist - (half - self.edge_round_mm), 0.0)
        return np.where(dist > half, KERNEL_SENTINEL, edge), self.sharpness


@dataclass(frozen=True)
class Wedge:
    size_mm: float
    sharpness: float = 0.95

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        return np.abs(across) * 2.0 + np.zeros_like(along, dtype=np.float64), self.sharpness


@dataclass(frozen=True)
class RoundTip:
    size_mm: float
    sharpness: float = 0.1

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        r = self.size_mm / 2.0
        d = np.hypot(along, across)
        inside = d <= r
        cap = r - np.sqrt(np.where(inside, r * r - d * d, 0.0))
        return np.where(inside, cap, KERNEL_SENTINEL), self.sharpness


@dataclass(frozen=True)
class FlatDiscBevel:
    size_mm: float
    sharpness: float = 0.05
    face_fraction: float = 0.8

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        r = self.size_mm / 2.0
        d = np.hypot(along, across)
        face = r * self.face_fraction
        bevel = np.where(d > face, d - face, 0.0)
        return np.where(d > r, KERNEL_SENTINEL, bevel), self.sharpness


@dataclass(frozen=True)
class DualProngClaw:
    size_mm: float
    sharpness: float = 0.6

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        claw_width = self.size_mm * 0.4
        gap = self.size_mm * 0.15
        prong_center = gap + (claw_width - gap) / 2.0
        dist = np.abs(across)
        # Prongs taper toward their centre line and hook upward along the drag axis.
        prong = np.abs(dist - prong_center) * 1.5 + np.square(along) * 0.2
        outside = (dist < gap) | (dist > claw_width)
        return np.where(outside, KERNEL_SENTINEL, prong), self.sharpness


@dataclass(frozen=True)
class Bowl:
    size_mm: float
    sharpness: float = 0.2

    def shape(self, along: Coordinate, across: Coordinate) -> tuple[np.ndarray, float]:
        # Paraboloid, flatter lengthwise than across.
        a = self.size_mm * 0.8
        b = self.size_mm * 1.5
        return np.square(across) / a + np.square(along) / b, self.sharpness


ToolShape = Union[FlatBlade, Wedge, RoundTip, FlatDiscBevel, DualProngClaw, Bowl]


def shape_for(archetype: ToolArchetype, size_mm: float) -> ToolShape:
    size_mm = require_positive(size_mm, "size_mm")
    match archetype:
        case ToolArchetype.flat_blade:
            return FlatBlade(size_mm)
        case ToolArchetype.wedge:
            return Wedge(size_mm)
        case ToolArchetype.round_tip:
            return RoundTip(size_mm)
        case ToolArchetype.flat_disc_bevel:
            return FlatDiscBevel(size_mm)
        case ToolArchetype.dual_prong_claw:
            return DualProngClaw(size_mm)
        case ToolArchetype.bowl:
            return Bowl(size_mm)
    raise ValueError(f"unsupported tool archetype {archetype!r}")


@dataclass(frozen=True)
class StriationTuning:
    pitch_mm: float
    amplitude_mm: float
    irregularity: float

    def __post_init__(self) -> None:
        require_positive(self.pitch_mm, "pitch_mm")
        require_non_negative(self.amplitude_mm, "amplitude_mm")
        require_unit_range(self.irregularity, "irregularity")


DEFAULT_STRIATION_TUNING: Mapping[ToolArchetype, StriationTuning] = MappingProxyType(
    {
        ToolArchetype.flat_blade: StriationTuning(pitch_mm=0.22, amplitude_mm=0.015, irregularity=0.45),
        ToolArchetype.wedge: StriationTuning(pitch_mm=0.08, amplitude_mm=0.008, irregularity=0.25),
        ToolArchetype.round_tip: StriationTuning(pitch_mm=0.35, amplitude_mm=0.02, irregularity=0.5),
        ToolArchetype.flat_disc_bevel: StriationTuning(pitch_mm=0.6, amplitude_mm=0.012, irregularity=0.6),
        ToolArchetype.dual_prong_claw: StriationTuning(pitch_mm=0.28, amplitude_mm=0.018, irregularity=0.55),
        ToolArchetype.bowl: StriationTuning(pitch_mm=0.5, amplitude_mm=0.012, irregularity=0.35),
    }
)
