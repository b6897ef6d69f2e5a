from __future__ import annotations

import math
from numbers import Real
from typing import Any, Sequence


class KernelInvariantError(RuntimeError):
    """A tool kernel violates an invariant the simulator relies on."""


def require_finite(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ValueError(f"{label} must be a finite number")
    return float(value)


def require_positive(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value) or value <= 0:
        raise ValueError(f"{label} must be a positive finite number")
    return float(value)


def require_non_negative(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value) or value < 0:
        raise ValueError(f"{label} must be a non-negative finite number")
    return float(value)


def require_range(value: Any, label: str, low: float, high: float) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ValueError(f"{label} must be between {low:g} and {high:g}")
    if value < low or value > high:
        raise ValueError(f"{label} must be between {low:g} and {high:g}")
    return float(value)


def require_unit_range(value: Any, label: str) -> float:
    return require_range(value, label, 0.0, 1.0)


def validate_contact_patch_lut(entries: Sequence[Any], max_profile_depth: float) -> None:
    if not entries:
        raise KernelInvariantError("contact patch lookup table must not be empty")
    if not math.isfinite(max_profile_depth) or max_profile_depth <= 0:
        raise KernelInvariantError("max_profile_depth must be a positive finite number")
    if entries[0].depth != 0:
        raise KernelInvariantError("contact patch lookup table must start at depth 0")

    previous = -math.inf
    for entry in entries:
        if not entry.depth > previous:
            raise KernelInvariantError("contact patch lookup depths must be strictly increasing")
        if not (math.isfinite(entry.width_mm) and entry.width_mm > 0):
            raise KernelInvariantError(f"contact patch width at depth {entry.depth} must be positive")
        if not (math.isfinite(entry.height_mm) and entry.height_mm > 0):
            raise KernelInvariantError(f"contact patch height at depth {entry.depth} must be positive")
        previous = entry.depth

    if not math.isclose(entries[-1].depth, max_profile_depth, rel_tol=1e-12, abs_tol=0.0):
        raise KernelInvariantError("contact patch lookup table must end at max_profile_depth")
