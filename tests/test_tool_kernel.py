from __future__ import annotations

import numpy as np
import pytest

from toolmark_engine.engine import EngineConfig, ForensicEngine
from toolmark_engine.modules.random_stream import create_seeded_random
from toolmark_engine.modules.tool_archetypes import KERNEL_SENTINEL, StriationTuning, ToolArchetype
from toolmark_engine.modules.tool_kernel import (
    ContactPatchEntry,
    ToolKernel,
    build_contact_patch_lut,
    characteristic_length,
)
from toolmark_engine.modules.validation import KernelInvariantError, validate_contact_patch_lut


def _engine(**overrides) -> ForensicEngine:
    return ForensicEngine(20, 20, 10, 101, **overrides)


def _kernel(engine: ForensicEngine | None = None, archetype: str = "flat-blade", **overrides) -> ToolKernel:
    engine = engine or _engine()
    params = {
        "size_mm": 6.0,
        "wear": 0.2,
        "angle_deg": 45.0,
        "direction_deg": 0.0,
        "base_random": create_seeded_random(1),
        "striation_random": create_seeded_random(2),
        "striations_enabled": True,
    }
    params.update(overrides)
    size_mm = params.pop("size_mm")
    wear = params.pop("wear")
    angle_deg = params.pop("angle_deg")
    direction_deg = params.pop("direction_deg")
    return engine.create_tool_kernel(archetype, size_mm, wear, angle_deg, direction_deg, **params)


@pytest.mark.parametrize("archetype", [a.value for a in ToolArchetype])
def test_kernel_tip_is_normalised_to_zero(archetype):
    kernel = _kernel(archetype=archetype)
    footprint = kernel.profile[kernel.footprint]
    assert footprint.size > 0
    assert float(footprint.min()) == 0.0
    assert np.all(np.isfinite(footprint))
    assert kernel.width == kernel.height == 60
    assert kernel.center_x == kernel.center_y == 30


@pytest.mark.parametrize("archetype", [a.value for a in ToolArchetype])
def test_contact_patch_lut_is_well_formed(archetype):
    kernel = _kernel(archetype=archetype, wear=0.5)
    lut = kernel.contact_patch_lut
    assert len(lut) == 24
    assert lut[0].depth == 0
    assert lut[-1].depth == pytest.approx(kernel.max_profile_depth)
    depths = [entry.depth for entry in lut]
    assert all(b > a for a, b in zip(depths, depths[1:]))
    assert all(entry.width_mm > 0 and entry.height_mm > 0 for entry in lut)


def test_sharpness_follows_archetype():
    assert _kernel(archetype="wedge").sharpness == pytest.approx(0.95)
    assert _kernel(archetype="flat-blade").sharpness == pytest.approx(0.3)
    assert _kernel(archetype="flat-disc-with-bevel").sharpness == pytest.approx(0.05)


def test_zero_amplitude_override_matches_disabled_striations():
    override = {"pitch_mm": 0.22, "amplitude_mm": 0.0, "irregularity": 0.45}
    engine = _engine()
    enabled = _kernel(engine, striations_enabled=True, striation_override=override)
    disabled = _kernel(engine, striations_enabled=False, striation_override=override)
    assert np.array_equal(enabled.profile, disabled.profile)


def test_striations_change_the_kernel_profile():
    engine = _engine()
    enabled = _kernel(engine, striations_enabled=True)
    disabled = _kernel(engine, striations_enabled=False)
    assert not np.array_equal(enabled.profile, disabled.profile)
    assert np.array_equal(enabled.footprint, disabled.footprint)


def test_equal_seeds_build_identical_kernels():
    assert np.array_equal(_kernel().profile, _kernel().profile)


def test_kernel_profile_is_read_only():
    kernel = _kernel()
    with pytest.raises(ValueError):
        kernel.profile[0, 0] = 0.0


def test_invalid_kernel_parameters_are_rejected():
    with pytest.raises(ValueError, match="archetype"):
        _kernel(archetype="chisel")
    with pytest.raises(ValueError, match="size_mm"):
        _kernel(size_mm=0.0)
    with pytest.raises(ValueError, match="size_mm"):
        _kernel(size_mm=0.15)
    with pytest.raises(ValueError, match="wear"):
        _kernel(wear=1.5)
    with pytest.raises(ValueError, match="angle_deg"):
        _kernel(angle_deg=0.0)
    with pytest.raises(ValueError, match="angle_deg"):
        _kernel(angle_deg=120.0)
    with pytest.raises(TypeError, match="base_random"):
        _kernel(base_random=0.5)
    with pytest.raises(TypeError, match="striation_random"):
        _kernel(striation_random=None)
    with pytest.raises(TypeError, match="striations_enabled"):
        _kernel(striations_enabled=1)


def test_invalid_striation_override_is_rejected():
    with pytest.raises(ValueError, match="pitch_mm"):
        _kernel(striation_override={"pitch_mm": 0.0, "amplitude_mm": 0.01, "irregularity": 0.2})
    with pytest.raises(ValueError, match="striation_override"):
        _kernel(striation_override={"pitch": 0.2})
    with pytest.raises(ValueError, match="striation_override"):
        _kernel(striation_override=0.2)


def test_missing_striation_tuning_needs_override():
    engine = _engine(config=EngineConfig(striation_tuning={}))
    with pytest.raises(ValueError, match="missing striation config"):
        _kernel(engine)
    kernel = _kernel(engine, striation_override=StriationTuning(pitch_mm=0.3, amplitude_mm=0.01, irregularity=0.2))
    assert kernel.max_profile_depth > 0


def test_characteristic_length_clamps_and_interpolates():
    kernel = _kernel()
    lut = kernel.contact_patch_lut
    at_zero = characteristic_length(kernel, 0.0)
    at_max = characteristic_length(kernel, kernel.max_profile_depth)
    assert at_zero == pytest.approx(max(lut[0].width_mm, lut[0].height_mm))
    assert at_max == pytest.approx(max(lut[-1].width_mm, lut[-1].height_mm))
    assert characteristic_length(kernel, kernel.max_profile_depth * 10) == at_max

    prev, nxt = lut[3], lut[4]
    mid = characteristic_length(kernel, (prev.depth + nxt.depth) / 2.0)
    assert mid == pytest.approx(
        max((prev.width_mm + nxt.width_mm) / 2.0, (prev.height_mm + nxt.height_mm) / 2.0)
    )

    with pytest.raises(ValueError, match="penetration_depth"):
        characteristic_length(kernel, -0.1)


def test_contact_patch_lut_rejects_degenerate_profiles():
    with pytest.raises(KernelInvariantError, match="no valid cells"):
        build_contact_patch_lut(np.full((4, 4), KERNEL_SENTINEL), 10.0)
    with pytest.raises(KernelInvariantError, match="max_profile_depth"):
        build_contact_patch_lut(np.zeros((4, 4)), 10.0)


def test_lut_validation_rejects_broken_tables():
    with pytest.raises(KernelInvariantError, match="empty"):
        validate_contact_patch_lut([], 1.0)
    with pytest.raises(KernelInvariantError, match="start at depth 0"):
        validate_contact_patch_lut([ContactPatchEntry(0.1, 1.0, 1.0), ContactPatchEntry(1.0, 1.0, 1.0)], 1.0)
    with pytest.raises(KernelInvariantError, match="strictly increasing"):
        validate_contact_patch_lut(
            [ContactPatchEntry(0.0, 1.0, 1.0), ContactPatchEntry(0.0, 1.0, 1.0), ContactPatchEntry(1.0, 1.0, 1.0)],
            1.0,
        )
    with pytest.raises(KernelInvariantError, match="width"):
        validate_contact_patch_lut([ContactPatchEntry(0.0, 0.0, 1.0), ContactPatchEntry(1.0, 1.0, 1.0)], 1.0)
    with pytest.raises(KernelInvariantError, match="end at max_profile_depth"):
        validate_contact_patch_lut([ContactPatchEntry(0.0, 1.0, 1.0), ContactPatchEntry(0.5, 1.0, 1.0)], 1.0)


def test_two_cell_kernel_is_the_smallest_accepted():
    kernel = _kernel(archetype="wedge", size_mm=0.25)
    assert kernel.width == kernel.height == 2
    assert kernel.max_profile_depth > 0
