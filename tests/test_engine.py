from __future__ import annotations

import math

import numpy as np
import pytest

from toolmark_engine.engine import EngineConfig, ForensicEngine
from toolmark_engine.modules.materials import DEFAULT_MATERIALS, MaterialName, MaterialProperties
from toolmark_engine.modules.random_stream import create_seeded_random


def _kernel(engine: ForensicEngine):
    return engine.create_tool_kernel(
        "round-tip",
        4.0,
        0.1,
        60.0,
        0.0,
        base_random=create_seeded_random(5),
        striation_random=create_seeded_random(6),
        striations_enabled=True,
    )


def test_grid_dimensions_follow_resolution():
    engine = ForensicEngine(20, 12.5, 10, 101)
    assert engine.width == 200
    assert engine.height == 125
    grid = engine.height_grid()
    assert grid.heights.shape == (125, 200)
    assert grid.resolution == 10


def test_initial_surface_is_seeded_and_shallow():
    first = ForensicEngine(20, 20, 10, 101).height_grid().heights
    again = ForensicEngine(20, 20, 10, 101).height_grid().heights
    other = ForensicEngine(20, 20, 10, 102).height_grid().heights
    assert np.array_equal(first, again)
    assert not np.array_equal(first, other)
    assert float(np.abs(first).max()) < 0.01


@pytest.mark.parametrize(
    ("args", "error", "label"),
    [
        ((0, 20, 10, 1), ValueError, "width_mm"),
        ((20, math.inf, 10, 1), ValueError, "height_mm"),
        ((20, 20, -1, 1), ValueError, "resolution"),
        ((20, 20, 10, 1.5), ValueError, "seed"),
        ((20, 20, 10, "1"), TypeError, "seed"),
        ((0.05, 20, 10, 1), ValueError, "at least one cell"),
    ],
)
def test_invalid_construction_is_rejected(args, error, label):
    with pytest.raises(error, match=label):
        ForensicEngine(*args)


def test_height_grid_is_a_read_only_snapshot():
    engine = ForensicEngine(20, 20, 10, 101)
    grid = engine.height_grid()
    with pytest.raises(ValueError):
        grid.heights[0, 0] = 1.0
    with pytest.raises(ValueError):
        engine.plastic_strain()[0, 0] = 1.0

    sim = engine.simulate_cut(10, 10, 0, 50, _kernel(engine), "brass", 400, 0)
    sim.advance(1_000_000)
    assert not np.array_equal(grid.heights, engine.height_grid().heights)


def test_reset_restores_seeded_surface():
    engine = ForensicEngine(20, 20, 10, 101)
    initial = engine.height_grid().heights
    sim = engine.simulate_cut(10, 10, 0, 50, _kernel(engine), "aluminum", 400, 0.3)
    sim.advance(1_000_000)
    assert not np.array_equal(initial, engine.height_grid().heights)
    assert float(engine.plastic_strain().max()) > 0

    engine.reset()
    assert np.array_equal(initial, engine.height_grid().heights)
    assert float(engine.plastic_strain().max()) == 0


def test_repeated_cuts_after_reset_are_identical():
    engine = ForensicEngine(20, 20, 10, 101)
    outcomes = []
    for _ in range(2):
        engine.reset()
        sim = engine.simulate_cut(10, 10, 30, 40, _kernel(engine), "steel", 400, 0.5)
        sim.advance(1_000_000)
        outcomes.append(engine.height_grid().heights)
    assert np.array_equal(outcomes[0], outcomes[1])


def test_material_lookup():
    engine = ForensicEngine(20, 20, 10, 101)
    assert engine.material("gold") == DEFAULT_MATERIALS[MaterialName.gold]
    assert engine.material(MaterialName.wood).brittleness == 0.9
    with pytest.raises(ValueError, match="material"):
        engine.material("clay")


def test_config_tables_are_isolated_per_engine():
    materials = dict(DEFAULT_MATERIALS)
    config = EngineConfig(materials=materials)
    engine = ForensicEngine(20, 20, 10, 101, config=config)
    materials[MaterialName.gold] = MaterialProperties(
        hardness=0.9,
        flow_fraction=0.1,
        brittleness=0.0,
        young_modulus_gpa=79.0,
        yield_strength_mpa=70.0,
        hardening_modulus_mpa=1200.0,
    )
    assert engine.material("gold").hardness == 0.3
    with pytest.raises(TypeError):
        config.materials[MaterialName.gold] = materials[MaterialName.gold]

    restricted = ForensicEngine(20, 20, 10, 101, config=EngineConfig(materials={}))
    with pytest.raises(ValueError, match="no properties"):
        restricted.material("gold")
    assert ForensicEngine(20, 20, 10, 101).material("gold").hardness == 0.3
