from __future__ import annotations

import math

import pytest

from toolmark_engine.modules.random_stream import RandomStream, create_seeded_random, derive_seed


def test_equal_seeds_produce_identical_sequences():
    for length in (1, 7, 256, 5000):
        stream_a = create_seeded_random(9001)
        stream_b = create_seeded_random(9001)
        assert [stream_a() for _ in range(length)] == [stream_b() for _ in range(length)]


def test_stream_follows_32_bit_lcg():
    stream = RandomStream(0)
    assert stream.next() == 1013904223 / 2**32
    expected_state = (1664525 * 1013904223 + 1013904223) % 2**32
    assert stream.next() == expected_state / 2**32


def test_values_stay_in_unit_interval():
    stream = RandomStream(123456789)
    values = stream.fill(2000)
    assert values.shape == (2000,)
    assert float(values.min()) >= 0.0
    assert float(values.max()) < 1.0


def test_fill_matches_scalar_draws():
    scalar = RandomStream(42)
    assert RandomStream(42).fill(16).tolist() == [scalar() for _ in range(16)]


def test_derive_seed_is_pure_and_salt_sensitive():
    assert derive_seed(77, 3) == derive_seed(77, 3)
    salts = range(0, 64)
    derived = {derive_seed(77, salt) for salt in salts}
    assert len(derived) == len(salts)
    assert derive_seed(0, 1) == 0x9E3779B9
    assert 0 <= derive_seed(-5, 11) < 2**32


def test_from_salt_uses_derived_seed():
    assert RandomStream.from_salt(10, 2).fill(4).tolist() == RandomStream(derive_seed(10, 2)).fill(4).tolist()


@pytest.mark.parametrize("seed", [1.5, math.nan, math.inf])
def test_non_integer_seed_is_rejected(seed):
    with pytest.raises(ValueError, match="seed"):
        RandomStream(seed)


@pytest.mark.parametrize("seed", ["7", None, True])
def test_wrong_seed_type_is_rejected(seed):
    with pytest.raises(TypeError, match="seed"):
        RandomStream(seed)


def test_non_integer_salt_is_rejected():
    with pytest.raises(ValueError, match="salt"):
        derive_seed(1, 0.25)
