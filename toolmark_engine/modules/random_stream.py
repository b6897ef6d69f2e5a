from __future__ import annotations

import math
from typing import Callable

import numpy as np

MODULUS = 0x100000000
MULTIPLIER = 1664525
INCREMENT = 1013904223
GOLDEN_GAMMA = 0x9E3779B9

RandomSource = Callable[[], float]


def require_integer(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer, float)):
        raise TypeError(f"{label} must be an integer")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{label} must be a finite number")
        if not value.is_integer():
            raise ValueError(f"{label} must be an integer")
    return int(value)


def derive_seed(seed: int, salt: int) -> int:
    seed_value = require_integer(seed, "seed")
    salt_value = require_integer(salt, "salt")
    return (seed_value ^ (salt_value * GOLDEN_GAMMA)) % MODULUS


class RandomStream:
    """Linear congruential stream with 32-bit state.

    Instances are callable so they can be handed to any code expecting a
    zero-argument random source.
    """

    __slots__ = ("_state", "seed")

    def __init__(self, seed: int):
        self.seed = require_integer(seed, "seed") % MODULUS
        self._state = self.seed

    @classmethod
    def from_salt(cls, seed: int, salt: int) -> "RandomStream":
        return cls(derive_seed(seed, salt))

    def next(self) -> float:
        self._state = (MULTIPLIER * self._state + INCREMENT) % MODULUS
        return self._state / MODULUS

    def __call__(self) -> float:
        return self.next()

    def fill(self, count: int) -> np.ndarray:
        values = np.empty(max(0, int(count)), dtype=np.float64)
        for idx in range(values.shape[0]):
            values[idx] = self.next()
        return values


def create_seeded_random(seed: int) -> RandomStream:
    return RandomStream(seed)


def require_random_source(value: object, label: str) -> RandomSource:
    if not callable(value):
        raise TypeError(f"{label} must be a callable random source")
    return value  # type: ignore[return-value]
