from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .materials import MaterialProperties
from .validation import require_non_negative, require_positive


@dataclass(frozen=True)
class ElasticPlasticResult:
    permanent_depth: float
    plastic_strain_increment: float
    elastic_strain: float
    total_strain: float


ZERO_RESULT = ElasticPlasticResult(0.0, 0.0, 0.0, 0.0)


class ElasticPlasticModel:
    """Bilinear contact model with linear strain hardening.

    Only the plastic share of a penetration becomes permanent; the elastic
    share springs back. Accumulated plastic strain raises the yield strain,
    so repeated passes over the same cell carve progressively less.
    """

    def __init__(self, material: MaterialProperties):
        self.young_modulus_mpa = require_positive(material.young_modulus_gpa, "young_modulus_gpa") * 1000.0
        self.yield_strength_mpa = require_positive(material.yield_strength_mpa, "yield_strength_mpa")
        self.hardening_modulus_mpa = require_positive(material.hardening_modulus_mpa, "hardening_modulus_mpa")

    def yield_strain(self, plastic_strain: float) -> float:
        return (self.yield_strength_mpa + self.hardening_modulus_mpa * plastic_strain) / self.young_modulus_mpa

    def compute_permanent_depth(
        self,
        penetration: float,
        characteristic_length: float,
        plastic_strain: float,
    ) -> ElasticPlasticResult:
        penetration = require_non_negative(penetration, "penetration")
        characteristic_length = require_positive(characteristic_length, "characteristic_length")
        plastic_strain = require_non_negative(plastic_strain, "plastic_strain")

        if penetration == 0:
            return ZERO_RESULT

        total_strain = penetration / characteristic_length
        elastic_strain = min(total_strain, self.yield_strain(plastic_strain))
        increment = max(0.0, total_strain - elastic_strain)
        permanent_depth = penetration * (increment / total_strain)
        return ElasticPlasticResult(
            permanent_depth=permanent_depth,
            plastic_strain_increment=increment,
            elastic_strain=elastic_strain,
            total_strain=total_strain,
        )

    def compute_permanent_depth_field(
        self,
        penetration: np.ndarray,
        characteristic_length: float,
        plastic_strain: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Array form used by the cut stepper; returns (permanent_depth, strain_increment)."""
        characteristic_length = require_positive(characteristic_length, "characteristic_length")
        penetration = np.asarray(penetration, dtype=np.float64)
        plastic_strain = np.asarray(plastic_strain, dtype=np.float64)
        if np.any(penetration < 0) or np.any(plastic_strain < 0):
            raise ValueError("penetration and plastic_strain must be non-negative")

        total_strain = penetration / characteristic_length
        elastic_strain = np.minimum(total_strain, self.yield_strain(plastic_strain))
        increment = np.maximum(0.0, total_strain - elastic_strain)
        fraction = np.divide(increment, total_strain, out=np.zeros_like(total_strain), where=total_strain > 0)
        return penetration * fraction, increment
