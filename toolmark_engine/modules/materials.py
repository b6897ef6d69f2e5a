from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .validation import require_positive, require_unit_range


class MaterialName(str, Enum):
    aluminum = "aluminum"
    brass = "brass"
    steel = "steel"
    wood = "wood"
    gold = "gold"


@dataclass(frozen=True)
class MaterialProperties:
    # brittleness: 0 = ductile flow, 1 = pure fracture
    hardness: float
    flow_fraction: float
    brittleness: float
    young_modulus_gpa: float
    yield_strength_mpa: float
    hardening_modulus_mpa: float

    def __post_init__(self) -> None:
        require_positive(self.hardness, "hardness")
        require_unit_range(self.flow_fraction, "flow_fraction")
        require_unit_range(self.brittleness, "brittleness")
        require_positive(self.young_modulus_gpa, "young_modulus_gpa")
        require_positive(self.yield_strength_mpa, "yield_strength_mpa")
        require_positive(self.hardening_modulus_mpa, "hardening_modulus_mpa")


# Elastic constants: engineering-toolbox moduli (aluminum, brass, pine along
# grain), A36 steel, gold yield estimated from hardness. Hardening moduli are
# heuristic.
DEFAULT_MATERIALS: Mapping[MaterialName, MaterialProperties] = MappingProxyType(
    {
        MaterialName.aluminum: MaterialProperties(
            hardness=0.5,
            flow_fraction=0.8,
            brittleness=0.1,
            young_modulus_gpa=69.0,
            yield_strength_mpa=95.0,
            hardening_modulus_mpa=1500.0,
        ),
        MaterialName.brass: MaterialProperties(
            hardness=0.7,
            flow_fraction=0.6,
            brittleness=0.2,
            young_modulus_gpa=110.0,
            yield_strength_mpa=250.0,
            hardening_modulus_mpa=2000.0,
        ),
        MaterialName.steel: MaterialProperties(
            hardness=0.9,
            flow_fraction=0.3,
            brittleness=0.1,
            young_modulus_gpa=200.0,
            yield_strength_mpa=250.0,
            hardening_modulus_mpa=4000.0,
        ),
        MaterialName.wood: MaterialProperties(
            hardness=0.2,
            flow_fraction=0.1,
            brittleness=0.9,
            young_modulus_gpa=11.0,
            yield_strength_mpa=80.0,
            hardening_modulus_mpa=200.0,
        ),
        MaterialName.gold: MaterialProperties(
            hardness=0.3,
            flow_fraction=0.95,
            brittleness=0.0,
            young_modulus_gpa=79.0,
            yield_strength_mpa=70.0,
            hardening_modulus_mpa=1200.0,
        ),
    }
)


def parse_material_name(value: MaterialName | str) -> MaterialName:
    if isinstance(value, MaterialName):
        return value
    try:
        return MaterialName(str(value))
    except ValueError:
        raise ValueError(f"material must be one of {[m.value for m in MaterialName]}, got {value!r}") from None


def resolve_material(
    catalog: Mapping[MaterialName, MaterialProperties],
    name: MaterialName | str,
) -> MaterialProperties:
    key = parse_material_name(name)
    props = catalog.get(key)
    if props is None:
        raise ValueError(f"material {key.value!r} has no properties in this engine")
    return props
