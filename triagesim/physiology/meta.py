"""Per-individual constants computed once when a body is created."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from ..utils import Curve, interpolate


@dataclass(frozen=True)
class Bound:
    min: float
    max: float


@dataclass
class BodyFactoryParams:
    """Inputs describing one individual."""

    age: float = 20
    sex: str = "male"
    bmi: float = 20
    height_cm: float = 170
    lung_depth: int = 1
    temperature: Optional[float] = None
    sugar_level: Optional[float] = None


@dataclass(frozen=True)
class BloodParts:
    total: float
    proteins: float
    water: float
    leuco: float
    red: float
    hematocrit: float


@dataclass(frozen=True)
class HumanMeta:
    age: float
    sex: str
    bmi: float
    height_cm: float
    lung_depth: int
    ideal_weight_kg: float
    effective_weight_kg: float
    inspiratory_capacity_ml: float
    vital_capacity_ml: float
    maximum_voluntary_ventilation_l: float
    initial_blood_volume_ml: float
    hematocrit: float
    dead_space_l: float
    vo2_min_ml_per_kg_min: float
    vo2_max_ml_per_kg_min: float
    brain_weight_g: float
    cerebral_cardiac_output_l_per_min: float
    # Cerebral autoregulation plateau on perfusion pressure (MAP - ICP)
    autoregulation_start_mmhg: float = 50
    autoregulation_stop_mmhg: float = 150
    # Keyed by metric path, e.g. ``vitals.cardio.hr``
    bounds: Dict[str, Bound] = field(default_factory=dict)


_CHILD_WEIGHT: Curve = ((0, 3), (65, 8), (120, 17.6))
_BRAIN_WEIGHT: Curve = ((0, 500), (1, 1000), (5, 1300), (10, 1400))
_ORTHO_LEVEL: Curve = ((0, 20), (100, 38))
_VO2_MIN: Curve = ((0, 25), (12, 3.5))
_VO2_MAX: Dict[str, Curve] = {
    "female": ((22.5, 34), (62.5, 20)),
    "male": ((22.5, 40.5), (62.5, 26.5)),
}
_DEAD_SPACE: Curve = ((0, 0.004), (12, 0.0022))


def ideal_weight(sex: str, height_cm: float) -> float:
    """Devine-style ideal weight with a pediatric curve under 120 cm."""
    if height_cm < 120:
        return interpolate(height_cm, _CHILD_WEIGHT)
    return (45.5 if sex == "female" else 50) + 0.9 * (height_cm - 152.4)


def effective_weight(bmi: float, height_cm: float) -> float:
    height_m = height_cm / 100
    return bmi * height_m * height_m


def _age_factor(age: float) -> float:
    if age < 20:
        return 0.2 + age * 0.8 / 20
    if age > 40:
        return 1 - age * 0.004
    return 1.0


def inspiratory_capacity(age: float, sex: str) -> float:
    return _age_factor(age) * (3600 if sex == "male" else 2400)


def vital_capacity(age: float, sex: str) -> float:
    return _age_factor(age) * (4800 if sex == "male" else 3100)


def blood_parts(weight_kg: float, sex: str) -> BloodParts:
    total = 70 * weight_kg
    hematocrit = 0.47 if sex == "male" else 0.42
    plasma = total * (1 - hematocrit - 0.01)
    return BloodParts(
        total=total,
        proteins=plasma * 0.1,
        water=plasma * 0.9,
        leuco=0.01 * total,
        red=hematocrit * total,
        hematocrit=hematocrit,
    )


def ortho_level_from_age(age: float) -> float:
    return interpolate(age, _ORTHO_LEVEL)


def compute_meta(params: BodyFactoryParams) -> Tuple[HumanMeta, BloodParts]:
    ideal = ideal_weight(params.sex, params.height_cm)
    blood = blood_parts(ideal, params.sex)
    ic = inspiratory_capacity(params.age, params.sex)
    vc = vital_capacity(params.age, params.sex)
    brain_weight = interpolate(params.age, _BRAIN_WEIGHT)

    meta = HumanMeta(
        age=params.age,
        sex=params.sex,
        bmi=params.bmi,
        height_cm=params.height_cm,
        lung_depth=params.lung_depth,
        ideal_weight_kg=ideal,
        effective_weight_kg=effective_weight(params.bmi, params.height_cm),
        inspiratory_capacity_ml=ic,
        vital_capacity_ml=vc,
        maximum_voluntary_ventilation_l=vc * 0.75 * 35 / 1000,
        initial_blood_volume_ml=blood.total,
        hematocrit=blood.hematocrit,
        dead_space_l=interpolate(params.age, _DEAD_SPACE) * ideal,
        vo2_min_ml_per_kg_min=interpolate(params.age, _VO2_MIN),
        vo2_max_ml_per_kg_min=interpolate(params.age, _VO2_MAX.get(params.sex, _VO2_MAX["male"])),
        brain_weight_g=brain_weight,
        cerebral_cardiac_output_l_per_min=brain_weight * 0.0005,
        bounds={
            "vitals.respiration.tidal_volume_l": Bound(0, ic / 1000),
            "vitals.respiration.rr": Bound(0, 50),
            "vitals.cardio.hr": Bound(30, 220 - params.age),
            "vitals.cardio.end_systolic_volume_ml": Bound(35, 50),
        },
    )
    return meta, blood
