"""Body state containers.

A ``BodyState`` is the complete mutable picture of one human at one instant:
the anatomical blocks with their physiological parameters, the shared
connection records, the derived vitals and a handful of free global
variables. Snapshots are value-copied with :meth:`BodyState.copy`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from ..config import Config


FRESH_AIR = "fresh_air"

# Fracture severities, ordered from least to most severe
BROKEN_LEVELS = ("non_displaced", "displaced", "open")

BODY_POSITIONS = (
    "STANDING",
    "SITTING",
    "SUPINE_DECUBITUS",
    "PRONE_DECUBITUS",
    "RECOVERY",
)


@dataclass
class ChemicalInput:
    """Drug administration on a block: a one-shot bolus plus a continuous rate."""

    once: float = 0.0
    per_min: float = 0.0


@dataclass
class ConnectionParams:
    """Edge record shared by both endpoints of a connection."""

    blood: Optional[float] = None
    o2: bool = False
    nervous: bool = False
    bones: bool = False


@dataclass
class BlockParams:
    # Patchable by rules
    blood_flow: bool = True
    instantaneous_blood_loss: Optional[float] = None
    arterial_bleeding_factor: Optional[float] = None
    arterial_bleeding_reduction_factor: Optional[float] = None
    venous_bleeding_factor: Optional[float] = None
    venous_bleeding_reduction_factor: Optional[float] = None
    internal_bleeding_factor: Optional[float] = None
    internal_bleeding_reduction_factor: Optional[float] = None
    saline_solution_input_one_shot: Optional[float] = None
    saline_solution_input_ml_per_min: Optional[float] = None
    blood_input_one_shot: Optional[float] = None
    blood_input_ml_per_min: Optional[float] = None
    chemicals: Dict[str, ChemicalInput] = field(default_factory=dict)
    fio2: Optional[Union[float, str]] = None
    atmospheric_pressure: Optional[float] = None
    intubated: Optional[bool] = None
    air_resistance: Optional[float] = None
    air_resistance_delta: Optional[float] = None
    compliance: Optional[float] = None
    compliance_delta: Optional[float] = None
    blood_resistance: float = 0.0
    broken: Optional[str] = None
    nervous_system_broken: Optional[bool] = None
    pain: Optional[float] = None
    burned_percent: Optional[float] = None
    burn_level: Optional[float] = None
    internal_pressure: Optional[Union[float, str]] = None
    pneumothorax: Optional[str] = None
    hematoma: Optional[bool] = None

    # Computed by the physiology model
    blood_flow_ml_per_min: Optional[float] = None
    ext_losses_flow_ml_per_min: Optional[float] = None
    arterial_losses_ml_per_min: Optional[float] = None
    venous_losses_ml_per_min: Optional[float] = None
    total_ext_losses_ml: Optional[float] = None
    total_internal_losses_ml: Optional[float] = None
    internal_bleeding_capacity_ml: Optional[float] = None
    internal_bleeding_total_ml: Optional[float] = None
    paco2: Optional[float] = None


COMPUTED_BLOCK_FIELDS: FrozenSet[str] = frozenset(
    {
        "blood_flow_ml_per_min",
        "ext_losses_flow_ml_per_min",
        "arterial_losses_ml_per_min",
        "venous_losses_ml_per_min",
        "total_ext_losses_ml",
        "total_internal_losses_ml",
        "internal_bleeding_capacity_ml",
        "internal_bleeding_total_ml",
        "paco2",
    }
)

BLOCK_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(BlockParams))


@dataclass
class Block:
    """Named anatomical region. ``connections`` holds ``(target, connection index)`` pairs."""

    name: str
    params: BlockParams = field(default_factory=BlockParams)
    connections: List[Tuple[str, int]] = field(default_factory=list)


@dataclass
class Glasgow:
    total: int = 15
    eye: int = 4
    verbal: int = 5
    motor: int = 6


@dataclass
class Motricity:
    left_arm: str = "move"
    right_arm: str = "move"
    left_leg: str = "move"
    right_leg: str = "move"


@dataclass
class Respiration:
    qr: float = 0.84
    tidal_volume_l: float = 0.5
    alveolar_volume_l: float = 0.45
    sao2: float = 0.97
    spo2: float = 0.97
    cao2: float = 200.0
    pao2: float = 80.0
    paco2: float = 50.0
    rr: float = 15.0
    stridor: bool = False
    thorax_compliance: float = 1.0


@dataclass
class Cardio:
    total_volume_ml: float = 0.0
    total_volume_of_plasma_proteins_ml: float = 0.0
    total_volume_of_water_ml: float = 0.0
    total_volume_of_white_blood_cells_ml: float = 0.0
    total_volume_of_erythrocytes_ml: float = 0.0
    total_ext_losses_ml: float = 0.0
    total_int_losses_ml: float = 0.0
    total_renal_losses_ml: float = 0.0
    total_input_ml: float = 0.0
    ext_losses_flow_ml_per_min: float = 0.0
    ext_arterial_losses_flow_ml_per_min: float = 0.0
    ext_venous_losses_flow_ml_per_min: float = 0.0
    radial_pulse: bool = True
    chemicals: Dict[str, float] = field(default_factory=dict)
    end_diastolic_volume_ml: float = 120.0
    end_systolic_volume_ml: float = 50.0
    contractility_boost: float = 0.3
    stroke_volume_ml: float = 70.0
    ra: float = 13.0
    cardiac_output: float = 4.9
    q_delta_ml_per_min: float = 0.0
    map: float = 70.0
    systolic_pressure: float = 105.0
    hr: float = 70.0
    do2_sys: float = 1000.0
    vo2_ml_per_min: float = 0.0
    blood_sugar_level: float = 6.5


@dataclass
class Brain:
    rbr: float = 60.0
    gcs: float = 15.0
    do2: float = 138.25
    icp: float = 5.0


@dataclass
class Vitals:
    cardiac_arrest: Optional[float] = None
    gambate_bar: float = 15.0
    glasgow: Glasgow = field(default_factory=Glasgow)
    capillary_refill_time: Optional[float] = 3.0
    pain: float = 0.0
    visible_pain: Optional[float] = 0.0
    can_walk: Union[bool, str] = True
    can_walk_internal: bool = True
    spontaneous_breathing: bool = True
    temperature: float = 36.6
    respiration: Respiration = field(default_factory=Respiration)
    motricity: Motricity = field(default_factory=Motricity)
    cardio: Cardio = field(default_factory=Cardio)
    brain: Brain = field(default_factory=Brain)


@dataclass
class BodyVariables:
    intracranial_mass: float = 0.0
    intracranial_mass_delta_per_min: Optional[float] = None
    bleed_factor: float = 1.0
    para_ortho_level: float = 0.0
    body_position: str = "STANDING"
    pericardial_ml: float = 0.0
    pericardial_delta_min: float = 0.0
    positive_pressure: Optional[Union[bool, str]] = None
    unable_to_walk: bool = False


VARIABLE_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(BodyVariables))


@dataclass
class Environment:
    """Ambient conditions shared by every human."""

    atmospheric_pressure: float = field(default_factory=lambda: Config.ATMOSPHERIC_PRESSURE_MMHG)
    fio2: float = field(default_factory=lambda: Config.FIO2)


@dataclass
class BodyState:
    time: float = 0.0
    blocks: Dict[str, Block] = field(default_factory=dict)
    connections: List[ConnectionParams] = field(default_factory=list)
    vitals: Vitals = field(default_factory=Vitals)
    variables: BodyVariables = field(default_factory=BodyVariables)

    def copy(self) -> "BodyState":
        return copy.deepcopy(self)

    def find_block(self, name: str) -> Optional[Block]:
        return self.blocks.get(name)

    def connection(self, index: int) -> ConnectionParams:
        return self.connections[index]

    def is_arrested(self) -> bool:
        return self.vitals.cardiac_arrest is not None


def read_metric(target: Any, path: str) -> Any:
    """Read a dotted attribute path such as ``vitals.cardio.hr``.

    Raises:
        KeyError: if a segment of the path does not exist
    """
    value = target
    for segment in path.split("."):
        if isinstance(value, dict):
            if segment not in value:
                raise KeyError(path)
            value = value[segment]
        elif hasattr(value, segment):
            value = getattr(value, segment)
        else:
            raise KeyError(path)
    return value


def write_metric(target: Any, path: str, value: Any) -> None:
    head, _, last = path.rpartition(".")
    owner = read_metric(target, head) if head else target
    if not hasattr(owner, last):
        raise KeyError(path)
    setattr(owner, last, value)
