"""One-instant derivation of vitals from the anatomical graph.

``compute`` covers cardio, respiration and brain oxygen delivery.
``infer_extra_outputs`` derives the clinical signs a learner can observe
(capillary refill, Glasgow scale, motricity, walking). ``detect_cardiac_arrest``
runs once per checkpoint.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import Config
from ..logging_utils import log_debug, log_info, log_warning
from ..utils import Curve, interpolate, normalize
from .anatomy import BREAK, RETURN, Edge, traverse
from .meta import HumanMeta
from .state import Block, BodyState, Environment, Glasgow, Motricity, Vitals


GAMBATE_MAX = 15.0
# Alveolar ventilation constant (mmHg) in PACO2 = K * VCO2 / VA
K = 0.863
# Water vapour pressure at body temperature (mmHg)
P_H2O = 47.0
EDV_MAX = 160.0

_SPO2_BLOOD_RATIO: Curve = ((0, 0.5), (0.6, 1))
_PAIN_EFFORT: Curve = ((1, 0), (3, 0), (10, 0.35))
_VENTRICULAR_PRESSURE: Curve = ((0, 0), (50, 80), (70, 120), (100, 145), (140, 160))
_GCS_DO2: Curve = ((1.6, 3), (2.4, 8), (4, 12), (8, 15))
_GCS_BLOOD_VOLUME: Curve = ((0.4, 3), (0.7, 12), (0.85, 14), (1, 15))

# total -> (eye, verbal, motor)
_GLASGOW_SPLIT: Dict[int, tuple] = {
    15: (4, 5, 6),
    14: (4, 4, 6),
    13: (3, 4, 6),
    12: (3, 4, 5),
    11: (3, 3, 5),
    10: (2, 3, 5),
    9: (2, 2, 5),
    8: (2, 2, 4),
    7: (1, 2, 4),
    6: (1, 1, 4),
    5: (1, 1, 3),
    4: (1, 1, 2),
    3: (1, 1, 1),
}

_POSITION_EFFORT = {"STANDING": 0.1, "SITTING": 0.09}


@dataclass
class UpperAirways:
    fio2: float
    resistance: float
    atmospheric_pressure: float


@dataclass
class LowerAirway:
    block: Block
    thorax: Optional[Block]
    compliance: float
    resistance: float
    q_percent: float


@dataclass
class UnitOutput:
    sao2: float = 0.0
    cao2: float = 0.0
    pao2: float = 0.0
    q_percent: float = 0.0


def blood_ratio(state: BodyState, meta: HumanMeta) -> float:
    return state.vitals.cardio.total_volume_ml / meta.initial_blood_volume_ml


def blood_volume(state: BodyState) -> float:
    cardio = state.vitals.cardio
    return (
        cardio.total_volume_of_plasma_proteins_ml
        + cardio.total_volume_of_water_ml
        + cardio.total_volume_of_white_blood_cells_ml
        + cardio.total_volume_of_erythrocytes_ml
    )


def is_nervous(edge: Edge, _payload: object = None) -> bool:
    return edge.params.nervous


def is_bone(edge: Edge, _payload: object = None) -> bool:
    return edge.params.bones


def nervous_system_fine(block: Block) -> bool:
    return not block.params.nervous_system_broken


def upper_airways(state: BodyState, env: Environment) -> UpperAirways:
    """Walk from the lungs to the first block breathing in a gas mix."""
    resistance: Dict[str, float] = {}
    parents: Dict[str, str] = {}
    found: Dict[str, float] = {"fio2": 0.0, "pressure": env.atmospheric_pressure, "resistance": 0.0}

    def enter(block: Block) -> Optional[str]:
        current = resistance.get(parents.get(block.name, ""), 0.0)
        own = block.params.air_resistance or 0
        if not block.params.intubated:
            current = max(current, own)
        resistance[block.name] = current

        if block.params.fio2 is not None:
            if block.params.atmospheric_pressure is not None:
                found["pressure"] = block.params.atmospheric_pressure
            if isinstance(block.params.fio2, (int, float)):
                found["fio2"] = block.params.fio2
            else:
                found["fio2"] = env.fio2
            found["resistance"] = current
            return RETURN

        if not block.params.intubated and own >= 1:
            return BREAK
        return None

    def follow(edge: Edge, _payload: object) -> bool:
        if not edge.params.o2:
            return False
        parents[edge.target] = edge.source
        return True

    traverse(state, "LUNG", enter, should_follow=follow)
    return UpperAirways(
        fio2=normalize(found["fio2"], 0, 1),
        resistance=normalize(found["resistance"], 0, 1),
        atmospheric_pressure=found["pressure"],
    )


def lower_airways(state: BodyState, upper_resistance: float) -> List[LowerAirway]:
    """Collect respiratory units with their perfusion share and effective resistance."""
    units: List[LowerAirway] = []
    resistance: Dict[str, float] = {"LUNG": upper_resistance}
    share: Dict[str, float] = {"LUNG": 1.0}
    parents: Dict[str, str] = {}
    thorax_left = state.find_block("THORAX_LEFT")
    thorax_right = state.find_block("THORAX_RIGHT")

    def enter(block: Block) -> Optional[str]:
        upper = resistance.get(parents.get(block.name, "LUNG"), upper_resistance)
        own = upper
        if block.params.air_resistance:
            own = max(upper, block.params.air_resistance)
        resistance[block.name] = own

        if block.name.startswith("UNIT_"):
            thorax = thorax_left if block.name.startswith("UNIT_BRONCHUS_1") else thorax_right
            compliance = block.params.compliance if block.params.compliance is not None else 1.0
            units.append(
                LowerAirway(
                    block=block,
                    thorax=thorax,
                    compliance=compliance,
                    resistance=normalize(own + 0.98 * (1 - compliance), 0, 1),
                    q_percent=share.get(block.name, 0.0),
                )
            )
            return BREAK
        return None

    def follow(edge: Edge, _payload: object) -> bool:
        if not edge.params.o2:
            return False
        parents[edge.target] = edge.source
        share[edge.target] = (edge.params.blood or 0) * share.get(edge.source, 1.0)
        return True

    traverse(state, "LUNG", enter, should_follow=follow)
    return units


def severinghaus_sao2(pao2: float) -> float:
    if math.isinf(pao2):
        return 1.0
    if pao2 <= 0:
        return 0.0
    return 1 / (23400 / (pao2 ** 3 + 150 * pao2) + 1)


def ellis_pao2(sao2: float) -> float:
    """Invert the dissociation curve (Ellis)."""
    if sao2 <= 0:
        return 0.0
    if sao2 >= 1:
        return math.inf
    a = 11700 / (1 / sao2 - 1)
    b = math.sqrt(50 ** 3 + a * a)
    return (b + a) ** (1 / 3) - (b - a) ** (1 / 3)


def effective_unit_volumes(
    state: BodyState, meta: HumanMeta, units: List[LowerAirway], positive_pressure: bool
) -> List[float]:
    """Tidal volume reaching each unit (L).

    Under positive pressure the units are filled up to their own capacity and
    a simple pneumothorax leaks the unventilated part into the pleural space.
    """
    if not units:
        return []
    respiration = state.vitals.respiration
    n = len(units)
    alveolar = min(respiration.tidal_volume_l * respiration.rr, meta.maximum_voluntary_ventilation_l)
    tidal = alveolar / respiration.rr if respiration.rr > 0 else 0.0
    ideal_total = max(tidal - meta.dead_space_l, 0.0)
    unit_capacity = meta.inspiratory_capacity_ml / (n * 1000)
    external = respiration.thorax_compliance if respiration.thorax_compliance is not None else 1.0

    if not positive_pressure:
        per_unit = min(ideal_total / n, unit_capacity)
        return [
            per_unit * min(unit.compliance, external) * (1 - unit.resistance) for unit in units
        ]

    maxima = [unit_capacity * (1 - unit.resistance) for unit in units]
    volumes = [0.0] * n
    to_dispatch = ideal_total
    not_full = n
    updated = True
    while to_dispatch > 0 and updated and not_full > 0:
        per_unit = to_dispatch / not_full
        updated = False
        for i in range(n):
            if volumes[i] < maxima[i]:
                new_volume = min(maxima[i], volumes[i] + per_unit)
                delta = new_volume - volumes[i]
                if delta > 0:
                    if new_volume >= maxima[i]:
                        not_full -= 1
                    to_dispatch -= delta
                    volumes[i] = new_volume
                    updated = True
    if to_dispatch > 1e-9:
        log_debug(f"Positive pressure: {to_dispatch:.3f} L could not be dispatched")

    for i, unit in enumerate(units):
        leak = volumes[i] * (1 - unit.compliance)
        volumes[i] -= volumes[i] * (1 - min(unit.compliance, external))
        if unit.block.params.pneumothorax == "SIMPLE" and unit.thorax is not None:
            pressure = unit.thorax.params.internal_pressure
            if pressure is None or isinstance(pressure, (int, float)):
                unit.thorax.params.internal_pressure = (pressure or 0) + leak
    return volumes


def vo2(state: BodyState, meta: HumanMeta) -> float:
    position = _POSITION_EFFORT.get(state.variables.body_position, 0.075)
    effort = normalize(position + interpolate(state.vitals.pain, _PAIN_EFFORT), 0, 1)
    per_kg = interpolate(effort, ((0, meta.vo2_min_ml_per_kg_min), (1, meta.vo2_max_ml_per_kg_min)))
    return per_kg * meta.effective_weight_kg


def _numeric_pressure(block: Optional[Block]) -> float:
    if block is None:
        return 0.0
    pressure = block.params.internal_pressure
    return pressure if isinstance(pressure, (int, float)) else 0.0


def _lung_vasoconstriction(state: BodyState, meta: HumanMeta, outputs: List[UnitOutput]) -> None:
    """Shift lung perfusion toward the best-oxygenated units (hypoxic vasoconstriction)."""
    size = 2 ** (meta.lung_depth + 1) - 1
    leaves = 2 ** meta.lung_depth
    if len(outputs) != leaves or leaves < 2:
        if len(outputs) != leaves:
            log_warning(f"Expected {leaves} respiratory units, found {len(outputs)}")
        return

    weights: List[float] = [0.0] * size
    shares: List[float] = [0.0] * size
    i = size - 1
    for output in reversed(outputs):
        weights[i] = output.pao2 ** 4
        i -= 1
    while i >= 0:
        left, right = 2 * i + 1, 2 * i + 2
        total = weights[left] + weights[right]
        weights[i] = total
        if total > 0:
            shares[left] = weights[left] / total
            shares[right] = weights[right] / total
        else:
            shares[left] = shares[right] = 0.5
        i -= 1
    shares[0] = shares[1] + shares[2]

    names: List[str] = []
    for i in range(size):
        if i == 0:
            names.append("LUNG")
            continue
        parent = (i - 1) // 2
        if i <= 2:
            names.append(f"BRONCHUS_{i}")
        else:
            names.append(names[parent] + ("1" if i % 2 == 1 else "2"))
        parent_block = state.find_block(names[parent])
        if parent_block is None:
            continue
        for target, index in parent_block.connections:
            if target == names[i]:
                state.connections[index].blood = shares[i]
                break


def compute(
    state: BodyState,
    meta: HumanMeta,
    env: Environment,
    duration_min: float,
    lung_vasoconstriction: Optional[bool] = None,
) -> Vitals:
    """Derive cardio, respiration and brain vitals from the current graph.

    Mutates per-unit PACO2, thorax internal pressure (pneumothorax leak) and,
    when lung vasoconstriction is enabled, the bronchial blood shares.
    """
    vitals = state.vitals
    cardio = vitals.cardio
    respiration = vitals.respiration

    if cardio.systolic_pressure > 0:
        index_choc = cardio.hr / cardio.systolic_pressure
    else:
        index_choc = math.inf if cardio.hr > 0 else 0.0
    volume_ml = blood_volume(state)
    volume_l = volume_ml / 1000

    # Cardio
    esv = cardio.end_systolic_volume_ml
    preload = (
        (0, esv),
        (0.4, esv + 10),
        (0.6, esv + 20),
        (0.9, 120),
        (1, 120),
        (1.2, EDV_MAX - 5),
        (1.3, EDV_MAX),
    )
    edv_preload = interpolate(volume_ml / meta.initial_blood_volume_ml, preload)
    edv_tamponade = interpolate(state.variables.pericardial_ml, ((0, EDV_MAX), (10, 110), (150, esv)))
    thorax_pressure = (
        _numeric_pressure(state.find_block("THORAX_LEFT"))
        + _numeric_pressure(state.find_block("THORAX_RIGHT"))
    ) / 2
    edv_pneumothorax = interpolate(thorax_pressure, ((0, EDV_MAX), (4, esv)))
    edv = min(edv_preload, edv_tamponade, edv_pneumothorax)

    stroke_volume = edv - esv
    cardiac_output = stroke_volume * cardio.hr / 1000
    mean_pressure = cardiac_output * cardio.ra
    ventricular_pressure = interpolate(stroke_volume, _VENTRICULAR_PRESSURE)
    if mean_pressure > ventricular_pressure:
        mean_pressure = ventricular_pressure
        cardiac_output = mean_pressure / cardio.ra

    cardio.stroke_volume_ml = stroke_volume
    cardio.map = mean_pressure
    cardio.systolic_pressure = 1.5 * mean_pressure
    cardio.end_diastolic_volume_ml = edv
    cardio.radial_pulse = cardio.systolic_pressure > 80
    cardio.cardiac_output = cardiac_output

    # Respiration
    oxygen_consumption = vo2(state, meta)
    vco2 = oxygen_consumption * respiration.qr

    upper = upper_airways(state, env)
    units = lower_airways(state, upper.resistance)

    positive_pressure = state.variables.positive_pressure is True
    if not vitals.spontaneous_breathing:
        respiration.tidal_volume_l = 0.0
        respiration.rr = 0.0
    if positive_pressure:
        respiration.tidal_volume_l = 0.5
        respiration.rr = 15.0

    volumes = effective_unit_volumes(state, meta, units, positive_pressure)
    respiration.alveolar_volume_l = sum(volumes)

    hb = (cardio.total_volume_of_erythrocytes_ml / 3) / volume_l if volume_l > 0 else 0.0
    aado2 = 0.3 * meta.age + (upper.fio2 - 0.21) * 60

    outputs: List[UnitOutput] = []
    for unit, volume in zip(units, volumes):
        if unit.q_percent <= 0 or unit.compliance <= 0.01:
            outputs.append(UnitOutput(q_percent=unit.q_percent))
            continue

        ventilation = volume * respiration.rr
        unit_vco2 = vco2 * unit.q_percent
        paco2 = unit.block.params.paco2 or 0.0
        if ventilation <= 0:
            # No air: CO2 accumulates in the unit
            in_lungs = meta.inspiratory_capacity_ml * 0.33
            paco2 += paco2 * unit_vco2 * duration_min / in_lungs
        else:
            paco2 = 1000 * K * unit_vco2 / (ventilation * 1000)
        unit.block.params.paco2 = paco2

        pao2_alveolar = max(
            (upper.atmospheric_pressure - P_H2O) * upper.fio2 - paco2 / respiration.qr, 0.0
        )
        pao2 = max(pao2_alveolar - aado2, 0.0)
        if index_choc > 1:
            pao2 /= index_choc
        sao2 = severinghaus_sao2(pao2)
        outputs.append(
            UnitOutput(
                sao2=sao2,
                cao2=1.34 * sao2 * hb + pao2 * 0.03,
                pao2=pao2,
                q_percent=unit.q_percent,
            )
        )

    sao2 = sum(output.sao2 * output.q_percent for output in outputs)
    cao2 = sum(output.cao2 * output.q_percent for output in outputs)
    pao2 = ellis_pao2(sao2)
    alveolar_o2 = aado2 + (pao2 * index_choc if 1 < index_choc < math.inf else pao2)
    paco2 = respiration.qr * ((upper.atmospheric_pressure - P_H2O) * upper.fio2 - alveolar_o2)

    if lung_vasoconstriction is None:
        lung_vasoconstriction = Config.LUNG_VASOCONSTRICTION
    if lung_vasoconstriction:
        _lung_vasoconstriction(state, meta, outputs)

    respiration.stridor = upper.resistance > 0.25
    respiration.sao2 = sao2
    respiration.spo2 = sao2 * interpolate(blood_ratio(state, meta), _SPO2_BLOOD_RATIO)
    respiration.cao2 = cao2
    respiration.pao2 = pao2
    respiration.paco2 = paco2
    cardio.do2_sys = cardiac_output * cao2
    cardio.vo2_ml_per_min = oxygen_consumption

    brain = state.find_block("BRAIN")
    brain_flow_l = ((brain.params.blood_flow_ml_per_min or 0) if brain else 0) / 1000
    vitals.brain.do2 = brain_flow_l * cao2

    return vitals


def glasgow(state: BodyState, meta: HumanMeta) -> Glasgow:
    do2 = state.vitals.brain.do2
    if do2 is None or math.isnan(do2):
        total = 3
    else:
        from_do2 = round(interpolate(100 * do2 / meta.brain_weight_g, _GCS_DO2))
        from_volume = math.ceil(interpolate(blood_ratio(state, meta), _GCS_BLOOD_VOLUME))
        total = int(normalize(min(from_do2, from_volume), 3, 15))
    eye, verbal, motor = _GLASGOW_SPLIT[total]
    return Glasgow(total=total, eye=eye, verbal=verbal, motor=motor)


def massive_hemorrhage(state: BodyState) -> bool:
    cardio = state.vitals.cardio
    return cardio.ext_arterial_losses_flow_ml_per_min > 0 or cardio.ext_venous_losses_flow_ml_per_min > 50


def _walk_breath_and_motricity(state: BodyState, meta: HumanMeta) -> None:
    vitals = state.vitals
    motricity = Motricity(
        left_arm="do_not_move", right_arm="do_not_move", left_leg="do_not_move", right_leg="do_not_move"
    )
    breathing = [False]
    reached = {
        "LEFT_HAND": "left_arm",
        "RIGHT_HAND": "right_arm",
        "LEFT_FOOT": "left_leg",
        "RIGHT_FOOT": "right_leg",
    }

    def enter_nervous(block: Block) -> Optional[str]:
        if not nervous_system_fine(block):
            return BREAK
        if block.name in reached:
            setattr(motricity, reached[block.name], "move")
        elif block.name == "LUNG":
            breathing[0] = True
        return None

    traverse(state, "BRAIN", enter_nervous, should_follow=is_nervous)
    vitals.spontaneous_breathing = breathing[0]

    can_walk = "maybe" if motricity.left_leg == "move" and motricity.right_leg == "move" else "no"
    if state.variables.unable_to_walk:
        can_walk = "obviously_not"
    obey_orders = vitals.glasgow.verbal >= 5 and vitals.glasgow.motor >= 6

    if can_walk != "obviously_not":
        hr = vitals.cardio.hr
        if hr > 0.9 * meta.bounds["vitals.cardio.hr"].max or hr < 10 or vitals.glasgow.eye < 4:
            can_walk = "no"
        if massive_hemorrhage(state) or vitals.pain > 9:
            can_walk = "obviously_not"

    if can_walk != "obviously_not":
        feet = set()

        def enter_bone(block: Block) -> Optional[str]:
            if block.params.broken:
                return BREAK
            if block.name in ("LEFT_FOOT", "RIGHT_FOOT"):
                feet.add(block.name)
            return None

        traverse(state, "HEAD", enter_bone, should_follow=is_bone)
        if len(feet) < 2:
            can_walk = "obviously_not"

    if can_walk == "obviously_not":
        vitals.can_walk = False
        vitals.can_walk_internal = False
    else:
        vitals.can_walk_internal = can_walk == "maybe"
        vitals.can_walk = vitals.can_walk_internal if obey_orders else "no_response"

    if vitals.glasgow.motor < 6:
        motricity = Motricity(
            left_arm="no_response", right_arm="no_response", left_leg="no_response", right_leg="no_response"
        )
    if vitals.cardio.hr < 10:
        vitals.spontaneous_breathing = False
    vitals.motricity = motricity


def fix_position(state: BodyState, fallback: Optional[str] = None) -> None:
    """Make sure the human can hold its position."""
    variables = state.variables
    vitals = state.vitals
    if not vitals.can_walk and variables.body_position == "STANDING":
        if fallback is None or fallback == "STANDING":
            variables.body_position = "SITTING"

    spine_broken = False
    for name in ("C1-C4", "C5-C7"):
        block = state.find_block(name)
        if block is not None and block.params.nervous_system_broken:
            spine_broken = True
    if vitals.glasgow.eye < 4 or vitals.glasgow.motor < 6 or spine_broken:
        if variables.body_position in ("STANDING", "SITTING"):
            if fallback is not None and fallback not in ("STANDING", "SITTING"):
                variables.body_position = fallback
            else:
                variables.body_position = "SUPINE_DECUBITUS"


def infer_extra_outputs(state: BodyState, meta: HumanMeta) -> None:
    vitals = state.vitals
    cardio = vitals.cardio
    if cardio.systolic_pressure:
        vitals.capillary_refill_time = 2 * cardio.hr / cardio.systolic_pressure
    else:
        vitals.capillary_refill_time = 10.0
    vitals.glasgow = glasgow(state, meta)
    vitals.pain = max((block.params.pain or 0 for block in state.blocks.values()), default=0)
    _walk_breath_and_motricity(state, meta)
    vitals.visible_pain = vitals.pain if vitals.glasgow.verbal >= 5 else None
    fix_position(state)


def _gambate_score(state: BodyState, duration_min: float) -> float:
    cardio = state.vitals.cardio
    score = 0.0
    if cardio.do2_sys < cardio.vo2_ml_per_min:
        score += (cardio.vo2_ml_per_min - cardio.do2_sys) / 100
    if cardio.map < 40:
        score += (40 - cardio.map) / 100
    if state.vitals.respiration.sao2 < 0.7:
        score += (0.7 - state.vitals.respiration.sao2) * 20
    return score * duration_min


def detect_cardiac_arrest(state: BodyState, duration_min: float) -> None:
    """Drain the resistance bar while vitals are critical; arrest once it is empty.

    Arrest is terminal: once recorded, every later call zeroes the vitals again.
    """
    vitals = state.vitals
    cardio = vitals.cardio
    respiration = vitals.respiration
    critical = (
        vitals.cardiac_arrest is not None
        or cardio.hr < 30
        or cardio.map < 40
        or respiration.sao2 < 0.7
    )
    if not critical:
        if vitals.gambate_bar < GAMBATE_MAX:
            vitals.gambate_bar = min(vitals.gambate_bar + duration_min, GAMBATE_MAX)
        return

    if vitals.cardiac_arrest is None and vitals.gambate_bar > 0:
        vitals.gambate_bar -= _gambate_score(state, duration_min)
        return

    if vitals.cardiac_arrest is None:
        log_info(f"Cardiac arrest at t={state.time}")
        vitals.cardiac_arrest = state.time
    vitals.gambate_bar = min(vitals.gambate_bar, 0.0)
    cardio.hr = 0.0
    cardio.map = 0.0
    cardio.stroke_volume_ml = 0.0
    cardio.cardiac_output = 0.0
    respiration.rr = 0.0
    respiration.sao2 = 0.0
    respiration.spo2 = 0.0
    respiration.cao2 = 0.0
    respiration.tidal_volume_l = 0.0
    respiration.alveolar_volume_l = 0.0
    vitals.brain.do2 = 0.0
    vitals.glasgow = Glasgow(total=3, eye=1, verbal=1, motor=1)
    vitals.capillary_refill_time = None

    # Dead bodies do not bleed
    cardio.ext_losses_flow_ml_per_min = 0.0
    cardio.ext_venous_losses_flow_ml_per_min = 0.0
    cardio.ext_arterial_losses_flow_ml_per_min = 0.0
    for block in state.blocks.values():
        block.params.arterial_losses_ml_per_min = 0.0
        block.params.venous_losses_ml_per_min = 0.0
        block.params.ext_losses_flow_ml_per_min = 0.0
