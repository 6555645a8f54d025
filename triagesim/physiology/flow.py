"""Blood flow dispatch and per-step blood bookkeeping.

The dispatcher splits the flow entering a block among its children. Flow that
a constricted child cannot absorb is handed to the unconstricted siblings in
proportion to their share, so the outgoing total only shrinks when every
child path is blocked.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..logging_utils import log_debug, log_warning
from ..utils import interpolate, normalize
from .anatomy import Edge, traverse
from .meta import HumanMeta
from .state import Block, BodyState


# x: white cells ratio, y: coagulation amount per minute
_PLATELETS: Sequence[Tuple[float, float]] = ((0, 0), (0.00166, 0), (0.01, 1))
# x: bleeding mL/min
_COAGULATION_FLOW: Sequence[Tuple[float, float]] = ((0, 1), (100, 0))
_VASOCONSTRICTION: Sequence[Tuple[float, float]] = ((0, 0), (1, 1))

DILATION_PER_MINUTE = 0.01
RENAL_SHARE = 0.266666
# Excess plasma water is excreted with this half-life (seconds)
WATER_HALF_LIFE_S = 40 * 60
TRANEXAMIC_THRESHOLD = 100


@dataclass
class BloodSummary:
    """What one blood walk took from, and gave to, the circulation (mL)."""

    ext_losses_ml: float = 0.0
    int_losses_ml: float = 0.0
    arterial_losses_ml: float = 0.0
    venous_losses_ml: float = 0.0
    saline_input_ml: float = 0.0
    blood_input_ml: float = 0.0
    renal_output_ml_per_min: float = 0.0
    cerebral_output_ml_per_min: float = 0.0
    chemicals_input: Dict[str, float] = field(default_factory=dict)
    # Block name -> (external, internal) losses of this walk
    block_losses_ml: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    @property
    def losses_ml(self) -> float:
        return self.ext_losses_ml + self.int_losses_ml


def dispatch(state: BodyState, edges: Sequence[Edge], flow: float) -> List[Tuple[Edge, float]]:
    """Split ``flow`` over ``edges`` according to blood shares and child resistance.

    Returns:
        ``(edge, flow)`` pairs; the flows never sum above ``flow``
    """
    total_share = sum(edge.params.blood or 0 for edge in edges)
    scale = 1.0
    if total_share > 1 + 1e-9:
        log_warning(
            f"Blood shares at {edges[0].source} sum to {total_share:.3f}; renormalizing"
        )
        scale = 1 / total_share

    constricted: List[Tuple[Edge, float]] = []
    unconstricted: List[Tuple[Edge, float]] = []
    absorbed = 0.0

    for edge in edges:
        initial = (edge.params.blood or 0) * scale * flow
        target = state.find_block(edge.target)
        if target is None:
            log_warning(f"Blood edge {edge.source} -> {edge.target} leads nowhere; treated as closed")
            constricted.append((edge, 0.0))
            absorbed += initial
            continue
        resistance = target.params.blood_resistance or 0
        if not target.params.blood_flow or resistance > 0:
            effective = initial * (1 - (resistance if target.params.blood_flow else 1))
            constricted.append((edge, effective))
            absorbed += initial - effective
        else:
            unconstricted.append((edge, initial))

    free_sum = sum(value for _, value in unconstricted)
    if absorbed > 0 and free_sum > 0:
        unconstricted = [
            (edge, value + value * absorbed / free_sum) for edge, value in unconstricted
        ]

    return constricted + unconstricted


def brain_flow(state: BodyState, meta: HumanMeta) -> float:
    """Cerebral flow (mL/min) held on a plateau across the autoregulated pressure range."""
    target = meta.cerebral_cardiac_output_l_per_min * 1000
    perfusion = state.vitals.cardio.map - state.vitals.brain.icp
    model = (
        (0, 0),
        (meta.autoregulation_start_mmhg, target),
        (meta.autoregulation_stop_mmhg, target),
        (300, 4 * target),
    )
    return interpolate(perfusion, model)


def per_minute(volume_ml: float, duration_min: float) -> float:
    return volume_ml / duration_min if duration_min > 0 else 0.0


def _hemostasis(factor: float, loss_ml: float, wbc_ratio: float, duration_min: float) -> float:
    if duration_min <= 0:
        return factor
    rate = loss_ml / duration_min
    if rate < 0.0001:
        return 0.0
    coagulation = interpolate(wbc_ratio, _PLATELETS) * interpolate(rate, _COAGULATION_FLOW)
    flow_delta = 0.015 * coagulation * duration_min
    return factor * (rate - flow_delta) / rate


def vasoconstrict(block: Block, injury: Optional[float]) -> None:
    """Injuries raise the resistance of the wounded block."""
    if injury:
        block.params.blood_resistance = normalize(
            (block.params.blood_resistance or 0) + interpolate(injury, _VASOCONSTRICTION), 0, 1
        )


def sum_blood_in_out(state: BodyState, meta: HumanMeta, duration_min: float) -> BloodSummary:
    """Walk the circulation from the heart and collect losses and inputs.

    Mutates per-block transient fields: flows, loss rates and totals, one-shot
    inputs (reset once consumed), hemostasis-adjusted bleeding factors and
    resistance.
    """
    summary = BloodSummary()
    cardio = state.vitals.cardio
    chemicals = cardio.chemicals
    tranexamic = chemicals.get("TranexamicAcid_Clearance", 0) + chemicals.get("TranexamicAcid", 0)
    global_reduction = 0.5 if tranexamic > TRANEXAMIC_THRESHOLD else 1.0
    wbc_ratio = (
        cardio.total_volume_of_white_blood_cells_ml / cardio.total_volume_ml
        if cardio.total_volume_ml > 0
        else 0.0
    )
    bleed_factor = state.variables.bleed_factor

    # Flow entering each block, and flow leaving it once losses are removed
    incoming: Dict[str, float] = {"HEART": cardio.cardiac_output * 1000}
    outgoing: Dict[str, float] = {}

    def bleeding(factor: float, reduction: Optional[float], flow: float) -> float:
        return (
            factor * flow * duration_min * bleed_factor * (1 - (reduction or 0)) * global_reduction
        )

    def enter(block: Block) -> None:
        params = block.params
        flow = incoming.get(block.name, 0.0)
        params.blood_flow_ml_per_min = flow
        delta = 0.0
        block_ext = 0.0

        if block.name == "ABDOMEN":
            summary.renal_output_ml_per_min = flow * RENAL_SHARE
        elif block.name == "BRAIN":
            summary.cerebral_output_ml_per_min = flow

        if params.arterial_bleeding_factor:
            loss = bleeding(params.arterial_bleeding_factor, params.arterial_bleeding_reduction_factor, flow)
            params.arterial_losses_ml_per_min = per_minute(loss, duration_min)
            summary.arterial_losses_ml += loss
            block_ext += loss

        if params.venous_bleeding_factor:
            loss = bleeding(params.venous_bleeding_factor, params.venous_bleeding_reduction_factor, flow)
            params.venous_bleeding_factor = _hemostasis(
                params.venous_bleeding_factor, loss, wbc_ratio, duration_min
            )
            params.venous_losses_ml_per_min = per_minute(loss, duration_min)
            summary.venous_losses_ml += loss
            block_ext += loss

        if params.instantaneous_blood_loss:
            block_ext += params.instantaneous_blood_loss * bleed_factor
            params.instantaneous_blood_loss = 0.0

        if block_ext > 0:
            params.ext_losses_flow_ml_per_min = per_minute(block_ext, duration_min)
            params.total_ext_losses_ml = (params.total_ext_losses_ml or 0) + block_ext
        else:
            params.ext_losses_flow_ml_per_min = 0.0
        summary.ext_losses_ml += block_ext
        delta -= block_ext

        block_int = 0.0
        if params.internal_bleeding_factor:
            loss = bleeding(params.internal_bleeding_factor, params.internal_bleeding_reduction_factor, flow)
            current = params.internal_bleeding_total_ml or 0
            if params.internal_bleeding_capacity_ml is not None:
                loss = max(0.0, min(loss, params.internal_bleeding_capacity_ml - current))
            params.internal_bleeding_factor = _hemostasis(
                params.internal_bleeding_factor, loss, wbc_ratio, duration_min
            )
            params.total_internal_losses_ml = (params.total_internal_losses_ml or 0) + loss
            params.internal_bleeding_total_ml = current + loss
            summary.int_losses_ml += loss
            delta -= loss
            block_int = loss

        if block_ext > 0 or block_int > 0:
            summary.block_losses_ml[block.name] = (block_ext, block_int)

        if params.saline_solution_input_one_shot:
            summary.saline_input_ml += params.saline_solution_input_one_shot
            delta += params.saline_solution_input_one_shot
            params.saline_solution_input_one_shot = 0.0

        if params.saline_solution_input_ml_per_min:
            volume = params.saline_solution_input_ml_per_min * duration_min
            summary.saline_input_ml += volume
            delta += volume

        if params.blood_input_one_shot:
            summary.blood_input_ml += params.blood_input_one_shot
            delta += params.blood_input_one_shot
            params.blood_input_one_shot = 0.0

        if params.blood_input_ml_per_min:
            volume = params.blood_input_ml_per_min * duration_min
            summary.blood_input_ml += volume
            delta += volume

        downstream = max(flow + per_minute(delta, duration_min), 0.0) if delta else flow

        if params.blood_resistance and params.blood_resistance > 0:
            params.blood_resistance = normalize(
                params.blood_resistance - DILATION_PER_MINUTE * duration_min, 0, 1
            )

        for chem_id, chem in params.chemicals.items():
            summary.chemicals_input.setdefault(chem_id, 0.0)
            if chem.once:
                summary.chemicals_input[chem_id] += chem.once
                chem.once = 0.0
            if chem.per_min:
                summary.chemicals_input[chem_id] += chem.per_min * duration_min

        if not params.blood_flow:
            downstream = 0.0
        outgoing[block.name] = downstream

    def prepare_edges(block: Block, edges: List[Edge]) -> List[Tuple[Edge, Any]]:
        flow = outgoing.get(block.name, 0.0)
        if block.name != "MEDIASTINUM":
            return dispatch(state, edges, flow)

        to_brain = [edge for edge in edges if edge.target == "NECK"]
        others = [edge for edge in edges if edge.target != "NECK"]
        q_brain = brain_flow(state, meta)
        if q_brain >= flow:
            log_debug(f"Cerebral demand {q_brain:.1f} exceeds available flow {flow:.1f}")
            return []
        prepared: List[Tuple[Edge, Any]] = [(edge, q_brain) for edge in to_brain]
        prepared.extend(dispatch(state, others, flow - q_brain))
        return prepared

    def should_follow(edge: Edge, payload: Any) -> bool:
        if not edge.params.blood or payload is None:
            return False
        incoming[edge.target] = payload
        return True

    traverse(state, "HEART", enter, should_follow=should_follow, prepare_edges=prepare_edges)
    return summary


def clear_chemicals(
    state: BodyState,
    meta: HumanMeta,
    chemicals: Mapping[str, Any],
    renal_plasma_ml: float,
    duration_min: float,
) -> None:
    """Renal clearance when a volume of distribution is known, half-life decay otherwise."""
    levels = state.vitals.cardio.chemicals
    for chem_id in sorted(levels):
        definition = chemicals.get(chem_id)
        if definition is None:
            continue
        value = levels[chem_id]
        clearance = getattr(definition, "clearance_ml_per_min", None)
        vd = getattr(definition, "vd_l_per_kg", None)
        half_life = getattr(definition, "half_life_s", None)
        if clearance and vd:
            concentration = value / (vd * meta.effective_weight_kg * 1000)
            cleaned = min(clearance * duration_min, renal_plasma_ml)
            levels[chem_id] = max(value - cleaned * concentration, 0.0)
        elif half_life:
            levels[chem_id] = value * math.exp(-math.log(2) / half_life * duration_min * 60)


def _scale_block_losses(state: BodyState, summary: BloodSummary, scale: float) -> None:
    """Shrink the losses recorded on each block by ``scale``."""
    for name, (ext, internal) in summary.block_losses_ml.items():
        params = state.blocks[name].params
        if ext:
            params.total_ext_losses_ml -= ext * (1 - scale)
            params.ext_losses_flow_ml_per_min *= scale
            if params.arterial_losses_ml_per_min:
                params.arterial_losses_ml_per_min *= scale
            if params.venous_losses_ml_per_min:
                params.venous_losses_ml_per_min *= scale
        if internal:
            params.total_internal_losses_ml -= internal * (1 - scale)
            params.internal_bleeding_total_ml -= internal * (1 - scale)
        summary.block_losses_ml[name] = (ext * scale, internal * scale)


def update_blood(
    state: BodyState,
    meta: HumanMeta,
    duration_min: float,
    chemicals: Mapping[str, Any],
) -> BloodSummary:
    """Advance blood composition by ``duration_min`` and record every volume change.

    After this call ``total_volume_ml`` differs from its previous value by
    exactly the recorded inputs minus the recorded external, internal and
    renal losses.
    """
    cardio = state.vitals.cardio
    summary = sum_blood_in_out(state, meta, duration_min)

    proteins = cardio.total_volume_of_plasma_proteins_ml
    water = cardio.total_volume_of_water_ml
    wbc = cardio.total_volume_of_white_blood_cells_ml
    rbc = cardio.total_volume_of_erythrocytes_ml
    volume = proteins + water + wbc + rbc

    plasma_ratio = (water + proteins) / volume if volume > 0 else 0.0
    renal_plasma = summary.renal_output_ml_per_min * duration_min * plasma_ratio
    clear_chemicals(state, meta, chemicals, renal_plasma, duration_min)

    losses = summary.losses_ml
    if losses > volume:
        # Losses cannot exceed what is left in the circulation
        scale = volume / losses if losses > 0 else 0.0
        summary.ext_losses_ml *= scale
        summary.int_losses_ml *= scale
        summary.arterial_losses_ml *= scale
        summary.venous_losses_ml *= scale
        _scale_block_losses(state, summary, scale)
        losses = volume

    if losses > 0:
        new_volume = volume - losses
        ratio = new_volume / volume if volume > 0 else 0.0
        proteins *= ratio
        water *= ratio
        wbc *= ratio
        rbc *= ratio
        volume = new_volume
        for chem_id in cardio.chemicals:
            cardio.chemicals[chem_id] *= ratio

    water += summary.saline_input_ml
    rbc += summary.blood_input_ml
    volume += summary.saline_input_ml + summary.blood_input_ml

    for chem_id, amount in summary.chemicals_input.items():
        cardio.chemicals[chem_id] = cardio.chemicals.get(chem_id, 0.0) + amount

    ideal_water = volume * (1 - meta.hematocrit - 0.01) * 0.9
    extra_water = water - ideal_water
    renal_loss = 0.0
    if extra_water > 0:
        decay = math.exp(-math.log(2) / WATER_HALF_LIFE_S * duration_min * 60)
        renal_loss = extra_water * (1 - decay)
        water -= renal_loss
        volume -= renal_loss

    previous = cardio.total_volume_ml
    cardio.total_volume_of_plasma_proteins_ml = proteins
    cardio.total_volume_of_water_ml = water
    cardio.total_volume_of_white_blood_cells_ml = wbc
    cardio.total_volume_of_erythrocytes_ml = rbc
    cardio.total_volume_ml = volume

    cardio.total_ext_losses_ml += summary.ext_losses_ml
    cardio.total_int_losses_ml += summary.int_losses_ml
    cardio.total_renal_losses_ml += renal_loss
    cardio.total_input_ml += summary.saline_input_ml + summary.blood_input_ml
    cardio.ext_losses_flow_ml_per_min = per_minute(summary.ext_losses_ml, duration_min)
    cardio.ext_arterial_losses_flow_ml_per_min = per_minute(summary.arterial_losses_ml, duration_min)
    cardio.ext_venous_losses_flow_ml_per_min = per_minute(summary.venous_losses_ml, duration_min)
    cardio.q_delta_ml_per_min = per_minute(volume - previous, duration_min)

    return summary
