"""Body creation and checkpointed advancement.

``advance`` is the only way a body moves forward in time. It never mutates its
input: the state is copied once, then folded over an ordered list of
checkpoints. Checkpoints are the activation times of the rules falling in the
advanced window, the points of an absolute integration grid and the end of the
window. Splitting one advance into several gives a bit-identical result when
every split point is itself a checkpoint of the whole window, that is a grid
point or the time of a rule inside it. Any other split adds a checkpoint and
the results only agree approximately.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..config import Config
from ..logging_utils import log_debug, log_deterministic, log_warning
from ..utils import Curve, interpolate, normalize
from .anatomy import build_anatomy, traverse
from .compensation import DEFAULT_MODELS, CompensationModels, compensate, do_compensate
from .flow import update_blood
from .meta import BodyFactoryParams, HumanMeta, compute_meta, ortho_level_from_age
from .patches import Rule, apply_rules_at, rules_in_window
from .state import Block, BodyState, Environment, Vitals
from .vitals import compute, detect_cardiac_arrest, infer_extra_outputs


# x: intracranial mass (mL), y: intracranial pressure (mmHg)
_ICP: Curve = ((0, 5), (120, 10), (150, 100))

THORAX_COMPLIANCE_DELTA = -0.01
PERICARDIAL_MAX_ML = 1500

_STABILIZE_EPSILON = 0.25
_STABILIZE_MAX_ITERATIONS = 200


@dataclass
class HumanBody:
    meta: HumanMeta
    state: BodyState


# ===== Time-evolving parameters =====


def _update_air_resistance(state: BodyState, duration_min: float) -> None:
    def enter(block: Block) -> None:
        delta = block.params.air_resistance_delta
        if delta:
            block.params.air_resistance = normalize(
                (block.params.air_resistance or 0) + delta * duration_min, 0, 1
            )

    traverse(state, "LUNG", enter, should_follow=lambda edge, _payload: edge.params.o2)


def _update_compliances(state: BodyState, duration_min: float) -> None:
    for block in state.blocks.values():
        delta = block.params.compliance_delta
        if delta:
            current = block.params.compliance if block.params.compliance is not None else 1.0
            block.params.compliance = normalize(current + delta * duration_min, 0, 1)


def _update_thorax_compliance(state: BodyState, duration_min: float) -> None:
    burned = 0
    for name in ("THORAX_LEFT", "THORAX_RIGHT"):
        block = state.find_block(name)
        if block is None:
            log_warning(f"{name} missing from anatomy; thorax compliance unchanged")
            return
        if (block.params.burned_percent or 0) > 0.8 and float(block.params.burn_level or 0) > 2:
            burned += 1
    if burned == 2:
        respiration = state.vitals.respiration
        respiration.thorax_compliance = normalize(
            respiration.thorax_compliance + THORAX_COMPLIANCE_DELTA * duration_min, 0, 1
        )


def _update_variables(state: BodyState, duration_min: float) -> None:
    variables = state.variables
    if variables.intracranial_mass_delta_per_min:
        variables.intracranial_mass += variables.intracranial_mass_delta_per_min * duration_min
    if variables.pericardial_delta_min:
        variables.pericardial_ml = normalize(
            variables.pericardial_ml + variables.pericardial_delta_min * duration_min,
            0,
            PERICARDIAL_MAX_ML,
        )
    state.vitals.brain.icp = interpolate(variables.intracranial_mass, _ICP)


def update_vitals(
    state: BodyState,
    meta: HumanMeta,
    env: Environment,
    new_time: float,
    *,
    chemicals: Optional[Mapping[str, Any]] = None,
    lung_vasoconstriction: Optional[bool] = None,
) -> BodyState:
    """Bring ``state`` up to ``new_time`` in place.

    Integrates the time-evolving parameters, walks the circulation for blood
    bookkeeping and re-derives vitals. An arrested body only has its clock
    moved.
    """
    duration_min = (new_time - state.time) / 60
    if duration_min >= 0 and not state.is_arrested():
        _update_air_resistance(state, duration_min)
        _update_compliances(state, duration_min)
        _update_variables(state, duration_min)
        _update_thorax_compliance(state, duration_min)
        update_blood(state, meta, duration_min, chemicals or {})
        compute(state, meta, env, duration_min, lung_vasoconstriction)
    state.time = new_time
    return state


# ===== Checkpointed advance =====


def integration_checkpoints(
    start: float, end: float, step: float, rule_times: Iterable[float] = ()
) -> List[float]:
    """Sorted, deduplicated checkpoints in ``(start, end]``.

    Grid points are multiples of ``step`` anchored at time 0, never offsets
    from ``start``. A split of ``(start, end]`` at one of the returned points
    yields the same checkpoints as the whole window.
    """
    points = {end}
    points.update(t for t in rule_times if start < t <= end)
    if step > 0:
        k = math.floor(start / step) + 1
        while k * step < end:
            if k * step > start:
                points.add(k * step)
            k += 1
    return sorted(points)


def advance(
    state: BodyState,
    meta: HumanMeta,
    env: Environment,
    duration: float,
    pathologies: Sequence[Any] = (),
    effects: Sequence[Any] = (),
    *,
    step: Optional[float] = None,
    chemicals: Optional[Mapping[str, Any]] = None,
    models: Optional[CompensationModels] = None,
    lung_vasoconstriction: Optional[bool] = None,
) -> BodyState:
    """Return the state ``duration`` seconds after ``state``.

    ``pathologies`` and ``effects`` are any objects exposing ``rules``, a
    sequence of :class:`Rule` dated in absolute time. Rules dated in
    ``(state.time, state.time + duration]`` are applied at their checkpoint.

    ``advance(advance(s, a), b)`` equals ``advance(s, a + b)`` only when
    ``s.time + a`` is a checkpoint of the combined window.

    Args:
        step: integration grid in seconds, defaults to ``Config.STEP_DURATION_SECONDS``
        chemicals: chemical definitions by id, used for clearance
        models: compensation curves, defaults to the built-in models
        lung_vasoconstriction: defaults to ``Config.LUNG_VASOCONSTRICTION``
    """
    new_state = state.copy()
    if duration <= 0:
        return new_state

    if step is None:
        step = Config.STEP_DURATION_SECONDS
    if lung_vasoconstriction is None:
        lung_vasoconstriction = Config.LUNG_VASOCONSTRICTION

    start = state.time
    end = start + duration
    rules: List[Rule] = rules_in_window(list(pathologies) + list(effects), start, end)
    checkpoints = integration_checkpoints(start, end, step, [rule.time for rule in rules])
    log_debug(f"Advance {start} -> {end}: {len(checkpoints)} checkpoints, {len(rules)} rules")

    for checkpoint in checkpoints:
        duration_min = (checkpoint - new_state.time) / 60
        update_vitals(
            new_state,
            meta,
            env,
            checkpoint,
            chemicals=chemicals,
            lung_vasoconstriction=lung_vasoconstriction,
        )
        apply_rules_at(new_state, meta, checkpoint, rules)
        if not new_state.is_arrested():
            compensate(new_state, meta, models)
            infer_extra_outputs(new_state, meta)
        detect_cardiac_arrest(new_state, duration_min)

    return new_state


# ===== Body creation =====


def _initial_state(meta: HumanMeta, params: BodyFactoryParams, blood) -> BodyState:
    state = BodyState(vitals=Vitals())
    cardio = state.vitals.cardio
    cardio.total_volume_ml = blood.total
    cardio.total_volume_of_plasma_proteins_ml = blood.proteins
    cardio.total_volume_of_water_ml = blood.water
    cardio.total_volume_of_white_blood_cells_ml = blood.leuco
    cardio.total_volume_of_erythrocytes_ml = blood.red
    cardio.vo2_ml_per_min = meta.vo2_min_ml_per_kg_min * meta.effective_weight_kg
    if params.sugar_level:
        cardio.blood_sugar_level = params.sugar_level
    if params.temperature:
        state.vitals.temperature = params.temperature
    state.variables.para_ortho_level = ortho_level_from_age(params.age)
    return state


def stabilize_ortho_level(
    body: HumanBody,
    env: Environment,
    models: Optional[CompensationModels] = None,
    lung_vasoconstriction: Optional[bool] = None,
) -> None:
    """Search the resting sympathetic level by bisection.

    Each pass applies the current level, re-derives vitals at zero duration
    and measures how far the stimulus would move the level. The step is halved
    each time the direction flips.
    """
    state = body.state
    adjust = 5.0
    way = 0
    for _ in range(_STABILIZE_MAX_ITERATIONS):
        current = state.variables.para_ortho_level
        do_compensate(state, body.meta, models or DEFAULT_MODELS)
        update_vitals(
            state, body.meta, env, state.time, lung_vasoconstriction=lung_vasoconstriction
        )
        compensate(state, body.meta, models)
        infer_extra_outputs(state, body.meta)
        delta = state.variables.para_ortho_level - current

        if not (abs(delta) > _STABILIZE_EPSILON and adjust > _STABILIZE_EPSILON):
            return
        if way == 0:
            way = 1 if delta > 0 else -1
        if way * delta < 0:
            way = -way
            adjust /= 2
        state.variables.para_ortho_level = current + adjust * way
    log_warning("Sympathetic level did not stabilize; keeping the last pass")


def create_body(
    params: Optional[BodyFactoryParams] = None,
    env: Optional[Environment] = None,
    *,
    models: Optional[CompensationModels] = None,
    lung_vasoconstriction: Optional[bool] = None,
) -> HumanBody:
    """Build a deterministic resting body for ``params``."""
    params = params or BodyFactoryParams()
    env = env or Environment()
    meta, blood = compute_meta(params)
    state = _initial_state(meta, params, blood)
    build_anatomy(state, meta.ideal_weight_kg, params.lung_depth)

    body = HumanBody(meta=meta, state=state)
    stabilize_ortho_level(body, env, models, lung_vasoconstriction)
    log_deterministic(
        f"Created body: {params.sex}, {params.age}y, {meta.initial_blood_volume_ml:.0f} mL blood, "
        f"level {state.variables.para_ortho_level:.1f}"
    )
    return body


__all__ = [
    "HumanBody",
    "advance",
    "apply_rules_at",
    "create_body",
    "detect_cardiac_arrest",
    "integration_checkpoints",
    "stabilize_ortho_level",
    "update_vitals",
]
