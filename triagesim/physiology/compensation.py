"""Autonomic compensation.

A scalar sympathetic ("ortho/para") level in ``[0, 100]`` is raised by a set
of stimulus curves keyed on metric paths and decays when nothing stimulates
it. Regulated vitals are then read off response curves at that level and
rescaled into each vital's physiological bounds. A high intracranial pressure
blends in an overdrive response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..logging_utils import log_debug
from ..utils import Curve, interpolate, normalize
from .anatomy import find_connection
from .meta import HumanMeta
from .state import BodyState, read_metric, write_metric
from .vitals import nervous_system_fine


DECAY_PER_CALL = 0.99

_ICP_OVERDRIVE: Curve = ((10, 0), (50, 1))

_BREATHING_METRICS = ("vitals.respiration.rr", "vitals.respiration.tidal_volume_l")


@dataclass(frozen=True)
class CompensationRule:
    points: Curve
    # Vital driven through the T4 sympathetic chain
    t4_nerve: bool = False


@dataclass(frozen=True)
class CompensationModels:
    """Stimulus and response curves; the registry may override the defaults."""

    sympathetic: Mapping[str, Curve] = field(default_factory=dict)
    compensation: Mapping[str, CompensationRule] = field(default_factory=dict)
    overdrive: Mapping[str, CompensationRule] = field(default_factory=dict)


DEFAULT_MODELS = CompensationModels(
    sympathetic={
        "vitals.cardio.map": ((0, 100), (40, 35), (70, 0), (90, 0), (180, 0), (200, 0)),
        "vitals.cardio.do2_sys": ((0, 100), (850, 0), (1100, 0), (2000, 0)),
        "vitals.respiration.pao2": ((0, 100), (50, 50), (70, 20), (80, 5), (90, 0)),
    },
    compensation={
        "vitals.respiration.tidal_volume_l": CompensationRule(((0, 0), (20, 0.1), (100, 1)), True),
        "vitals.cardio.hr": CompensationRule(((0, 0), (100, 1)), True),
        "vitals.cardio.contractility_boost": CompensationRule(((0, 0), (100, 1)), True),
        "vitals.cardio.ra": CompensationRule(((0, 11), (100, 20)), True),
        "vitals.respiration.rr": CompensationRule(((0, 0.2), (15, 0.6), (40, 0.7), (100, 1)), True),
    },
    overdrive={
        "vitals.respiration.tidal_volume_l": CompensationRule(((0, 0.2), (1, 0.2))),
        "vitals.cardio.hr": CompensationRule(((0, 0.5), (1, 0))),
        "vitals.cardio.contractility_boost": CompensationRule(((0, 0), (1, 1))),
        "vitals.cardio.ra": CompensationRule(((0, 13), (0.5, 30))),
        "vitals.respiration.rr": CompensationRule(((0, 0.3), (1, 0.3))),
    },
)


def compute_ortho_level(state: BodyState, models: CompensationModels = DEFAULT_MODELS) -> float:
    """Update and return the sympathetic level from the current stimuli."""
    if state.is_arrested():
        state.variables.para_ortho_level = 0.0
        return 0.0

    stimulus = normalize(
        sum(
            interpolate(read_metric(state, path), curve)
            for path, curve in models.sympathetic.items()
        ),
        0,
        100,
    )
    level = state.variables.para_ortho_level
    if stimulus > 0:
        level += stimulus
    else:
        level *= DECAY_PER_CALL
    level = normalize(level, 0, 100)
    log_debug(f"Sympathetic stimulus {stimulus:.2f} -> level {level:.2f}")
    state.variables.para_ortho_level = level
    return level


def _responses(
    state: BodyState,
    meta: HumanMeta,
    level: float,
    model: Mapping[str, CompensationRule],
    t4_fine: bool,
    no_t4_level: float,
) -> Dict[str, float]:
    values: Dict[str, float] = {}
    for path, rule in model.items():
        if path in _BREATHING_METRICS and not state.vitals.spontaneous_breathing:
            continue
        value = interpolate(no_t4_level if rule.t4_nerve and not t4_fine else level, rule.points)
        bounds = meta.bounds.get(path)
        if bounds is not None:
            value = bounds.min + value * (bounds.max - bounds.min)
        values[path] = value
    return values


def do_compensate(
    state: BodyState, meta: HumanMeta, models: CompensationModels = DEFAULT_MODELS
) -> None:
    """Overwrite the regulated vitals from the current sympathetic level."""
    if state.is_arrested():
        return

    t4_fine = bool(
        find_connection(
            state,
            "BRAIN",
            "T5-L4",
            valid_block=nervous_system_fine,
            should_walk=lambda params: params.nervous,
        )
    )
    level = state.variables.para_ortho_level
    values = _responses(state, meta, level, models.compensation, t4_fine, 20)

    overdrive_level = interpolate(state.vitals.brain.icp, _ICP_OVERDRIVE)
    if overdrive_level > 0:
        overdriven = _responses(state, meta, overdrive_level, models.overdrive, t4_fine, 10)
        for path, value in values.items():
            if path in overdriven:
                values[path] = overdrive_level * overdriven[path] + (1 - overdrive_level) * value

    for path, value in values.items():
        write_metric(state, path, value)


def compensate(
    state: BodyState, meta: HumanMeta, models: Optional[CompensationModels] = None
) -> None:
    models = models or DEFAULT_MODELS
    compute_ortho_level(state, models)
    do_compensate(state, meta, models)
