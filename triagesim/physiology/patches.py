"""Rule patches and their per-field merge policies.

Every patchable field of ``BlockParams`` and ``BodyVariables`` has exactly one
merge function below. The tables are checked against the dataclass fields at
import time, so adding a field without deciding how it merges fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from ..logging_utils import log_warning
from .flow import vasoconstrict
from .meta import HumanMeta
from .state import (
    BLOCK_FIELDS,
    BODY_POSITIONS,
    BROKEN_LEVELS,
    COMPUTED_BLOCK_FIELDS,
    VARIABLE_FIELDS,
    Block,
    BodyState,
    ChemicalInput,
)
from .vitals import fix_position


PNEUMOTHORAX_TYPES = ("SIMPLE", "OPEN")
INTERNAL_PRESSURE_COMMANDS = ("DRAIN", "RESET")


class UnknownPatchFieldError(KeyError):
    """Raised when a patch names a field that has no merge policy."""

    def __init__(self, *, field_name: str, target: str) -> None:
        self.field_name = field_name
        self.target = target
        message = (
            f"Unknown {target} patch field {field_name!r}.\n"
            "Remediation tips:\n"
            "  - Check the spelling of the field in the content catalog\n"
            "  - Computed fields (flows, losses, capacities) cannot be patched"
        )
        super().__init__(message)


@dataclass(frozen=True)
class Rule:
    """A dated patch. ``time`` is absolute simulated time in seconds."""

    time: float
    blocks: Tuple[str, ...] = ()
    block_patch: Mapping[str, Any] = field(default_factory=dict)
    variable_patch: Mapping[str, Any] = field(default_factory=dict)


BlockMerge = Callable[[Block, Any], None]
VariableMerge = Callable[[BodyState, HumanMeta, Any], None]


def _add(name: str) -> BlockMerge:
    def merge(block: Block, value: Any) -> None:
        if value:
            setattr(block.params, name, (getattr(block.params, name) or 0) + value)

    return merge


def _max(name: str) -> BlockMerge:
    def merge(block: Block, value: Any) -> None:
        if value is not None:
            current = getattr(block.params, name)
            setattr(block.params, name, value if current is None else max(current, value))

    return merge


def _overwrite(name: str) -> BlockMerge:
    def merge(block: Block, value: Any) -> None:
        if value is not None:
            setattr(block.params, name, value)

    return merge


def _flag(name: str) -> BlockMerge:
    def merge(block: Block, value: Any) -> None:
        if value is not None:
            setattr(block.params, name, bool(value) or bool(getattr(block.params, name)))

    return merge


def _air_resistance(block: Block, value: Any) -> None:
    if value:
        block.params.air_resistance = max(value, block.params.air_resistance or 0)


def _compliance(block: Block, value: Any) -> None:
    if value is not None:
        current = block.params.compliance if block.params.compliance is not None else 1.0
        block.params.compliance = min(value, current)


def _venous_bleeding(block: Block, value: Any) -> None:
    _add("venous_bleeding_factor")(block, value)
    vasoconstrict(block, value)


def _atmospheric_pressure(block: Block, value: Any) -> None:
    if value:
        block.params.atmospheric_pressure = value


def _chemicals(block: Block, value: Any) -> None:
    for chem_id, dose in (value or {}).items():
        chem = block.params.chemicals.setdefault(chem_id, ChemicalInput())
        once = dose.get("once") if isinstance(dose, Mapping) else getattr(dose, "once", 0)
        per_min = dose.get("per_min") if isinstance(dose, Mapping) else getattr(dose, "per_min", 0)
        if once:
            chem.once += once
        if per_min:
            chem.per_min += per_min


def _broken(block: Block, value: Any) -> None:
    if value is None:
        return
    if value not in BROKEN_LEVELS:
        raise ValueError(f"Unknown fracture type {value!r}")
    current = block.params.broken
    if current is None or BROKEN_LEVELS.index(value) > BROKEN_LEVELS.index(current):
        block.params.broken = value


def _burn_level(block: Block, value: Any) -> None:
    if value is not None and float(value) > float(block.params.burn_level or 0):
        block.params.burn_level = value


def _internal_pressure(block: Block, value: Any) -> None:
    current = block.params.internal_pressure
    if value == "RESET":
        if current is None or isinstance(current, (int, float)):
            block.params.internal_pressure = 0.0
    elif value == "DRAIN":
        block.params.internal_pressure = "DRAIN"
    elif isinstance(value, (int, float)):
        # A drained thorax stays drained
        if current is None or isinstance(current, (int, float)):
            block.params.internal_pressure = (current or 0) + value


def _pneumothorax(block: Block, value: Any) -> None:
    if block.params.pneumothorax is None:
        block.params.pneumothorax = value
    elif block.params.pneumothorax == "SIMPLE" and value == "OPEN":
        block.params.pneumothorax = "OPEN"


BLOCK_MERGES: Dict[str, BlockMerge] = {
    "blood_flow": _overwrite("blood_flow"),
    "instantaneous_blood_loss": _add("instantaneous_blood_loss"),
    "arterial_bleeding_factor": _add("arterial_bleeding_factor"),
    "arterial_bleeding_reduction_factor": _max("arterial_bleeding_reduction_factor"),
    "venous_bleeding_factor": _venous_bleeding,
    "venous_bleeding_reduction_factor": _max("venous_bleeding_reduction_factor"),
    "internal_bleeding_factor": _add("internal_bleeding_factor"),
    "internal_bleeding_reduction_factor": _max("internal_bleeding_reduction_factor"),
    "saline_solution_input_one_shot": _add("saline_solution_input_one_shot"),
    "saline_solution_input_ml_per_min": _add("saline_solution_input_ml_per_min"),
    "blood_input_one_shot": _add("blood_input_one_shot"),
    "blood_input_ml_per_min": _add("blood_input_ml_per_min"),
    "chemicals": _chemicals,
    "fio2": _overwrite("fio2"),
    "atmospheric_pressure": _atmospheric_pressure,
    "intubated": _overwrite("intubated"),
    "air_resistance": _air_resistance,
    "air_resistance_delta": _add("air_resistance_delta"),
    "compliance": _compliance,
    "compliance_delta": _add("compliance_delta"),
    "blood_resistance": _add("blood_resistance"),
    "broken": _broken,
    "nervous_system_broken": _flag("nervous_system_broken"),
    "pain": _max("pain"),
    "burned_percent": _max("burned_percent"),
    "burn_level": _burn_level,
    "internal_pressure": _internal_pressure,
    "pneumothorax": _pneumothorax,
    "hematoma": _flag("hematoma"),
}


def _add_variable(name: str) -> VariableMerge:
    def merge(state: BodyState, meta: HumanMeta, value: Any) -> None:
        if value is not None:
            setattr(state.variables, name, (getattr(state.variables, name) or 0) + value)

    return merge


def _bleed_factor(state: BodyState, meta: HumanMeta, value: Any) -> None:
    if value is not None:
        state.variables.bleed_factor *= value


def _body_position(state: BodyState, meta: HumanMeta, value: Any) -> None:
    if value is None:
        return
    previous = state.variables.body_position
    if value == "RECOVERY" or state.vitals.glasgow.motor == 6:
        state.variables.body_position = value
        fix_position(state, previous)


def _positive_pressure(state: BodyState, meta: HumanMeta, value: Any) -> None:
    state.variables.positive_pressure = value


def _unable_to_walk(state: BodyState, meta: HumanMeta, value: Any) -> None:
    state.variables.unable_to_walk = state.variables.unable_to_walk or value is True


VARIABLE_MERGES: Dict[str, VariableMerge] = {
    "intracranial_mass": _add_variable("intracranial_mass"),
    "intracranial_mass_delta_per_min": _add_variable("intracranial_mass_delta_per_min"),
    "bleed_factor": _bleed_factor,
    "para_ortho_level": _add_variable("para_ortho_level"),
    "body_position": _body_position,
    "pericardial_ml": _add_variable("pericardial_ml"),
    "pericardial_delta_min": _add_variable("pericardial_delta_min"),
    "positive_pressure": _positive_pressure,
    "unable_to_walk": _unable_to_walk,
}


def _check_exhaustive() -> None:
    patchable = BLOCK_FIELDS - COMPUTED_BLOCK_FIELDS
    missing = (patchable - BLOCK_MERGES.keys()) | (VARIABLE_FIELDS - VARIABLE_MERGES.keys())
    stale = (BLOCK_MERGES.keys() - patchable) | (VARIABLE_MERGES.keys() - VARIABLE_FIELDS)
    if missing or stale:
        raise RuntimeError(
            f"Patch merge tables out of sync: missing={sorted(missing)} stale={sorted(stale)}"
        )


_check_exhaustive()


def _check_choice(key: str, value: Any, choices: Tuple[str, ...]) -> None:
    if value is not None and value not in choices:
        raise ValueError(f"Invalid value {value!r} for {key}; expected one of {list(choices)}")


BLOCK_CHOICES: Dict[str, Tuple[str, ...]] = {
    "broken": BROKEN_LEVELS,
    "pneumothorax": PNEUMOTHORAX_TYPES,
}
VARIABLE_CHOICES: Dict[str, Tuple[str, ...]] = {"body_position": BODY_POSITIONS}


def validate_patch(block_patch: Mapping[str, Any], variable_patch: Mapping[str, Any]) -> None:
    """Fail fast on keys without a merge policy and on unknown enum values.

    Raises:
        UnknownPatchFieldError: a key has no merge policy
        ValueError: an enum-valued field carries a value its merge cannot apply
    """
    for key, value in block_patch.items():
        if key not in BLOCK_MERGES:
            raise UnknownPatchFieldError(field_name=key, target="block")
        if key in BLOCK_CHOICES:
            _check_choice(key, value, BLOCK_CHOICES[key])
    for key, value in variable_patch.items():
        if key not in VARIABLE_MERGES:
            raise UnknownPatchFieldError(field_name=key, target="variable")
        if key in VARIABLE_CHOICES:
            _check_choice(key, value, VARIABLE_CHOICES[key])

    pressure = block_patch.get("internal_pressure")
    numeric = isinstance(pressure, (int, float)) and not isinstance(pressure, bool)
    if pressure is not None and not numeric and pressure not in INTERNAL_PRESSURE_COMMANDS:
        raise ValueError(
            f"Invalid value {pressure!r} for internal_pressure; "
            f"expected a number or one of {list(INTERNAL_PRESSURE_COMMANDS)}"
        )


def apply_block_patch(block: Block, patch: Mapping[str, Any]) -> None:
    for key, value in patch.items():
        merge = BLOCK_MERGES.get(key)
        if merge is None:
            raise UnknownPatchFieldError(field_name=key, target="block")
        merge(block, value)


def apply_variable_patch(state: BodyState, meta: HumanMeta, patch: Mapping[str, Any]) -> None:
    for key, value in patch.items():
        merge = VARIABLE_MERGES.get(key)
        if merge is None:
            raise UnknownPatchFieldError(field_name=key, target="variable")
        merge(state, meta, value)


def apply_rule(state: BodyState, meta: HumanMeta, rule: Rule) -> None:
    """Merge one rule into the state; targets missing from the anatomy are skipped."""
    for name in rule.blocks:
        block = state.find_block(name)
        if block is None:
            log_warning(f"Rule at t={rule.time} targets missing block {name}; skipped")
            continue
        apply_block_patch(block, rule.block_patch)
    apply_variable_patch(state, meta, rule.variable_patch)


def rules_in_window(sources: Iterable[Any], start: float, end: float) -> list:
    """Rules of every source whose absolute time falls in ``(start, end]``."""
    return [rule for source in sources for rule in source.rules if start < rule.time <= end]


def apply_rules_at(
    state: BodyState, meta: HumanMeta, time: float, rules: Iterable[Rule]
) -> Optional[BodyState]:
    """Apply the rules dated exactly ``time`` to ``state`` in place."""
    applied = False
    for rule in rules:
        if rule.time == time:
            apply_rule(state, meta, rule)
            applied = True
    return state if applied else None
