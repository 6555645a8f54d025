"""Tests for rule patches and their merge policies."""

from __future__ import annotations

import pytest

from triagesim.physiology import (
    BodyState,
    Rule,
    UnknownPatchFieldError,
    apply_rules_at,
    compute_meta,
    validate_patch,
)
from triagesim.physiology.anatomy import create_block
from triagesim.physiology.meta import BodyFactoryParams
from triagesim.physiology.patches import (
    BLOCK_MERGES,
    VARIABLE_MERGES,
    apply_block_patch,
    apply_variable_patch,
    rules_in_window,
)
from triagesim.physiology.state import BLOCK_FIELDS, COMPUTED_BLOCK_FIELDS, VARIABLE_FIELDS

META, _ = compute_meta(BodyFactoryParams())


def _limb() -> BodyState:
    state = BodyState()
    create_block(state, "LEFT_THIGH")
    create_block(state, "THORAX_LEFT")
    return state


def test_merge_tables_cover_every_patchable_field():
    assert set(BLOCK_MERGES) == BLOCK_FIELDS - COMPUTED_BLOCK_FIELDS
    assert set(VARIABLE_MERGES) == VARIABLE_FIELDS
    assert not set(BLOCK_MERGES) & COMPUTED_BLOCK_FIELDS


def test_additive_fields_accumulate():
    block = _limb().find_block("LEFT_THIGH")

    apply_block_patch(block, {"instantaneous_blood_loss": 100})
    apply_block_patch(block, {"instantaneous_blood_loss": 50})

    assert block.params.instantaneous_blood_loss == 150


def test_pain_keeps_the_maximum():
    block = _limb().find_block("LEFT_THIGH")

    apply_block_patch(block, {"pain": 7})
    apply_block_patch(block, {"pain": 3})

    assert block.params.pain == 7


def test_fracture_only_worsens():
    block = _limb().find_block("LEFT_THIGH")

    apply_block_patch(block, {"broken": "displaced"})
    apply_block_patch(block, {"broken": "non_displaced"})
    assert block.params.broken == "displaced"

    apply_block_patch(block, {"broken": "open"})
    assert block.params.broken == "open"


def test_unknown_fracture_type_is_rejected():
    block = _limb().find_block("LEFT_THIGH")

    with pytest.raises(ValueError, match="shattered"):
        apply_block_patch(block, {"broken": "shattered"})


def test_blood_flow_is_overwritten():
    block = _limb().find_block("LEFT_THIGH")

    apply_block_patch(block, {"blood_flow": False})
    assert block.params.blood_flow is False

    apply_block_patch(block, {"blood_flow": True})
    assert block.params.blood_flow is True


def test_venous_bleeding_raises_local_resistance():
    block = _limb().find_block("LEFT_THIGH")
    before = block.params.blood_resistance or 0

    apply_block_patch(block, {"venous_bleeding_factor": 0.4})

    assert block.params.venous_bleeding_factor == pytest.approx(0.4)
    assert (block.params.blood_resistance or 0) >= before


def test_chemical_doses_accumulate():
    block = _limb().find_block("LEFT_THIGH")

    apply_block_patch(block, {"chemicals": {"TranexamicAcid": {"once": 1000}}})
    apply_block_patch(block, {"chemicals": {"TranexamicAcid": {"once": 500, "per_min": 2}}})

    dose = block.params.chemicals["TranexamicAcid"]
    assert dose.once == 1500
    assert dose.per_min == 2


def test_drained_thorax_ignores_pressure():
    block = _limb().find_block("THORAX_LEFT")

    apply_block_patch(block, {"internal_pressure": 10})
    apply_block_patch(block, {"internal_pressure": "DRAIN"})
    apply_block_patch(block, {"internal_pressure": 20})
    assert block.params.internal_pressure == "DRAIN"

    pressured = create_block(BodyState(), "THORAX_RIGHT", internal_pressure=30)
    apply_block_patch(pressured, {"internal_pressure": "RESET"})
    assert pressured.params.internal_pressure == 0


def test_unknown_block_field_is_rejected():
    block = _limb().find_block("LEFT_THIGH")

    with pytest.raises(UnknownPatchFieldError) as excinfo:
        apply_block_patch(block, {"wingspan": 3})

    assert excinfo.value.field_name == "wingspan"
    assert "Remediation tips" in str(excinfo.value)


def test_computed_fields_cannot_be_patched():
    with pytest.raises(UnknownPatchFieldError):
        validate_patch({"blood_flow_ml_per_min": 12}, {})


@pytest.mark.parametrize(
    "block_patch, variable_patch",
    [
        ({"broken": "shattered"}, {}),
        ({"pneumothorax": "CLOSED"}, {}),
        ({"internal_pressure": "VENT"}, {}),
        ({"internal_pressure": True}, {}),
        ({}, {"body_position": "FLYING"}),
    ],
)
def test_unknown_enum_values_are_rejected(block_patch, variable_patch):
    with pytest.raises(ValueError, match="Invalid value"):
        validate_patch(block_patch, variable_patch)


def test_known_enum_values_are_accepted():
    validate_patch({"broken": "open", "pneumothorax": "SIMPLE", "internal_pressure": 4.5}, {})
    validate_patch({"internal_pressure": "DRAIN"}, {"body_position": "SUPINE_DECUBITUS"})
    validate_patch({"internal_pressure": "RESET"}, {})


def test_unknown_variable_field_is_rejected():
    with pytest.raises(UnknownPatchFieldError) as excinfo:
        apply_variable_patch(BodyState(), META, {"mood": "grumpy"})

    assert excinfo.value.target == "variable"


def test_bleed_factor_multiplies():
    state = BodyState()

    apply_variable_patch(state, META, {"bleed_factor": 0.5})
    apply_variable_patch(state, META, {"bleed_factor": 0.5})

    assert state.variables.bleed_factor == pytest.approx(0.25)


def test_rules_in_window_excludes_the_start():
    class Source:
        rules = (Rule(time=0), Rule(time=10), Rule(time=20), Rule(time=30))

    times = [rule.time for rule in rules_in_window([Source()], 0, 20)]

    assert times == [10, 20]


def test_apply_rules_at_only_applies_exact_time():
    state = _limb()
    rules = [
        Rule(time=10, blocks=("LEFT_THIGH",), block_patch={"pain": 5}),
        Rule(time=11, blocks=("LEFT_THIGH",), block_patch={"pain": 9}),
    ]

    assert apply_rules_at(state, META, 10, rules) is state
    assert state.find_block("LEFT_THIGH").params.pain == 5
    assert apply_rules_at(state, META, 12, rules) is None
