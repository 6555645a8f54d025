"""Tests for pathology affliction, revival and treatment effects."""

from __future__ import annotations

import random

import pytest

from triagesim.pathology import (
    AfflictedPathology,
    InvalidBlockError,
    afflict,
    do_action_on_body,
    module_patch,
    random_value,
    resolve_action,
    revive,
)
from triagesim.registry import ContentRegistry
from triagesim.schemas import (
    ActDefinition,
    ActSource,
    ItemActionSource,
    ItemDefinition,
    PathologyDefinition,
    Range,
)


def _contusion() -> PathologyDefinition:
    return PathologyDefinition(
        id="contusion",
        name="Contusion",
        block_selection_mode="same",
        modules=[
            {"type": "Hematoma", "blocks": ["LEFT_ARM", "LEFT_LEG", "HEAD"]},
            {"type": "Pain", "blocks": ["LEFT_LEG", "HEAD"], "pain": {"min": 2, "max": 6}},
        ],
    )


def _bleed() -> PathologyDefinition:
    return PathologyDefinition(
        id="bleed",
        name="Bleed",
        modules=[
            {
                "type": "Hemorrhage",
                "subtype": "venous",
                "blocks": ["LEFT_ARM", "RIGHT_ARM"],
                "bleeding_factor": {"min": 0.1, "max": 0.4},
                "instantaneous_blood_loss": {"min": 50, "max": 50},
            }
        ],
        presets=[[["RIGHT_ARM"]]],
    )


def _registry() -> ContentRegistry:
    return ContentRegistry(
        acts=[
            ActDefinition(
                id="recoveryPosition",
                action={
                    "type": "ActionBodyEffect",
                    "rules": [{"time": 0, "variable_patch": {"body_position": "RECOVERY"}}],
                },
            ),
            ActDefinition(
                id="measureHR",
                name="Measure HR",
                action={"type": "ActionBodyMeasure", "metric_name": ["vitals.cardio.hr"]},
            ),
        ],
        items=[
            ItemDefinition(
                id="bandage",
                name="Bandage",
                actions={
                    "pressureBandage": {
                        "type": "ActionBodyEffect",
                        "blocks": ["LEFT_ARM", "RIGHT_ARM"],
                        "rules": [
                            {"time": 0, "block_patch": {"venous_bleeding_reduction_factor": 0.8}},
                            {"time": 60, "block_patch": {"pain": 1}},
                        ],
                    }
                },
            )
        ],
    )


def test_random_value_bounds():
    rng = random.Random(3)

    assert random_value(None, rng) is None
    assert random_value(Range(min=2, max=2), rng) == 2
    for _ in range(20):
        value = random_value(Range(min=1, max=5), rng, integer=True)
        assert 1 <= value <= 5
        assert value == int(value)


def test_afflict_is_reproducible_with_seed():
    first = afflict(_bleed(), random.Random(42))
    second = afflict(_bleed(), random.Random(42))

    assert first == second


def test_afflict_respects_presets():
    afflicted = afflict(_bleed(), random.Random(0))

    assert afflicted.afflicted_blocks == ("RIGHT_ARM",)
    assert 0.1 <= afflicted.modules_arguments[0]["bleeding_factor"] <= 0.4
    assert afflicted.modules_arguments[0]["instantaneous_blood_loss"] == 50


def test_afflict_same_mode_shares_one_block():
    for seed in range(10):
        afflicted = afflict(_contusion(), random.Random(seed))
        assert len(set(afflicted.afflicted_blocks)) == 1
        assert afflicted.afflicted_blocks[0] in ("LEFT_LEG", "HEAD")


def test_revive_dates_rules_at_event_time():
    afflicted = AfflictedPathology(
        pathology_id="bleed",
        afflicted_blocks=("LEFT_ARM",),
        modules_arguments=({"bleeding_factor": 0.2, "instantaneous_blood_loss": None},),
    )

    revived = revive(_bleed(), afflicted, 120)

    (rule,) = revived.rules
    assert rule.time == 120
    assert rule.blocks == ("LEFT_ARM",)
    assert rule.block_patch == {"pain": 4, "venous_bleeding_factor": 0.2}
    assert revived.visible_blocks == ["LEFT_ARM"]


def test_revive_rejects_block_outside_module():
    afflicted = AfflictedPathology(
        pathology_id="bleed",
        afflicted_blocks=("HEAD",),
        modules_arguments=({},),
    )

    with pytest.raises(InvalidBlockError) as excinfo:
        revive(_bleed(), afflicted, 0)

    assert excinfo.value.block == "HEAD"
    assert isinstance(excinfo.value, ValueError)


def test_revive_rejects_wrong_module_count():
    afflicted = AfflictedPathology(pathology_id="contusion", afflicted_blocks=("HEAD",), modules_arguments=({},))

    with pytest.raises(ValueError, match="expected 2"):
        revive(_contusion(), afflicted, 0)


def test_module_patch_visibility():
    contusion = _contusion()

    visible, block_patch, _ = module_patch(contusion.modules[0], {})
    assert visible
    assert block_patch == {"hematoma": True}

    visible, block_patch, _ = module_patch(contusion.modules[1], {"pain": 3})
    assert not visible
    assert block_patch == {"pain": 3}


def test_resolve_action_labels():
    registry = _registry()

    act = resolve_action(registry, ActSource(act_id="measureHR"))
    item = resolve_action(registry, ItemActionSource(item_id="bandage", action_id="pressureBandage"))

    assert act.label == "Measure HR"
    assert act.skill_key() == "act::measureHR"
    assert item.label == "Bandage::pressureBandage"
    assert item.skill_key() == "item::bandage::pressureBandage"
    assert resolve_action(registry, ActSource(act_id="nope")) is None
    assert resolve_action(registry, ItemActionSource(item_id="bandage", action_id="nope")) is None


def test_action_duration_per_skill_level():
    resolved = resolve_action(_registry(), ActSource(act_id="measureHR"))

    assert resolved.duration("low_skill") == 10
    assert resolved.duration("high_skill") == 5


def test_do_action_on_body_targets_first_eligible_block():
    resolved = resolve_action(_registry(), ItemActionSource(item_id="bandage", action_id="pressureBandage"))

    effect = do_action_on_body(resolved, ["HEAD", "RIGHT_ARM"], 30)

    assert effect.afflicted_blocks == ("RIGHT_ARM",)
    assert [rule.time for rule in effect.rules] == [30, 90]
    assert effect.source_id == "bandage"


def test_do_action_on_body_without_eligible_block(capsys):
    resolved = resolve_action(_registry(), ItemActionSource(item_id="bandage", action_id="pressureBandage"))

    assert do_action_on_body(resolved, ["HEAD"], 30) is None
    assert "eligible" in capsys.readouterr().out


def test_unrestricted_action_targets_the_body():
    resolved = resolve_action(_registry(), ActSource(act_id="recoveryPosition"))

    effect = do_action_on_body(resolved, [], 10)

    assert effect.afflicted_blocks == ()
    assert effect.rules[0].variable_patch == {"body_position": "RECOVERY"}


def test_do_action_on_body_rejects_measures():
    resolved = resolve_action(_registry(), ActSource(act_id="measureHR"))

    with pytest.raises(TypeError):
        do_action_on_body(resolved, [], 0)
