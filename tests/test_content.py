"""Tests for content schemas, the registry and catalog loading."""

from __future__ import annotations

import json
import random
from pathlib import Path

import pytest
from pydantic import ValidationError

from triagesim.pathology import afflict, revive
from triagesim.physiology import UnknownPatchFieldError
from triagesim.physiology.compensation import DEFAULT_MODELS
from triagesim.registry import Catalog, ContentLoader, UnknownContentError
from triagesim.schemas import (
    BagDefinition,
    HumanTreatmentEvent,
    Range,
    RuleDefinition,
    WorldEvent,
)
from triagesim.world import WorldStateManager

CONTENT_DIR = Path(__file__).parent.parent / "content"

_MINIMAL = {
    "pathologies": [
        {
            "id": "cut",
            "name": "Cut",
            "modules": [{"type": "Hemorrhage", "subtype": "venous", "blocks": ["LEFT_ARM"]}],
        }
    ],
    "acts": [{"id": "look", "action": {"type": "ActionBodyMeasure", "metric_name": ["vitals.cardio.hr"]}}],
    "items": [
        {
            "id": "cat",
            "actions": {"setup": {"type": "ActionBodyEffect", "rules": [{"block_patch": {"blood_flow": False}}]}},
        }
    ],
}


def _write_catalogs(directory: Path, catalogs: dict) -> Path:
    for name, data in catalogs.items():
        (directory / f"{name}.json").write_text(json.dumps(data))
    return directory


# ===== Schemas =====


def test_range_must_be_ordered():
    with pytest.raises(ValidationError):
        Range(min=5, max=1)


def test_rule_with_unknown_patch_key_fails_fast():
    with pytest.raises(UnknownPatchFieldError):
        RuleDefinition(block_patch={"bleeding": 1})


def test_rule_with_unknown_enum_value_is_rejected():
    with pytest.raises(ValidationError, match="shattered"):
        RuleDefinition(block_patch={"broken": "shattered"})


def test_world_event_payload_is_discriminated():
    event = WorldEvent(
        id=7,
        timestamp=3,
        time=12.5,
        payload={
            "type": "HumanTreatment",
            "target_id": "p1",
            "source": {"type": "itemAction", "item_id": "cat", "action_id": "setup"},
            "blocks": ["LEFT_THIGH"],
        },
    )

    assert isinstance(event.payload, HumanTreatmentEvent)
    assert event.payload.source.item_id == "cat"
    assert event.sort_key() == (12.5, 3, 7)


def test_bag_accepts_infinite_counts():
    bag = BagDefinition(id="b", items={"cat": "infinity", "bandage": 2})

    assert bag.items == {"cat": "infinity", "bandage": 2}
    with pytest.raises(ValidationError):
        BagDefinition(id="b", items={"cat": "lots"})


# ===== Registry =====


def test_catalog_rejects_duplicates_and_unknown_ids():
    catalog = Catalog("bag", [BagDefinition(id="kit")])

    with pytest.raises(ValueError, match="Duplicate"):
        catalog.add(BagDefinition(id="kit"))
    with pytest.raises(UnknownContentError) as excinfo:
        catalog.get("nope")
    assert isinstance(excinfo.value, KeyError)
    assert excinfo.value.kind == "bag"
    assert catalog.find("nope") is None


def test_shipped_content_loads():
    registry = ContentLoader(CONTENT_DIR).load()

    assert len(registry.pathologies) == 15
    assert len(registry.acts) == 10
    assert len(registry.items) == 10
    assert registry.skill("paramedic").level_for_act("measureHR") == "high_skill"
    assert registry.bag("paramedic").items["cat"] == "infinity"
    assert registry.human("rescuer-1").skill_id == "paramedic"
    assert set(registry.chemicals_by_id()) == {"TranexamicAcid", "TranexamicAcid_Clearance"}
    assert registry.compensation is DEFAULT_MODELS


def test_every_shipped_pathology_revives():
    registry = ContentLoader(CONTENT_DIR).load()
    rng = random.Random(1234)

    for pathology_id in registry.pathologies.ids():
        definition = registry.pathology(pathology_id)
        revived = revive(definition, afflict(definition, rng), 60)
        assert len(revived.modules) == len(definition.modules)
        assert all(rule.time == 60 for rule in revived.rules)


# ===== Loader errors =====


def test_loader_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        ContentLoader(tmp_path / "absent").load()


def test_loader_missing_required_catalog(tmp_path):
    _write_catalogs(tmp_path, {"pathologies": _MINIMAL["pathologies"], "acts": _MINIMAL["acts"]})

    with pytest.raises(FileNotFoundError, match="items"):
        ContentLoader(tmp_path).load()


def test_loader_optional_catalogs_default_to_empty(tmp_path):
    registry = ContentLoader(_write_catalogs(tmp_path, _MINIMAL)).load()

    assert len(registry.humans) == 0
    assert registry.pathology("cut").modules[0].subtype == "venous"


def test_loader_rejects_non_list(tmp_path):
    _write_catalogs(tmp_path, dict(_MINIMAL, bags={"id": "kit"}))

    with pytest.raises(ValueError, match="JSON list"):
        ContentLoader(tmp_path).load()


def test_loader_rejects_invalid_entry(tmp_path):
    _write_catalogs(tmp_path, dict(_MINIMAL, humans=[{"id": "h", "sex": "robot"}]))

    with pytest.raises(ValueError, match="Invalid entry #0"):
        ContentLoader(tmp_path).load()


def test_loader_rejects_malformed_json(tmp_path):
    _write_catalogs(tmp_path, _MINIMAL)
    (tmp_path / "skills.json").write_text("[{")

    with pytest.raises(ValueError, match="Malformed JSON"):
        ContentLoader(tmp_path).load()


def test_loader_unknown_patch_key_is_a_key_error(tmp_path):
    acts = [
        {
            "id": "oops",
            "action": {"type": "ActionBodyEffect", "rules": [{"block_patch": {"bleeding": 1}}]},
        }
    ]
    _write_catalogs(tmp_path, dict(_MINIMAL, acts=acts))

    with pytest.raises(KeyError):
        ContentLoader(tmp_path).load()


def test_loader_rejects_unknown_enum_value(tmp_path):
    acts = [
        {
            "id": "oops",
            "action": {"type": "ActionBodyEffect", "rules": [{"block_patch": {"broken": "shattered"}}]},
        }
    ]
    _write_catalogs(tmp_path, dict(_MINIMAL, acts=acts))

    with pytest.raises(ValueError, match="Invalid entry #0"):
        ContentLoader(tmp_path).load()


def test_loader_duplicate_ids(tmp_path):
    _write_catalogs(tmp_path, dict(_MINIMAL, acts=_MINIMAL["acts"] * 2))

    with pytest.raises(ValueError, match="Duplicate"):
        ContentLoader(tmp_path).load()


def test_loader_overlays_compensation_curves(tmp_path):
    _write_catalogs(tmp_path, _MINIMAL)
    (tmp_path / "compensation.json").write_text(
        json.dumps({"sympathetic": {"vitals.cardio.map": [[0, 50], [70, 0]]}})
    )

    registry = ContentLoader(tmp_path).load()

    assert registry.compensation.sympathetic["vitals.cardio.map"] == ((0.0, 50.0), (70.0, 0.0))
    assert registry.compensation.compensation == DEFAULT_MODELS.compensation


# ===== End to end =====


def _tourniquet_scenario(treated: bool):
    events = [
        {"type": "GiveBag", "target_id": "rescuer-1", "bag_id": "paramedic"},
        {
            "type": "HumanPathology",
            "target_id": "patient-1",
            "pathology_id": "severe_ah",
            "afflicted_blocks": ["LEFT_THIGH"],
            "modules_arguments": [{"bleeding_factor": 0.2}],
        },
    ]
    if treated:
        events.append(
            {
                "type": "HumanTreatment",
                "target_id": "patient-1",
                "emitter_character_id": "rescuer-1",
                "source": {"type": "itemAction", "item_id": "cat", "action_id": "setup"},
                "blocks": ["LEFT_THIGH"],
            }
        )
    times = [0, 0, 20]
    return [
        WorldEvent(id=index, timestamp=index, time=times[index], payload=payload)
        for index, payload in enumerate(events)
    ]


def test_tourniquet_from_bag_reduces_blood_loss():
    registry = ContentLoader(CONTENT_DIR).load()
    untreated = WorldStateManager(registry, step=10)
    treated = WorldStateManager(registry, step=10)

    untreated.sync(_tourniquet_scenario(False), now=600)
    treated.sync(_tourniquet_scenario(True), now=600)

    lost_untreated = untreated.snapshot_at("patient-1", 600).state.body.vitals.cardio.total_ext_losses_ml
    lost_treated = treated.snapshot_at("patient-1", 600).state.body.vitals.cardio.total_ext_losses_ml
    assert lost_treated < lost_untreated
    assert treated.inventory_at("rescuer-1", 600)["cat"] == "infinity"
    messages = [entry.message for entry in treated.console("patient-1") if hasattr(entry, "message")]
    assert "start: CAT::setup" in messages
    assert "treatment: CAT::setup" in messages
