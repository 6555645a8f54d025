"""
Pathology instantiation and treatment effects.

Randomness lives here and nowhere else: ``afflict`` draws blocks and module
arguments from a caller-provided ``random.Random``. The resulting
``AfflictedPathology`` is plain data (it travels in a ``HumanPathology``
event) and ``revive`` turns it into frozen, absolutely-dated rules. Nothing
downstream re-rolls.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .logging_utils import log_warning
from .physiology.patches import Rule
from .registry import ContentRegistry
from .schemas import (
    ActDefinition,
    ActionBodyEffect,
    ActionBodyMeasure,
    ActSource,
    ItemActionSource,
    ItemDefinition,
    PathologyDefinition,
    Range,
    RuleDefinition,
)


class InvalidBlockError(ValueError):
    """Raised when a pathology is revived against blocks its modules do not allow."""

    def __init__(self, *, pathology_id: str, block: Optional[str], module_type: str) -> None:
        self.pathology_id = pathology_id
        self.block = block
        self.module_type = module_type
        message = (
            f"Block {block!r} is not valid within module {module_type} "
            f"of pathology {pathology_id!r}.\n"
            "Remediation tips:\n"
            "  - Check the afflicted blocks recorded in the HumanPathology event\n"
            "  - Check the module block lists in the pathology catalog"
        )
        super().__init__(message)


# ============================================================================
# Affliction (random draws)
# ============================================================================


@dataclass(frozen=True)
class AfflictedPathology:
    """A pathology with its blocks and arguments chosen; one entry per module."""

    pathology_id: str
    afflicted_blocks: Tuple[str, ...]
    modules_arguments: Tuple[Mapping[str, Optional[float]], ...]


def random_value(
    value_range: Optional[Range], rng: random.Random, integer: bool = False
) -> Optional[float]:
    if value_range is None:
        return None
    if value_range.max == value_range.min:
        return value_range.min
    value = value_range.min + rng.random() * (value_range.max - value_range.min)
    return float(math.floor(value)) if integer else value


def _intersection(lists: Sequence[Sequence[str]]) -> List[str]:
    first, others = lists[0], lists[1:]
    return [block for block in first if all(block in other for other in others)]


def afflict(definition: PathologyDefinition, rng: random.Random) -> AfflictedPathology:
    """Choose blocks and draw module arguments.

    A preset, when the pathology has any, constrains the candidate blocks of
    each module. In ``same`` mode every module strikes one block picked from
    the intersection of the candidates.
    """
    if definition.presets:
        candidates = rng.choice(definition.presets)
    else:
        candidates = [module.blocks for module in definition.modules]

    if definition.block_selection_mode == "same":
        shared = _intersection(candidates)
        if not shared:
            raise ValueError(f"Pathology {definition.id}: modules share no block")
        block = rng.choice(shared)
        blocks = tuple(block for _ in definition.modules)
    else:
        blocks = tuple(rng.choice(list(options)) for options in candidates)

    arguments = []
    for module in definition.modules:
        arguments.append(
            {
                name: random_value(value_range, rng, integer=module.type == "Pain")
                for name, value_range in module.arg_ranges().items()
            }
        )
    return AfflictedPathology(
        pathology_id=definition.id,
        afflicted_blocks=blocks,
        modules_arguments=tuple(arguments),
    )


# ============================================================================
# Revival (frozen rules)
# ============================================================================


@dataclass(frozen=True)
class InstantiatedModule:
    block: str
    visible: bool
    rules: Tuple[Rule, ...]


@dataclass(frozen=True)
class RevivedPathology:
    pathology_id: str
    time: float
    modules: Tuple[InstantiatedModule, ...]

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return tuple(rule for module in self.modules for rule in module.rules)

    @property
    def visible_blocks(self) -> List[str]:
        return [module.block for module in self.modules if module.visible]


_BLEEDING_KEYS = {
    "arterial": "arterial_bleeding_factor",
    "venous": "venous_bleeding_factor",
    "internal": "internal_bleeding_factor",
}


def _compact(patch: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in patch.items() if value is not None}


def module_patch(module: Any, args: Mapping[str, Optional[float]]) -> Tuple[bool, dict, dict]:
    """Return ``(visible, block_patch, variable_patch)`` for one module."""
    kind = module.type
    if kind == "Hemorrhage":
        return (
            module.subtype != "internal",
            {
                "pain": 4,
                "instantaneous_blood_loss": args.get("instantaneous_blood_loss"),
                _BLEEDING_KEYS[module.subtype]: args.get("bleeding_factor"),
            },
            {},
        )
    if kind == "Fracture":
        return True, {"broken": module.fracture_type}, {}
    if kind == "NervousSystem":
        return False, {"nervous_system_broken": True}, {}
    if kind == "Tamponade":
        return (
            False,
            {"pain": 1},
            {
                "pericardial_ml": args.get("pericardial_ml"),
                "pericardial_delta_min": args.get("pericardial_delta_min"),
            },
        )
    if kind == "AirwaysResistance":
        return (
            True,
            {
                "pain": 2,
                "air_resistance": args.get("air_resistance"),
                "air_resistance_delta": args.get("air_resistance_delta"),
            },
            {},
        )
    if kind == "Pneumothorax":
        return (
            False,
            {
                "pain": 4,
                "pneumothorax": module.pneumothorax_type,
                "compliance": args.get("compliance"),
                "compliance_delta": args.get("compliance_delta"),
            },
            {},
        )
    if kind == "Burn":
        level = float(module.level)
        return (
            True,
            {"pain": level * 2, "burn_level": level, "burned_percent": args.get("percent")},
            {},
        )
    if kind == "ICM":
        return (
            False,
            {"pain": 1},
            {
                "intracranial_mass_delta_per_min": args.get("delta_per_min"),
                "intracranial_mass": args.get("mass"),
            },
        )
    if kind == "Pain":
        return False, {"pain": args.get("pain")}, {}
    if kind == "Hematoma":
        return True, {"hematoma": True}, {}
    if kind == "UnableToWalk":
        return False, {}, {"unable_to_walk": True}
    raise ValueError(f"Unsupported pathology module {kind!r}")


def instantiate_module(
    module: Any, block: str, args: Mapping[str, Optional[float]], time: float
) -> InstantiatedModule:
    visible, block_patch, variable_patch = module_patch(module, args)
    rule = Rule(
        time=time,
        blocks=(block,),
        block_patch=_compact(block_patch),
        variable_patch=_compact(variable_patch),
    )
    return InstantiatedModule(block=block, visible=visible, rules=(rule,))


def revive(
    definition: PathologyDefinition, afflicted: AfflictedPathology, time: float
) -> RevivedPathology:
    """Freeze the rules of an afflicted pathology, dated at ``time``."""
    expected = len(definition.modules)
    if len(afflicted.afflicted_blocks) != expected or len(afflicted.modules_arguments) != expected:
        raise ValueError(
            f"Pathology {definition.id}: expected {expected} blocks and arguments, got "
            f"{len(afflicted.afflicted_blocks)} and {len(afflicted.modules_arguments)}"
        )

    modules = []
    for module, block, args in zip(
        definition.modules, afflicted.afflicted_blocks, afflicted.modules_arguments
    ):
        if not block or block not in module.blocks:
            raise InvalidBlockError(
                pathology_id=definition.id, block=block, module_type=module.type
            )
        modules.append(instantiate_module(module, block, args, time))
    return RevivedPathology(pathology_id=definition.id, time=time, modules=tuple(modules))


# ============================================================================
# Treatments
# ============================================================================


@dataclass(frozen=True)
class ResolvedAction:
    """An event's action source looked up in the registry."""

    source: Union[ActDefinition, ItemDefinition]
    source_type: str
    action_id: str
    label: str
    action: Union[ActionBodyEffect, ActionBodyMeasure]

    @property
    def item_id(self) -> Optional[str]:
        return self.source.id if self.source_type == "item" else None

    @property
    def disposable(self) -> bool:
        return self.source_type == "item" and getattr(self.source, "disposable", False)

    def skill_key(self) -> str:
        if self.source_type == "act":
            return f"act::{self.source.id}"
        return f"item::{self.source.id}::{self.action_id}"

    def duration(self, skill_level: str) -> float:
        return self.action.duration.get(skill_level, 0.0)


@dataclass(frozen=True)
class BodyEffect:
    """A treatment applied to one human at one time."""

    time: float
    action_id: str
    source_id: str
    rules: Tuple[Rule, ...]
    afflicted_blocks: Tuple[str, ...] = field(default_factory=tuple)
    visible: bool = True


def resolve_action(
    registry: ContentRegistry, source: Union[ActSource, ItemActionSource]
) -> Optional[ResolvedAction]:
    """Return the concrete action, or None when the act/item/action is unknown."""
    if source.type == "act":
        act = registry.acts.find(source.act_id)
        if act is None:
            return None
        return ResolvedAction(
            source=act,
            source_type="act",
            action_id="default",
            label=act.name or act.id,
            action=act.action,
        )

    item = registry.items.find(source.item_id)
    action = item.actions.get(source.action_id) if item is not None else None
    if action is None:
        return None
    label = f"{item.name or item.id}::{source.action_id}"
    return ResolvedAction(
        source=item,
        source_type="item",
        action_id=source.action_id,
        label=label,
        action=action,
    )


def _rule_at(rule: RuleDefinition, blocks: Tuple[str, ...], time: float) -> Rule:
    return Rule(
        time=time + rule.time,
        blocks=blocks,
        block_patch=dict(rule.block_patch),
        variable_patch=dict(rule.variable_patch),
    )


def do_action_on_body(
    resolved: ResolvedAction, block_names: Sequence[str], time: float
) -> Optional[BodyEffect]:
    """Turn a body-effect action into an effect dated at ``time``.

    The first of the action's eligible blocks named in ``block_names`` is
    afflicted. An action restricted to blocks that matches none of them has no
    effect.
    """
    action = resolved.action
    if not isinstance(action, ActionBodyEffect):
        raise TypeError(f"{resolved.label} is not a body effect")

    block = next((name for name in action.blocks if name in block_names), None)
    if action.blocks and block is None:
        log_warning(f"{resolved.label}: none of {list(block_names)} is eligible; skipped")
        return None

    blocks = (block,) if block else ()
    return BodyEffect(
        time=time,
        action_id=resolved.action_id,
        source_id=resolved.source.id,
        rules=tuple(_rule_at(rule, blocks, time) for rule in action.rules),
        afflicted_blocks=blocks,
        visible=action.visible,
    )


__all__ = [
    "AfflictedPathology",
    "BodyEffect",
    "InstantiatedModule",
    "InvalidBlockError",
    "ResolvedAction",
    "RevivedPathology",
    "afflict",
    "do_action_on_body",
    "instantiate_module",
    "random_value",
    "resolve_action",
    "revive",
]
