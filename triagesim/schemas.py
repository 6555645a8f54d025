"""
Pydantic schemas for the triagesim content catalogs and world events.

Content (pathologies, acts, items, chemicals, skills, bags, humans, curves) is
static configuration loaded from JSON. Events are opaque payloads supplied by
a host transport; they are discriminated on their ``type`` field.

Design Philosophy:
- Catalog entries are validated once at load time
- Rule patches are checked against the merge tables when a rule is parsed, so
  an unknown patch key fails at load instead of mid-simulation
- Field names are snake_case in JSON and in Python
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Annotated

from .physiology.patches import validate_patch


SkillLevel = Literal["low_skill", "high_skill"]
ItemCount = Union[int, Literal["infinity"]]


# ============================================================================
# Rules
# ============================================================================


class Range(BaseModel):
    """Closed interval an instantiation draws a random argument from."""

    min: float = Field(..., description="Lower bound")
    max: float = Field(..., description="Upper bound")

    @model_validator(mode="after")
    def _ordered(self) -> "Range":
        if self.max < self.min:
            raise ValueError(f"Range max {self.max} is below min {self.min}")
        return self


class RuleDefinition(BaseModel):
    """A patch dated relative to the moment its injury or treatment starts."""

    id: str = Field("", description="Rule identifier, unique within its module or action")
    name: str = Field("", description="Human-friendly rule name")
    time: float = Field(0.0, ge=0, description="Offset in seconds from the activation time")
    block_patch: Dict[str, Any] = Field(default_factory=dict, description="Block parameter patch")
    variable_patch: Dict[str, Any] = Field(
        default_factory=dict, description="Body variable patch"
    )

    @model_validator(mode="after")
    def _known_fields(self) -> "RuleDefinition":
        # UnknownPatchFieldError is a KeyError and escapes pydantic unwrapped;
        # bad enum values surface as a ValidationError
        validate_patch(self.block_patch, self.variable_patch)
        return self


# ============================================================================
# Pathology modules
# ============================================================================


class _Module(BaseModel):
    blocks: List[str] = Field(..., min_length=1, description="Blocks the module may affect")

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        """Ranges of the module arguments drawn at instantiation, keyed by argument name."""
        return {}


class HemorrhageModule(_Module):
    type: Literal["Hemorrhage"] = "Hemorrhage"
    subtype: Literal["internal", "arterial", "venous"]
    instantaneous_blood_loss: Optional[Range] = None
    bleeding_factor: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {
            "instantaneous_blood_loss": self.instantaneous_blood_loss,
            "bleeding_factor": self.bleeding_factor,
        }


class FractureModule(_Module):
    type: Literal["Fracture"] = "Fracture"
    fracture_type: Literal["non_displaced", "displaced", "open"]


class NervousSystemModule(_Module):
    type: Literal["NervousSystem"] = "NervousSystem"


class TamponadeModule(_Module):
    type: Literal["Tamponade"] = "Tamponade"
    pericardial_delta_min: Optional[Range] = None
    pericardial_ml: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {
            "pericardial_delta_min": self.pericardial_delta_min,
            "pericardial_ml": self.pericardial_ml,
        }


class AirwaysResistanceModule(_Module):
    type: Literal["AirwaysResistance"] = "AirwaysResistance"
    air_resistance: Optional[Range] = None
    air_resistance_delta: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {
            "air_resistance": self.air_resistance,
            "air_resistance_delta": self.air_resistance_delta,
        }


class PneumothoraxModule(_Module):
    type: Literal["Pneumothorax"] = "Pneumothorax"
    pneumothorax_type: Literal["SIMPLE", "OPEN"]
    compliance: Optional[Range] = None
    compliance_delta: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {"compliance": self.compliance, "compliance_delta": self.compliance_delta}


class BurnModule(_Module):
    type: Literal["Burn"] = "Burn"
    level: Literal["1", "2", "3", "4"]
    percent: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {"percent": self.percent}


class IntracranialMassModule(_Module):
    type: Literal["ICM"] = "ICM"
    delta_per_min: Optional[Range] = None
    mass: Optional[Range] = None

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {"delta_per_min": self.delta_per_min, "mass": self.mass}


class PainModule(_Module):
    type: Literal["Pain"] = "Pain"
    pain: Range

    def arg_ranges(self) -> Dict[str, Optional[Range]]:
        return {"pain": self.pain}


class HematomaModule(_Module):
    type: Literal["Hematoma"] = "Hematoma"


class UnableToWalkModule(_Module):
    type: Literal["UnableToWalk"] = "UnableToWalk"


ModuleDefinition = Annotated[
    Union[
        HemorrhageModule,
        FractureModule,
        NervousSystemModule,
        TamponadeModule,
        AirwaysResistanceModule,
        PneumothoraxModule,
        BurnModule,
        IntracranialMassModule,
        PainModule,
        HematomaModule,
        UnableToWalkModule,
    ],
    Field(discriminator="type"),
]


class PathologyDefinition(BaseModel):
    """An injury: one or more modules, each striking one block."""

    id: str = Field(..., description="System-wide pathology identifier")
    name: str = Field(..., description="Display name")
    severity: Optional[str] = Field(None, description="Expected triage category")
    modules: List[ModuleDefinition] = Field(..., min_length=1)
    # "same": every module strikes one shared block; "any": one block per module
    block_selection_mode: Literal["any", "same"] = "any"
    # Each preset lists, per module, the candidate blocks
    presets: Optional[List[List[List[str]]]] = None

    @model_validator(mode="after")
    def _presets_match_modules(self) -> "PathologyDefinition":
        for preset in self.presets or []:
            if len(preset) != len(self.modules):
                raise ValueError(
                    f"Pathology {self.id}: preset has {len(preset)} entries for "
                    f"{len(self.modules)} modules"
                )
        return self


# ============================================================================
# Acts, items and actions
# ============================================================================


class _BaseAction(BaseModel):
    category: Literal["A", "B", "C", "D", "E", "Z"] = "Z"
    duration: Dict[SkillLevel, float] = Field(
        default_factory=lambda: {"low_skill": 10.0, "high_skill": 5.0},
        description="Seconds needed, per skill level",
    )


class ActionBodyEffect(_BaseAction):
    """An action that changes the body through dated rules."""

    type: Literal["ActionBodyEffect"] = "ActionBodyEffect"
    visible: bool = True
    blocks: List[str] = Field(default_factory=list, description="Blocks the action may target")
    rules: List[RuleDefinition] = Field(default_factory=list)


class ActionBodyMeasure(_BaseAction):
    """An action that reads metrics from the body."""

    type: Literal["ActionBodyMeasure"] = "ActionBodyMeasure"
    metric_name: List[str] = Field(..., min_length=1, description="Dotted metric paths")


HumanAction = Annotated[Union[ActionBodyEffect, ActionBodyMeasure], Field(discriminator="type")]


class ActDefinition(BaseModel):
    id: str
    name: Optional[str] = None
    priority: int = 0
    action: HumanAction


class ItemDefinition(BaseModel):
    id: str
    name: Optional[str] = None
    priority: int = 0
    disposable: bool = False
    actions: Dict[str, HumanAction] = Field(..., min_length=1)


class ChemicalDefinition(BaseModel):
    id: str
    clearance_ml_per_min: Optional[float] = Field(None, description="Plasma cleared per minute")
    vd_l_per_kg: Optional[float] = Field(None, description="Volume of distribution")
    half_life_s: Optional[float] = Field(None, description="Used when clearance is unknown")


class SkillDefinition(BaseModel):
    """Skill levels keyed by ``act::<id>`` or ``item::<id>::<action>``."""

    id: str
    actions: Dict[str, SkillLevel] = Field(default_factory=dict)

    def level_for_act(self, act_id: str) -> Optional[str]:
        return self.actions.get(f"act::{act_id}")

    def level_for_item_action(self, item_id: str, action_id: str) -> Optional[str]:
        return self.actions.get(f"item::{item_id}::{action_id}")


class BagDefinition(BaseModel):
    id: str
    name: str = ""
    items: Dict[str, ItemCount] = Field(default_factory=dict)


class HumanDefinition(BaseModel):
    """Body parameters and skills of one human, patient or rescuer."""

    id: str
    skill_id: Optional[str] = None
    age: float = Field(20, ge=0)
    sex: Literal["male", "female"] = "male"
    bmi: float = Field(20, gt=0)
    height_cm: float = Field(170, gt=0)
    lung_depth: int = Field(1, ge=1)
    temperature: Optional[float] = None
    sugar_level: Optional[float] = None


class CompensationRuleDefinition(BaseModel):
    points: List[Tuple[float, float]] = Field(..., min_length=1)
    t4_nerve: bool = False


class CompensationDefinition(BaseModel):
    """Overrides of the stimulus and response curves, keyed by metric path."""

    sympathetic: Dict[str, List[Tuple[float, float]]] = Field(default_factory=dict)
    compensation: Dict[str, CompensationRuleDefinition] = Field(default_factory=dict)
    overdrive: Dict[str, CompensationRuleDefinition] = Field(default_factory=dict)


# ============================================================================
# Events
# ============================================================================


class Location(BaseModel):
    x: float
    y: float
    map_id: Optional[str] = None


class ActSource(BaseModel):
    type: Literal["act"] = "act"
    act_id: str


class ItemActionSource(BaseModel):
    type: Literal["itemAction"] = "itemAction"
    item_id: str
    action_id: str


ActionSource = Annotated[Union[ActSource, ItemActionSource], Field(discriminator="type")]


class _TargetedEvent(BaseModel):
    target_type: str = "Human"
    target_id: str
    emitter_character_id: Optional[str] = None


class TeleportEvent(_TargetedEvent):
    type: Literal["Teleport"] = "Teleport"
    location: Location


class FollowPathEvent(_TargetedEvent):
    type: Literal["FollowPath"] = "FollowPath"
    start: Location
    destination: Location


class HumanPathologyEvent(_TargetedEvent):
    type: Literal["HumanPathology"] = "HumanPathology"
    pathology_id: str
    # One block and one argument mapping per module
    afflicted_blocks: List[str]
    modules_arguments: List[Dict[str, Optional[float]]]


class HumanTreatmentEvent(_TargetedEvent):
    type: Literal["HumanTreatment"] = "HumanTreatment"
    source: ActionSource
    blocks: List[str] = Field(default_factory=list)
    time_jump: bool = False


class HumanMeasureEvent(_TargetedEvent):
    type: Literal["HumanMeasure"] = "HumanMeasure"
    source: ActionSource
    time_jump: bool = False


class HumanLogMessageEvent(_TargetedEvent):
    type: Literal["HumanLogMessage"] = "HumanLogMessage"
    message: str


class CategorizeEvent(_TargetedEvent):
    type: Literal["Categorize"] = "Categorize"
    category: str
    system: str = "standard"
    severity: Optional[int] = None
    auto_triage: Optional[Dict[str, Any]] = None


class CancelActionEvent(_TargetedEvent):
    type: Literal["CancelAction"] = "CancelAction"
    event_id: int


class GiveBagEvent(_TargetedEvent):
    type: Literal["GiveBag"] = "GiveBag"
    bag_id: str


class FreezeEvent(_TargetedEvent):
    type: Literal["Freeze"] = "Freeze"
    mode: Literal["freeze", "unfreeze"]


class AgingEvent(_TargetedEvent):
    type: Literal["Aging"] = "Aging"
    delta_seconds: float = Field(..., gt=0)


EventPayload = Annotated[
    Union[
        TeleportEvent,
        FollowPathEvent,
        HumanPathologyEvent,
        HumanTreatmentEvent,
        HumanMeasureEvent,
        HumanLogMessageEvent,
        CategorizeEvent,
        CancelActionEvent,
        GiveBagEvent,
        FreezeEvent,
        AgingEvent,
    ],
    Field(discriminator="type"),
]


class WorldEvent(BaseModel):
    """An event as delivered by the host transport.

    ``time`` is the simulated time the event applies at; ``timestamp`` is the
    order the transport received it in. Events are applied in
    ``(time, timestamp, id)`` order.
    """

    id: int = Field(..., description="Monotonic event identifier")
    timestamp: int = Field(0, description="Received order")
    time: float = Field(..., ge=0, description="Simulated time in seconds")
    payload: EventPayload

    def sort_key(self) -> Tuple[float, int, int]:
        return (self.time, self.timestamp, self.id)


# ============================================================================
# Patient console
# ============================================================================


class MeasureMetric(BaseModel):
    metric: str
    value: Any = None


class MessageLog(BaseModel):
    type: Literal["MessageLog"] = "MessageLog"
    time: float
    emitter_character_id: Optional[str] = None
    message: str


class MeasureLog(BaseModel):
    type: Literal["MeasureLog"] = "MeasureLog"
    time: float
    emitter_character_id: Optional[str] = None
    metrics: List[MeasureMetric] = Field(default_factory=list)


class TreatmentLog(BaseModel):
    type: Literal["TreatmentLog"] = "TreatmentLog"
    time: float
    emitter_character_id: Optional[str] = None
    message: str


ConsoleLog = Annotated[Union[MessageLog, MeasureLog, TreatmentLog], Field(discriminator="type")]


class Categorization(BaseModel):
    category: str
    system: str = "standard"
    severity: Optional[int] = None
    auto_triage: Optional[Dict[str, Any]] = None


__all__ = [
    "Range",
    "RuleDefinition",
    "ModuleDefinition",
    "PathologyDefinition",
    "ActionBodyEffect",
    "ActionBodyMeasure",
    "HumanAction",
    "ActDefinition",
    "ItemDefinition",
    "ChemicalDefinition",
    "SkillDefinition",
    "BagDefinition",
    "HumanDefinition",
    "CompensationDefinition",
    "Location",
    "ActSource",
    "ItemActionSource",
    "WorldEvent",
    "EventPayload",
    "MeasureMetric",
    "MessageLog",
    "MeasureLog",
    "TreatmentLog",
    "ConsoleLog",
    "Categorization",
]
