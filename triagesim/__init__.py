"""
triagesim - virtual patient physiology for triage training.

Patients are anatomical graphs whose vitals evolve under injuries and
treatments. A temporal world manager folds (possibly retroactive) events
into per-entity snapshot timelines so any state can be replayed.

No global registries: content is loaded once into a ContentRegistry and
passed to the components that need it.
"""

__version__ = "0.1.0"

# World manager
from .world import EntitySyncError, HumanState, PositionState, WorldStateManager

# Body model
from .physiology import (
    BodyFactoryParams,
    BodyState,
    Environment,
    HumanBody,
    HumanMeta,
    Rule,
    UnknownPatchFieldError,
    advance,
    create_body,
    read_metric,
)

# Content and pathologies
from .registry import ContentLoader, ContentRegistry, UnknownContentError
from .pathology import (
    AfflictedPathology,
    BodyEffect,
    InvalidBlockError,
    afflict,
    do_action_on_body,
    resolve_action,
    revive,
)

# Timelines and views
from .timeline import Snapshot, SnapshotTimeline
from .actions import DelayedAction, DelayedActionQueue
from .perception import FogOfWar, HumanView
from .environment import ObstacleGrid, find_path

# Core schemas
from .schemas import WorldEvent

__all__ = [
    # World manager
    "WorldStateManager",
    "EntitySyncError",
    "HumanState",
    "PositionState",
    # Body model
    "BodyFactoryParams",
    "BodyState",
    "Environment",
    "HumanBody",
    "HumanMeta",
    "Rule",
    "UnknownPatchFieldError",
    "advance",
    "create_body",
    "read_metric",
    # Content
    "ContentLoader",
    "ContentRegistry",
    "UnknownContentError",
    "AfflictedPathology",
    "BodyEffect",
    "InvalidBlockError",
    "afflict",
    "do_action_on_body",
    "resolve_action",
    "revive",
    # Timelines and views
    "Snapshot",
    "SnapshotTimeline",
    "DelayedAction",
    "DelayedActionQueue",
    "FogOfWar",
    "HumanView",
    "ObstacleGrid",
    "find_path",
    # Schemas
    "WorldEvent",
]
