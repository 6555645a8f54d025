"""Anatomical body model: graph, flows, vitals, compensation and rule scheduling."""

from .state import (
    Block,
    BlockParams,
    BodyState,
    BodyVariables,
    ChemicalInput,
    ConnectionParams,
    Environment,
    Vitals,
    read_metric,
)
from .anatomy import BREAK, RETURN, Edge, find_connection, traverse
from .meta import BodyFactoryParams, HumanMeta, compute_meta
from .flow import dispatch, update_blood
from .vitals import compute, detect_cardiac_arrest, infer_extra_outputs
from .compensation import CompensationModels, CompensationRule, DEFAULT_MODELS, compensate
from .patches import Rule, UnknownPatchFieldError, apply_rules_at, validate_patch
from .scheduler import HumanBody, advance, create_body, update_vitals

__all__ = [
    "Block",
    "BlockParams",
    "BodyState",
    "BodyVariables",
    "ChemicalInput",
    "ConnectionParams",
    "Environment",
    "Vitals",
    "read_metric",
    "BREAK",
    "RETURN",
    "Edge",
    "find_connection",
    "traverse",
    "BodyFactoryParams",
    "HumanMeta",
    "compute_meta",
    "dispatch",
    "update_blood",
    "compute",
    "detect_cardiac_arrest",
    "infer_extra_outputs",
    "CompensationModels",
    "CompensationRule",
    "DEFAULT_MODELS",
    "compensate",
    "Rule",
    "UnknownPatchFieldError",
    "apply_rules_at",
    "validate_patch",
    "HumanBody",
    "advance",
    "create_body",
    "update_vitals",
]
