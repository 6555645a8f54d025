"""
Content registry and JSON catalog loading.

The registry is an explicit context object: every lookup of a pathology, act,
item, chemical, skill, bag or human definition goes through the instance the
caller holds, never through module-level state.

Catalog directory structure (default ``Config.CONTENT_DIR``):
```
content/
  pathologies.json   [{"id": "catastrophic_ah", "modules": [...]}, ...]
  acts.json          [{"id": "recoveryPosition", "action": {...}}, ...]
  items.json         [{"id": "cat", "actions": {...}}, ...]
  chemicals.json
  skills.json
  bags.json
  humans.json
  compensation.json  optional curve overrides
```

Usage:
    registry = ContentLoader().load()
    pathology = registry.pathology("catastrophic_ah")
"""

import json
from pathlib import Path
from typing import Dict, Generic, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .config import Config
from .logging_utils import log_success
from .physiology.compensation import DEFAULT_MODELS, CompensationModels, CompensationRule
from .schemas import (
    ActDefinition,
    BagDefinition,
    ChemicalDefinition,
    CompensationDefinition,
    HumanDefinition,
    ItemDefinition,
    PathologyDefinition,
    SkillDefinition,
)
from .utils import as_curve


class UnknownContentError(KeyError):
    """Raised when a content id is not present in the registry."""

    def __init__(self, *, kind: str, content_id: str) -> None:
        self.kind = kind
        self.content_id = content_id
        message = (
            f"Unknown {kind} {content_id!r}.\n"
            "Remediation tips:\n"
            f"  - Check that the {kind} is declared in the content catalogs\n"
            "  - Check CONTENT_DIR points at the catalogs you expect"
        )
        super().__init__(message)


T = TypeVar("T", bound=BaseModel)


class Catalog(Generic[T]):
    """Definitions of one kind, indexed by id."""

    def __init__(self, kind: str, entries: Iterable[T] = ()) -> None:
        self.kind = kind
        self._entries: Dict[str, T] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: T) -> None:
        entry_id = getattr(entry, "id")
        if entry_id in self._entries:
            raise ValueError(f"Duplicate {self.kind} id {entry_id!r}")
        self._entries[entry_id] = entry

    def get(self, entry_id: str) -> T:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise UnknownContentError(kind=self.kind, content_id=entry_id) from None

    def find(self, entry_id: str) -> Optional[T]:
        return self._entries.get(entry_id)

    def ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ContentRegistry:
    """All static content a simulation run refers to."""

    def __init__(
        self,
        *,
        pathologies: Iterable[PathologyDefinition] = (),
        acts: Iterable[ActDefinition] = (),
        items: Iterable[ItemDefinition] = (),
        chemicals: Iterable[ChemicalDefinition] = (),
        skills: Iterable[SkillDefinition] = (),
        bags: Iterable[BagDefinition] = (),
        humans: Iterable[HumanDefinition] = (),
        compensation: Optional[CompensationModels] = None,
    ) -> None:
        self.pathologies: Catalog[PathologyDefinition] = Catalog("pathology", pathologies)
        self.acts: Catalog[ActDefinition] = Catalog("act", acts)
        self.items: Catalog[ItemDefinition] = Catalog("item", items)
        self.chemicals: Catalog[ChemicalDefinition] = Catalog("chemical", chemicals)
        self.skills: Catalog[SkillDefinition] = Catalog("skill", skills)
        self.bags: Catalog[BagDefinition] = Catalog("bag", bags)
        self.humans: Catalog[HumanDefinition] = Catalog("human", humans)
        self.compensation = compensation or DEFAULT_MODELS

    def pathology(self, pathology_id: str) -> PathologyDefinition:
        return self.pathologies.get(pathology_id)

    def act(self, act_id: str) -> ActDefinition:
        return self.acts.get(act_id)

    def item(self, item_id: str) -> ItemDefinition:
        return self.items.get(item_id)

    def chemical(self, chemical_id: str) -> ChemicalDefinition:
        return self.chemicals.get(chemical_id)

    def skill(self, skill_id: str) -> SkillDefinition:
        return self.skills.get(skill_id)

    def bag(self, bag_id: str) -> BagDefinition:
        return self.bags.get(bag_id)

    def human(self, human_id: str) -> HumanDefinition:
        return self.humans.get(human_id)

    def chemicals_by_id(self) -> Dict[str, ChemicalDefinition]:
        return {chem_id: self.chemicals.get(chem_id) for chem_id in self.chemicals.ids()}

    def summary(self) -> str:
        parts = [
            f"{len(catalog)} {catalog.kind}(s)"
            for catalog in (
                self.pathologies,
                self.acts,
                self.items,
                self.chemicals,
                self.skills,
                self.bags,
                self.humans,
            )
        ]
        return ", ".join(parts)


def compensation_models(definition: CompensationDefinition) -> CompensationModels:
    """Overlay catalog curves on the built-in compensation models."""

    def rules(overrides, defaults):
        merged = dict(defaults)
        for path, rule in overrides.items():
            merged[path] = CompensationRule(as_curve(rule.points), rule.t4_nerve)
        return merged

    sympathetic = dict(DEFAULT_MODELS.sympathetic)
    for path, points in definition.sympathetic.items():
        sympathetic[path] = as_curve(points)

    return CompensationModels(
        sympathetic=sympathetic,
        compensation=rules(definition.compensation, DEFAULT_MODELS.compensation),
        overdrive=rules(definition.overdrive, DEFAULT_MODELS.overdrive),
    )


class ContentLoader:
    """Load content catalogs from a directory of JSON files.

    Each catalog file holds a JSON list of definitions. ``pathologies``,
    ``acts`` and ``items`` are required; the other catalogs are optional and
    default to empty.
    """

    REQUIRED = ("pathologies", "acts", "items")
    OPTIONAL = ("chemicals", "skills", "bags", "humans")

    _MODELS: Dict[str, Type[BaseModel]] = {
        "pathologies": PathologyDefinition,
        "acts": ActDefinition,
        "items": ItemDefinition,
        "chemicals": ChemicalDefinition,
        "skills": SkillDefinition,
        "bags": BagDefinition,
        "humans": HumanDefinition,
    }

    def __init__(self, content_dir: Optional[Path] = None):
        """Initialize content loader.

        Args:
            content_dir: Directory containing catalog files.
                         Defaults to Config.CONTENT_DIR
        """
        self.content_dir = Path(content_dir or Config.CONTENT_DIR)

    def load(self) -> ContentRegistry:
        """Read every catalog and build a registry.

        Raises:
            FileNotFoundError: If the directory or a required catalog is missing
            ValueError: If a catalog is not a JSON list or an entry fails validation
        """
        if not self.content_dir.is_dir():
            raise FileNotFoundError(f"Content directory not found at {self.content_dir}")

        catalogs = {}
        for name in self.REQUIRED + self.OPTIONAL:
            catalogs[name] = self._load_catalog(name, required=name in self.REQUIRED)

        compensation = None
        compensation_path = self.content_dir / "compensation.json"
        if compensation_path.exists():
            data = self._read_json(compensation_path)
            try:
                compensation = compensation_models(CompensationDefinition(**data))
            except (TypeError, ValidationError) as exc:
                raise ValueError(f"Invalid compensation catalog {compensation_path}: {exc}") from exc

        registry = ContentRegistry(compensation=compensation, **catalogs)
        log_success(f"Loaded content from {self.content_dir}: {registry.summary()}")
        return registry

    def _load_catalog(self, name: str, *, required: bool) -> List[BaseModel]:
        path = self.content_dir / f"{name}.json"
        if not path.exists():
            if required:
                raise FileNotFoundError(f"Catalog '{name}' not found at {path}")
            return []

        data = self._read_json(path)
        if not isinstance(data, list):
            raise ValueError(f"Catalog {path} must contain a JSON list")

        model = self._MODELS[name]
        entries = []
        for index, entry in enumerate(data):
            try:
                entries.append(model(**entry))
            except (TypeError, ValidationError) as exc:
                raise ValueError(f"Invalid entry #{index} in {path}: {exc}") from exc
        return entries

    @staticmethod
    def _read_json(path: Path):
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ValueError(f"Malformed JSON in {path}: {exc}") from exc


__all__ = [
    "Catalog",
    "ContentLoader",
    "ContentRegistry",
    "UnknownContentError",
    "compensation_models",
]
