"""
Temporal world-state manager.

The manager keeps, per human, three snapshot timelines: the body (with its
console, category and freeze flag), the position on the map, and the
inventory carried. Events are folded into these timelines in
``(time, timestamp, id)`` order. An event may be dated before snapshots that
already exist; every later snapshot of the targeted human is then derived
again from its predecessor, so no stale future survives.

Design Philosophy:
- One entity at a time: recomputing a human's futures never reads another
  human's timeline
- A failing event is logged against its entity; other entities carry on
- Lookups for an unknown human lazily create its baseline at time 0
- Derivation is replay-safe: the same event log gives the same snapshots

Usage:
    manager = WorldStateManager(ContentLoader().load())
    manager.sync(events, now=120)
    snapshot = manager.snapshot_at("patient-1", 120)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .actions import DelayedAction, DelayedActionQueue
from .config import Config
from .environment import ObstacleGrid, find_path, position_along_path
from .logging_utils import log_deterministic, log_error, log_warning
from .pathology import (
    AfflictedPathology,
    BodyEffect,
    ResolvedAction,
    RevivedPathology,
    do_action_on_body,
    resolve_action,
    revive,
)
from .perception import FogOfWar, HumanView, console_for_observer, line_of_sight
from .physiology import (
    BodyFactoryParams,
    BodyState,
    Environment,
    HumanMeta,
    advance,
    apply_rules_at,
    create_body,
    read_metric,
)
from .registry import ContentRegistry
from .schemas import (
    ActionBodyEffect,
    ActionBodyMeasure,
    Categorization,
    ConsoleLog,
    ItemCount,
    Location,
    MeasureLog,
    MeasureMetric,
    MessageLog,
    TreatmentLog,
    WorldEvent,
)
from .timeline import Snapshot, SnapshotTimeline


class EntitySyncError(Exception):
    """Raised by a strict sync when events failed for one or more entities."""

    def __init__(self, *, time: float, errors: Dict[str, Exception]) -> None:
        self.time = time
        self.errors = errors
        lines = [f"Synchronization at t={time} failed for {len(errors)} entit(y/ies):"]
        for entity_id, error in errors.items():
            lines.append(f"  - {entity_id}: {error}")
        lines.extend(
            [
                "\nRemediation tips:",
                "  - Check the content ids referenced by the failing events",
                "  - Enable DEBUG_PHYSIOLOGY=true to trace the body computation",
            ]
        )
        super().__init__("\n".join(lines))


# ============================================================================
# Per-entity state
# ============================================================================


@dataclass
class HumanHealth:
    """Injuries and treatments of one human. Append-only; rules carry absolute times."""

    pathologies: List[RevivedPathology] = field(default_factory=list)
    effects: List[BodyEffect] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.pathologies and not self.effects


@dataclass
class HumanState:
    body: BodyState
    console: List[ConsoleLog] = field(default_factory=list)
    category: Optional[Categorization] = None
    frozen: bool = False

    def copy(self) -> "HumanState":
        return HumanState(
            body=self.body.copy(),
            console=list(self.console),
            category=self.category,
            frozen=self.frozen,
        )


@dataclass
class PositionState:
    location: Optional[Location] = None
    # Waypoints still to follow; None when static
    path: Optional[Tuple[Tuple[float, float], ...]] = None
    departure: float = 0.0

    @property
    def moving(self) -> bool:
        return self.path is not None

    def point(self) -> Optional[Tuple[float, float]]:
        return (self.location.x, self.location.y) if self.location is not None else None


Inventory = Dict[str, ItemCount]


def merge_inventory(inventory: Inventory, delta: Inventory) -> None:
    """Add ``delta`` to ``inventory`` in place; ``infinity`` is absorbing."""
    for item_id, count in delta.items():
        current = inventory.get(item_id)
        if count == "infinity":
            inventory[item_id] = "infinity"
        elif current is None:
            inventory[item_id] = count
        elif current != "infinity":
            inventory[item_id] = current + count


# ============================================================================
# Manager
# ============================================================================


class WorldStateManager:
    """Folds world events into per-entity snapshot timelines."""

    def __init__(
        self,
        registry: ContentRegistry,
        env: Optional[Environment] = None,
        *,
        grid: Optional[ObstacleGrid] = None,
        fog_type: Optional[str] = None,
        step: Optional[float] = None,
        speed: Optional[float] = None,
        line_of_sight_radius: Optional[float] = None,
        lung_vasoconstriction: Optional[bool] = None,
    ) -> None:
        self.registry = registry
        self.env = env or Environment()
        self.grid = grid
        self.step = step if step is not None else Config.STEP_DURATION_SECONDS
        self.speed = speed if speed is not None else Config.HUMAN_SPEED
        self.line_of_sight_radius = (
            line_of_sight_radius if line_of_sight_radius is not None else Config.LINE_OF_SIGHT_RADIUS
        )
        self.lung_vasoconstriction = (
            lung_vasoconstriction if lung_vasoconstriction is not None else Config.LUNG_VASOCONSTRICTION
        )
        self.fog = FogOfWar(fog_type or Config.FOG_TYPE)

        self.humans: SnapshotTimeline[HumanState] = SnapshotTimeline()
        self.positions: SnapshotTimeline[PositionState] = SnapshotTimeline()
        self.inventories: SnapshotTimeline[Inventory] = SnapshotTimeline()
        self.delayed = DelayedActionQueue()
        self.now = 0.0

        self._health: Dict[str, HumanHealth] = {}
        self._meta: Dict[str, HumanMeta] = {}
        # Aging deltas per human, keyed by the time of the aged snapshot
        self._agings: Dict[str, Dict[float, List[float]]] = {}
        self._processed: Dict[int, WorldEvent] = {}
        self._chemicals = registry.chemicals_by_id()

        self._handlers: Dict[str, Callable[[WorldEvent], None]] = {
            "Teleport": self._on_teleport,
            "FollowPath": self._on_follow_path,
            "HumanPathology": self._on_pathology,
            "HumanTreatment": self._on_treatment,
            "HumanMeasure": self._on_measure,
            "HumanLogMessage": self._on_log_message,
            "Categorize": self._on_categorize,
            "CancelAction": self._on_cancel,
            "GiveBag": self._on_give_bag,
            "Freeze": self._on_freeze,
            "Aging": self._on_aging,
        }

    # ----- Synchronization -------------------------------------------------

    def sync(
        self, events: Iterable[WorldEvent], now: float, *, strict: bool = False
    ) -> Dict[str, Exception]:
        """Fold every new event dated at or before ``now`` and materialize ``now``.

        Returns the failures keyed by entity id. With ``strict=True`` they are
        raised as :class:`EntitySyncError` once the pass is complete.
        """
        pending = [
            event for event in events if event.time <= now and event.id not in self._processed
        ]
        pending.sort(key=WorldEvent.sort_key)

        errors: Dict[str, Exception] = {}

        def apply(entry: DelayedAction) -> None:
            try:
                self._perform_delayed(entry)
            except Exception as exc:
                log_error(f"Delayed {entry.action.label} failed for {entry.target_id}: {exc}")
                errors[entry.target_id] = exc

        for event in pending:
            # Actions due by the event's time complete before it, however the log is batched
            self.delayed.process_due(event.time, apply)
            entity_id = event.payload.target_id
            try:
                self.ingest(event)
            except Exception as exc:
                log_error(f"Event {event.id} ({event.payload.type}) failed for {entity_id}: {exc}")
                errors[entity_id] = exc
                self._processed[event.id] = event

        self.delayed.process_due(now, apply)

        for human_id in self.humans.keys():
            if human_id in errors:
                continue
            try:
                self.snapshot_at(human_id, now)
            except Exception as exc:
                log_error(f"Materializing {human_id} at t={now} failed: {exc}")
                errors[human_id] = exc

        self.now = now
        log_deterministic(f"Synced {len(pending)} event(s) at t={now}")
        if errors and strict:
            raise EntitySyncError(time=now, errors=errors)
        return errors

    def ingest(self, event: WorldEvent) -> None:
        """Apply one event to the timelines of its target."""
        handler = self._handlers[event.payload.type]
        handler(event)
        self._processed[event.id] = event

    def _next_event(self, event: WorldEvent, types: Tuple[str, ...]) -> Optional[WorldEvent]:
        """The first already-processed event of ``types`` on the same target after ``event``."""
        target = event.payload.target_id
        later = [
            other
            for other in self._processed.values()
            if other.payload.type in types
            and other.payload.target_id == target
            and other.sort_key() > event.sort_key()
        ]
        return min(later, key=WorldEvent.sort_key) if later else None

    # ----- Human timeline --------------------------------------------------

    def _body_params(self, human_id: str) -> BodyFactoryParams:
        definition = self.registry.humans.find(human_id)
        if definition is None:
            log_warning(f"No body definition for {human_id}; using default parameters")
            return BodyFactoryParams()
        return BodyFactoryParams(
            age=definition.age,
            sex=definition.sex,
            bmi=definition.bmi,
            height_cm=definition.height_cm,
            lung_depth=definition.lung_depth,
            temperature=definition.temperature,
            sugar_level=definition.sugar_level,
        )

    def init_human(self, human_id: str) -> HumanState:
        body = create_body(
            self._body_params(human_id),
            self.env,
            models=self.registry.compensation,
            lung_vasoconstriction=self.lung_vasoconstriction,
        )
        self._meta[human_id] = body.meta
        return HumanState(body=body.state)

    def health(self, human_id: str) -> HumanHealth:
        return self._health.setdefault(human_id, HumanHealth())

    def meta(self, human_id: str) -> Optional[HumanMeta]:
        return self._meta.get(human_id)

    def _most_recent_human(
        self, human_id: str, time: float, until: Optional[float] = None
    ) -> Tuple[Snapshot[HumanState], List[Snapshot[HumanState]]]:
        snapshot, futures = self.humans.most_recent(human_id, time, until=until)
        if snapshot is None:
            snapshot = self.humans.insert(human_id, Snapshot(0.0, self.init_human(human_id)))
            futures = [
                future
                for future in self.humans.after(human_id, 0.0)
                if until is None or future.time < until
            ]
        return snapshot, futures

    def _human_snapshot_at(
        self, human_id: str, time: float, until: Optional[float] = None
    ) -> Tuple[Snapshot[HumanState], List[Snapshot[HumanState]]]:
        snapshot, futures = self._most_recent_human(human_id, time, until)
        if snapshot.time < time:
            snapshot = self.humans.insert(
                human_id, Snapshot(time, self._derive(human_id, snapshot.state, time))
            )
        return snapshot, futures

    def snapshot_at(self, human_id: str, time: float) -> Snapshot[HumanState]:
        """The human at ``time``, derived from its latest earlier snapshot when needed."""
        snapshot, _ = self._human_snapshot_at(human_id, time)
        return snapshot

    def _evolve(self, human_id: str, body: BodyState, frozen: bool, time: float) -> BodyState:
        health = self._health.get(human_id)
        if frozen or health is None or health.is_empty():
            # Nothing can change a resting or frozen body
            evolved = body.copy()
            evolved.time = time
            return evolved
        return advance(
            body,
            self._meta[human_id],
            self.env,
            time - body.time,
            health.pathologies,
            health.effects,
            step=self.step,
            chemicals=self._chemicals,
            models=self.registry.compensation,
            lung_vasoconstriction=self.lung_vasoconstriction,
        )

    def _age(self, human_id: str, body: BodyState, frozen: bool, delta: float) -> BodyState:
        aged = self._evolve(human_id, body, frozen, body.time + delta)
        aged.time = body.time
        return aged

    def _advance_body(self, human_id: str, body: BodyState, frozen: bool, time: float) -> BodyState:
        evolved = self._evolve(human_id, body, frozen, time)
        for delta in self._agings.get(human_id, {}).get(time, []):
            evolved = self._age(human_id, evolved, frozen, delta)
        return evolved

    def _derive(self, human_id: str, previous: HumanState, time: float) -> HumanState:
        state = previous.copy()
        state.body = self._advance_body(human_id, previous.body, previous.frozen, time)
        return state

    def _future_bodies(
        self, human_id: str, previous: HumanState, futures: List[Snapshot[HumanState]]
    ) -> List[BodyState]:
        bodies = []
        body, frozen = previous.body, previous.frozen
        for future in futures:
            body = self._advance_body(human_id, body, frozen, future.time)
            bodies.append(body)
            frozen = future.state.frozen
        return bodies

    def _recompute_futures(
        self,
        human_id: str,
        snapshot: Snapshot[HumanState],
        futures: List[Snapshot[HumanState]],
    ) -> None:
        """Derive each future body again from its predecessor. Consoles and flags are kept."""
        for future, body in zip(futures, self._future_bodies(human_id, snapshot.state, futures)):
            future.state.body = body

    def _apply_source(
        self,
        human_id: str,
        source: Union[RevivedPathology, BodyEffect],
        time: float,
        register: Callable[[HumanHealth], None],
    ) -> None:
        """Register ``source`` and rebuild the timeline from ``time``.

        Every body is derived before anything is stored. When a rule fails to
        apply, the source is unregistered and the timeline is left untouched.
        """
        snapshot, futures = self._most_recent_human(human_id, time)
        health = self.health(human_id)
        counts = (len(health.pathologies), len(health.effects))
        register(health)
        try:
            if snapshot.time == time:
                # advance() never applies rules dated at its start
                anchor = snapshot.state.copy()
                if not anchor.frozen:
                    apply_rules_at(anchor.body, self._meta[human_id], time, source.rules)
            else:
                anchor = self._derive(human_id, snapshot.state, time)
            bodies = self._future_bodies(human_id, anchor, futures)
        except Exception:
            del health.pathologies[counts[0]:]
            del health.effects[counts[1]:]
            raise

        if snapshot.time == time:
            snapshot.state.body = anchor.body
        else:
            self.humans.insert(human_id, Snapshot(time, anchor))
        for future, body in zip(futures, bodies):
            future.state.body = body

    # ----- Console ---------------------------------------------------------

    def _add_log(self, human_id: str, entry: ConsoleLog, time: float) -> None:
        snapshot, futures = self._human_snapshot_at(human_id, time)
        for target in [snapshot] + futures:
            target.state.console.append(entry)
            target.state.console.sort(key=lambda log: log.time)

    def _add_message(
        self, emitter_id: Optional[str], human_id: str, time: float, message: str
    ) -> None:
        self._add_log(
            human_id,
            MessageLog(time=time, emitter_character_id=emitter_id, message=message),
            time,
        )

    def console(
        self, human_id: str, observer_id: Optional[str] = None, time: Optional[float] = None
    ) -> List[ConsoleLog]:
        snapshot = self.snapshot_at(human_id, self.now if time is None else time)
        return console_for_observer(snapshot.state.console, observer_id)

    # ----- Event handlers: body --------------------------------------------

    def _on_pathology(self, event: WorldEvent) -> None:
        payload = event.payload
        definition = self.registry.pathologies.find(payload.pathology_id)
        if definition is None:
            log_warning(f"Pathology {payload.pathology_id!r} does not exist; event {event.id} skipped")
            return

        afflicted = AfflictedPathology(
            pathology_id=payload.pathology_id,
            afflicted_blocks=tuple(payload.afflicted_blocks),
            modules_arguments=tuple(payload.modules_arguments),
        )
        try:
            revived = revive(definition, afflicted, event.time)
        except ValueError as exc:
            log_warning(f"Event {event.id}: {exc}")
            return

        self._apply_source(
            payload.target_id,
            revived,
            event.time,
            lambda health: health.pathologies.append(revived),
        )

    def _skill_level(self, character_id: Optional[str], resolved: ResolvedAction) -> Optional[str]:
        if character_id is None:
            return None
        human = self.registry.humans.find(character_id)
        if human is None or human.skill_id is None:
            return None
        skill = self.registry.skills.find(human.skill_id)
        if skill is None:
            return None
        return skill.actions.get(resolved.skill_key())

    def _start_action(
        self,
        event: WorldEvent,
        kind: type,
        perform: Callable[[float, ResolvedAction, WorldEvent], None],
    ) -> None:
        payload = event.payload
        resolved = resolve_action(self.registry, payload.source)
        if resolved is None:
            log_warning(f"Action {payload.source!r} does not exist; event {event.id} skipped")
            return
        if not isinstance(resolved.action, kind):
            log_warning(f"{resolved.label} cannot be used for {payload.type}")
            return

        emitter = payload.emitter_character_id
        if resolved.source_type == "item" and not self._take_item(
            event.time, emitter, resolved, payload.target_id
        ):
            return

        level = self._skill_level(emitter, resolved)
        if level is None:
            self._add_message(emitter, payload.target_id, event.time, f"skill missing: {resolved.label}")
            return

        duration = resolved.duration(level)
        if duration > 0 and not payload.time_jump:
            self.delayed.push(event.time + duration, resolved, event)
            self._add_message(emitter, payload.target_id, event.time, f"start: {resolved.label}")
        else:
            perform(event.time, resolved, event)

    def _on_treatment(self, event: WorldEvent) -> None:
        self._start_action(event, ActionBodyEffect, self._do_treatment)

    def _on_measure(self, event: WorldEvent) -> None:
        self._start_action(event, ActionBodyMeasure, self._do_measure)

    def _do_treatment(self, time: float, resolved: ResolvedAction, event: WorldEvent) -> None:
        payload = event.payload
        effect = do_action_on_body(resolved, payload.blocks, time)
        if effect is not None:
            self._apply_source(
                payload.target_id,
                effect,
                time,
                lambda health: health.effects.append(effect),
            )
        self._add_log(
            payload.target_id,
            TreatmentLog(
                time=event.time,
                emitter_character_id=payload.emitter_character_id,
                message=f"treatment: {resolved.label}",
            ),
            event.time,
        )

    def _do_measure(self, time: float, resolved: ResolvedAction, event: WorldEvent) -> None:
        payload = event.payload
        snapshot = self.snapshot_at(payload.target_id, time)
        metrics = []
        for path in resolved.action.metric_name:
            try:
                value = read_metric(snapshot.state.body, path)
            except KeyError:
                log_warning(f"{resolved.label}: unknown metric {path}")
                value = None
            metrics.append(MeasureMetric(metric=path, value=value))
        self._add_log(
            payload.target_id,
            MeasureLog(time=time, emitter_character_id=payload.emitter_character_id, metrics=metrics),
            time,
        )

    def _perform_delayed(self, entry: DelayedAction) -> None:
        if isinstance(entry.action.action, ActionBodyMeasure):
            self._do_measure(entry.due_date, entry.action, entry.event)
        else:
            self._do_treatment(entry.due_date, entry.action, entry.event)

    def _on_cancel(self, event: WorldEvent) -> None:
        for entry in self.delayed.cancel(event.payload.event_id):
            self._add_message(
                entry.event.payload.emitter_character_id,
                entry.target_id,
                event.time,
                f"cancel: {entry.action.label}",
            )

    def _on_log_message(self, event: WorldEvent) -> None:
        payload = event.payload
        self._add_log(
            payload.target_id,
            MessageLog(
                time=event.time,
                emitter_character_id=payload.emitter_character_id,
                message=payload.message,
            ),
            event.time,
        )

    def _on_categorize(self, event: WorldEvent) -> None:
        payload = event.payload
        following = self._next_event(event, ("Categorize",))
        snapshot, futures = self._human_snapshot_at(
            payload.target_id, event.time, following.time if following else None
        )
        category = Categorization(
            category=payload.category,
            system=payload.system,
            severity=payload.severity,
            auto_triage=payload.auto_triage,
        )
        for target in [snapshot] + futures:
            target.state.category = category

    def _on_freeze(self, event: WorldEvent) -> None:
        payload = event.payload
        following = self._next_event(event, ("Freeze",))
        snapshot, futures = self._human_snapshot_at(
            payload.target_id, event.time, following.time if following else None
        )
        frozen = payload.mode == "freeze"
        for target in [snapshot] + futures:
            target.state.frozen = frozen
        self._recompute_futures(
            payload.target_id, snapshot, self.humans.after(payload.target_id, snapshot.time)
        )

    def _on_aging(self, event: WorldEvent) -> None:
        payload = event.payload
        human_id = payload.target_id
        snapshot, futures = self._human_snapshot_at(human_id, event.time)
        self._agings.setdefault(human_id, {}).setdefault(event.time, []).append(payload.delta_seconds)
        snapshot.state.body = self._age(
            human_id, snapshot.state.body, snapshot.state.frozen, payload.delta_seconds
        )
        self._recompute_futures(human_id, snapshot, futures)

    # ----- Event handlers: positions ---------------------------------------

    def _position_after(self, state: PositionState, time: float) -> PositionState:
        if not state.moving:
            return replace(state)
        (x, y), moving = position_along_path(state.path, self.speed, time - state.departure)
        map_id = state.location.map_id if state.location is not None else None
        return PositionState(
            location=Location(x=x, y=y, map_id=map_id),
            path=state.path if moving else None,
            departure=state.departure,
        )

    def _set_position(self, event: WorldEvent, state: PositionState) -> None:
        human_id = event.payload.target_id
        following = self._next_event(event, ("Teleport", "FollowPath"))
        snapshot, futures = self.positions.most_recent(
            human_id, event.time, until=following.time if following else None
        )
        if snapshot is None:
            futures = [
                future
                for future in self.positions.after(human_id, event.time)
                if following is None or future.time < following.time
            ]
        if snapshot is None or snapshot.time < event.time:
            self.positions.insert(human_id, Snapshot(event.time, state))
        else:
            snapshot.state = state
        for future in futures:
            future.state = self._position_after(state, future.time)

    def _on_teleport(self, event: WorldEvent) -> None:
        self._set_position(event, PositionState(location=event.payload.location, departure=event.time))

    def _on_follow_path(self, event: WorldEvent) -> None:
        payload = event.payload
        start, destination = payload.start, payload.destination
        waypoints = find_path(self.grid, (start.x, start.y), (destination.x, destination.y))
        if waypoints is None:
            log_warning(f"No path for {payload.target_id} to ({destination.x}, {destination.y})")
        self._set_position(
            event,
            PositionState(
                location=start,
                path=tuple(waypoints) if waypoints else None,
                departure=event.time,
            ),
        )

    def position_at(self, human_id: str, time: float) -> Optional[PositionState]:
        """Where ``human_id`` is at ``time``, or None when it was never placed."""
        snapshot, _ = self.positions.most_recent(human_id, time)
        if snapshot is None:
            return None
        if snapshot.state.moving and snapshot.time < time:
            snapshot = self.positions.insert(
                human_id, Snapshot(time, self._position_after(snapshot.state, time))
            )
        return snapshot.state

    # ----- Event handlers: inventories -------------------------------------

    def inventory_at(self, owner_id: str, time: float) -> Inventory:
        snapshot, _ = self.inventories.most_recent(owner_id, time)
        return dict(snapshot.state) if snapshot is not None else {}

    def _update_inventory(self, owner_id: str, time: float, delta: Inventory) -> None:
        snapshot, futures = self.inventories.most_recent(owner_id, time)
        if snapshot is None:
            futures = self.inventories.after(owner_id, time)
            snapshot = self.inventories.insert(owner_id, Snapshot(time, {}))
        elif snapshot.time < time:
            snapshot = self.inventories.insert(owner_id, Snapshot(time, dict(snapshot.state)))
        for target in [snapshot] + futures:
            merge_inventory(target.state, delta)

    def _take_item(
        self, time: float, owner_id: Optional[str], resolved: ResolvedAction, patient_id: str
    ) -> bool:
        """Check the owner carries the item and consume it when disposable."""
        item = resolved.source
        count = self.inventory_at(owner_id, time).get(item.id) if owner_id else None
        if count == "infinity":
            return True
        if count is None or count <= 0:
            self._add_message(owner_id, patient_id, time, f"missing: {item.name or item.id}")
            return False
        if resolved.disposable:
            self._update_inventory(owner_id, time, {item.id: -1})
        return True

    def _on_give_bag(self, event: WorldEvent) -> None:
        bag = self.registry.bags.find(event.payload.bag_id)
        if bag is None:
            log_warning(f"Bag {event.payload.bag_id!r} does not exist; event {event.id} skipped")
            return
        self._update_inventory(event.payload.target_id, event.time, dict(bag.items))

    # ----- Views -----------------------------------------------------------

    def view(self, observer_id: str, time: Optional[float] = None) -> Dict[str, HumanView]:
        """Humans as ``observer_id`` sees them through the fog at ``time``."""
        time = self.now if time is None else time
        positions = {}
        for human_id in self.positions.keys():
            state = self.position_at(human_id, time)
            if state is not None:
                positions[human_id] = (state.point(), state.moving)
        states = {human_id: self.snapshot_at(human_id, time).state for human_id in self.humans.keys()}

        own = positions.get(observer_id)
        sight = None
        if own is not None and own[0] is not None:
            sight = line_of_sight(own[0], self.line_of_sight_radius)
        return self.fog.update(observer_id, positions, states, sight)


__all__ = [
    "EntitySyncError",
    "HumanHealth",
    "HumanState",
    "PositionState",
    "WorldStateManager",
    "merge_inventory",
]
