"""Anatomical graph: block layout, connections and the guarded walk.

Blocks are linked by shared ``ConnectionParams`` records. The graph is a tree
by construction but every walk still keeps a visited set, and walks use an
explicit stack so deep respiratory subdivisions never hit the recursion limit.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from .state import Block, BlockParams, BodyState, ConnectionParams, FRESH_AIR


BREAK = "BREAK"
RETURN = "RETURN"


class Edge(NamedTuple):
    source: str
    target: str
    index: int
    params: ConnectionParams


EnterFn = Callable[[Block], Optional[str]]
LeaveFn = Callable[[Block], None]
ShouldFollowFn = Callable[[Edge, object], bool]
PrepareEdgesFn = Callable[[Block, List[Edge]], Sequence[Tuple[Edge, object]]]


# Internal bleeding capacity in mL for a 70 kg reference body
_INTERNAL_CAPACITY_70KG: Dict[str, float] = {
    "MEDIASTINUM": 6000,
    "LEFT_SHOULDER": 50,
    "LEFT_ARM": 300,
    "LEFT_ELBOW": 25,
    "LEFT_FOREARM": 150,
    "LEFT_WRIST": 1,
    "LEFT_HAND": 1,
    "RIGHT_SHOULDER": 50,
    "RIGHT_ARM": 300,
    "RIGHT_ELBOW": 25,
    "RIGHT_FOREARM": 150,
    "RIGHT_WRIST": 1,
    "RIGHT_HAND": 1,
    "ABDOMEN": 8000,
    "PELVIS": 5000,
    "LEFT_THIGH": 1500,
    "LEFT_KNEE": 50,
    "LEFT_LEG": 500,
    "LEFT_ANKLE": 1,
    "LEFT_FOOT": 1,
    "RIGHT_THIGH": 1500,
    "RIGHT_KNEE": 50,
    "RIGHT_LEG": 500,
    "RIGHT_ANKLE": 1,
    "RIGHT_FOOT": 1,
}

# Top to bottom; insertion order seeds every walk
BLOCK_NAMES: Tuple[str, ...] = (
    "HEAD",
    "BRAIN",
    "NECK",
    "C1-C4",
    "C5-C7",
    "T1-T4",
    "T5-L4",
    "THORAX_LEFT",
    "THORAX_RIGHT",
    "MEDIASTINUM",
    "LUNG",
    "HEART",
    "LEFT_SHOULDER",
    "LEFT_ARM",
    "LEFT_ELBOW",
    "LEFT_FOREARM",
    "LEFT_WRIST",
    "LEFT_HAND",
    "RIGHT_SHOULDER",
    "RIGHT_ARM",
    "RIGHT_ELBOW",
    "RIGHT_FOREARM",
    "RIGHT_WRIST",
    "RIGHT_HAND",
    "ABDOMEN",
    "PELVIS",
    "LEFT_THIGH",
    "LEFT_KNEE",
    "LEFT_LEG",
    "LEFT_ANKLE",
    "LEFT_FOOT",
    "RIGHT_THIGH",
    "RIGHT_KNEE",
    "RIGHT_LEG",
    "RIGHT_ANKLE",
    "RIGHT_FOOT",
)

_LIMB = {"blood": 1.0, "nervous": True, "bones": True}

# (from, to, connection params)
_CONNECTIONS: Tuple[Tuple[str, str, dict], ...] = (
    ("HEAD", "NECK", {"blood": 1.0, "o2": True}),
    ("HEAD", "BRAIN", {"blood": 1.0, "nervous": True}),
    ("HEAD", "C1-C4", {"nervous": True, "bones": True}),
    ("C1-C4", "C5-C7", {"nervous": True, "bones": True}),
    ("C1-C4", "LUNG", {"nervous": True}),
    ("C5-C7", "T1-T4", {"nervous": True, "bones": True}),
    ("C5-C7", "LEFT_SHOULDER", {"nervous": True, "bones": True}),
    ("C5-C7", "RIGHT_SHOULDER", {"nervous": True, "bones": True}),
    ("T1-T4", "T5-L4", {"nervous": True, "bones": True}),
    ("T5-L4", "PELVIS", {"nervous": True, "bones": True}),
    ("NECK", "MEDIASTINUM", {"blood": 0.15, "o2": True}),
    ("MEDIASTINUM", "THORAX_LEFT", {"blood": 0.005}),
    ("MEDIASTINUM", "THORAX_RIGHT", {"blood": 0.005}),
    ("MEDIASTINUM", "LUNG", {"o2": True}),
    ("MEDIASTINUM", "HEART", {"blood": 1.0}),
    ("MEDIASTINUM", "LEFT_SHOULDER", {"blood": 0.045, "bones": True}),
    ("LEFT_SHOULDER", "LEFT_ARM", _LIMB),
    ("LEFT_ARM", "LEFT_ELBOW", {**_LIMB, "blood": 0.5}),
    ("LEFT_ELBOW", "LEFT_FOREARM", _LIMB),
    ("LEFT_FOREARM", "LEFT_WRIST", {**_LIMB, "blood": 0.01}),
    ("LEFT_WRIST", "LEFT_HAND", _LIMB),
    ("MEDIASTINUM", "RIGHT_SHOULDER", {"blood": 0.045, "nervous": True, "bones": True}),
    ("RIGHT_SHOULDER", "RIGHT_ARM", _LIMB),
    ("RIGHT_ARM", "RIGHT_ELBOW", {**_LIMB, "blood": 0.5}),
    ("RIGHT_ELBOW", "RIGHT_FOREARM", _LIMB),
    ("RIGHT_FOREARM", "RIGHT_WRIST", {**_LIMB, "blood": 0.01}),
    ("RIGHT_WRIST", "RIGHT_HAND", _LIMB),
    ("MEDIASTINUM", "ABDOMEN", {"blood": 0.75}),
    ("ABDOMEN", "PELVIS", {"blood": 1 / 3}),
    ("PELVIS", "LEFT_THIGH", {**_LIMB, "blood": 0.5}),
    ("LEFT_THIGH", "LEFT_KNEE", {**_LIMB, "blood": 0.5}),
    ("LEFT_KNEE", "LEFT_LEG", _LIMB),
    ("LEFT_LEG", "LEFT_ANKLE", {**_LIMB, "blood": 0.01}),
    ("LEFT_ANKLE", "LEFT_FOOT", _LIMB),
    ("PELVIS", "RIGHT_THIGH", {**_LIMB, "blood": 0.5}),
    ("RIGHT_THIGH", "RIGHT_KNEE", {**_LIMB, "blood": 0.5}),
    ("RIGHT_KNEE", "RIGHT_LEG", _LIMB),
    ("RIGHT_LEG", "RIGHT_ANKLE", {**_LIMB, "blood": 0.01}),
    ("RIGHT_ANKLE", "RIGHT_FOOT", _LIMB),
)

_INITIAL_PARAMS: Dict[str, dict] = {
    "HEAD": {"fio2": FRESH_AIR},
    "NECK": {"air_resistance": 0.0},
    "MEDIASTINUM": {"air_resistance": 0.0},
    "LUNG": {"air_resistance": 0.0},
}


def create_block(state: BodyState, name: str, **params) -> Block:
    block = Block(name=name, params=BlockParams(**params))
    state.blocks[name] = block
    return block


def connect(state: BodyState, source: str, target: str, **params) -> int:
    """Register a connection record and reference it from both endpoints."""
    index = len(state.connections)
    state.connections.append(ConnectionParams(**params))
    from_block = state.find_block(source)
    to_block = state.find_block(target)
    if from_block is not None and to_block is not None:
        from_block.connections.append((target, index))
        to_block.connections.append((source, index))
    return index


def create_respiratory_units(state: BodyState, parent: str, depth: int, level: str = "") -> None:
    """Split ``parent`` into a balanced bronchus tree ending in ``UNIT_*`` blocks.

    Level names concatenate: ``BRONCHUS_1`` is the parent of ``BRONCHUS_11``
    and ``BRONCHUS_12``. Each leaf bronchus owns one ``UNIT_`` block.
    """
    # (parent, level, remaining depth)
    pending: List[Tuple[str, str, int]] = [(parent, level, depth)]
    while pending:
        current_parent, current_level, remaining = pending.pop(0)
        if remaining > 0:
            for i in (1, 2):
                child_level = f"{current_level}{i}"
                name = f"BRONCHUS_{child_level}"
                create_block(state, name, air_resistance=0.0, compliance=1.0)
                connect(state, current_parent, name, blood=0.5, o2=True)
                pending.append((name, child_level, remaining - 1))
        else:
            name = f"UNIT_{current_parent}"
            create_block(state, name, air_resistance=0.0, compliance=1.0)
            connect(state, current_parent, name, blood=1.0, o2=True)


def build_anatomy(state: BodyState, ideal_weight_kg: float, lung_depth: int) -> None:
    for name in BLOCK_NAMES:
        params = dict(_INITIAL_PARAMS.get(name, {}))
        if name in _INTERNAL_CAPACITY_70KG:
            params["internal_bleeding_capacity_ml"] = (
                ideal_weight_kg * _INTERNAL_CAPACITY_70KG[name] / 70
            )
        create_block(state, name, **params)
    for source, target, params in _CONNECTIONS:
        connect(state, source, target, **params)
    create_respiratory_units(state, "LUNG", lung_depth)


def outgoing_edges(state: BodyState, block: Block) -> List[Edge]:
    return [
        Edge(block.name, target, index, state.connections[index])
        for target, index in block.connections
    ]


def traverse(
    state: BodyState,
    start: str,
    enter: EnterFn,
    *,
    leave: Optional[LeaveFn] = None,
    should_follow: Optional[ShouldFollowFn] = None,
    prepare_edges: Optional[PrepareEdgesFn] = None,
) -> Optional[str]:
    """Depth-first walk visiting each reachable block at most once.

    ``enter`` may return ``BREAK`` to stop exploring below the current block
    (``leave`` is still called for it) or ``RETURN`` to abort the whole walk
    (no further ``leave`` calls). ``prepare_edges`` receives the unvisited
    outgoing edges of a block when it is entered and returns ``(edge, payload)``
    pairs; ``should_follow`` then decides edge by edge.

    Returns:
        ``RETURN`` if the walk was aborted, ``None`` otherwise
    """
    root = state.find_block(start)
    if root is None:
        return None

    visited = {start}
    stack: List[Tuple[Block, Iterator[Tuple[Edge, object]]]] = []

    def push(block: Block, signal: Optional[str]) -> None:
        if signal == BREAK:
            prepared: Sequence[Tuple[Edge, object]] = ()
        else:
            edges = [e for e in outgoing_edges(state, block) if e.target not in visited]
            if prepare_edges is not None:
                prepared = prepare_edges(block, edges)
            else:
                prepared = [(edge, None) for edge in edges]
        stack.append((block, iter(prepared)))

    signal = enter(root)
    if signal == RETURN:
        return RETURN
    push(root, signal)

    while stack:
        block, edges = stack[-1]
        for edge, payload in edges:
            if edge.target in visited:
                continue
            if should_follow is not None and not should_follow(edge, payload):
                continue
            target = state.find_block(edge.target)
            if target is None:
                continue
            visited.add(target.name)
            signal = enter(target)
            if signal == RETURN:
                return RETURN
            push(target, signal)
            break
        else:
            stack.pop()
            if leave is not None:
                leave(block)
    return None


def find_connection(
    state: BodyState,
    start: str,
    end: str,
    *,
    valid_block: Optional[Callable[[Block], bool]] = None,
    should_walk: Optional[Callable[[ConnectionParams], bool]] = None,
) -> List[str]:
    """Return the block names from ``start`` to ``end``, or ``[]`` when unreachable.

    Invalid blocks are neither crossed nor accepted as the destination.
    """
    parents: Dict[str, Optional[str]] = {start: None}
    found: List[bool] = []

    def enter(block: Block) -> Optional[str]:
        if valid_block is not None and not valid_block(block):
            return BREAK
        if block.name == end:
            found.append(True)
            return RETURN
        return None

    def follow(edge: Edge, _payload: object) -> bool:
        if should_walk is not None and not should_walk(edge.params):
            return False
        parents[edge.target] = edge.source
        return True

    traverse(state, start, enter, should_follow=follow)

    if not found:
        return []
    path = [end]
    while parents[path[-1]] is not None:
        path.append(parents[path[-1]])
    return list(reversed(path))
