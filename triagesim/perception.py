"""
Per-observer views of the world.

Each learner sees the world through a fog that depends on ``Config.FOG_TYPE``:
- ``NONE``: every human is visible
- ``FULL``: only the observer is visible
- ``SIGHT``: humans whose location lies inside the observer's line-of-sight
  polygon are visible

An observer remembers what it last saw of a human that has left its sight.
The remembered location is kept only while it is still plausible: a human
last seen moving, or last seen at a place the observer can now see, has its
location cleared.

Patient consoles are also filtered per observer: an observer reads the
entries it emitted plus entries without an emitter.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .logging_utils import log_debug

Point = Tuple[float, float]
Polygon = Sequence[Point]

FOG_TYPES = ("NONE", "SIGHT", "FULL")


def point_in_polygon(point: Optional[Point], polygon: Optional[Polygon]) -> bool:
    """Even-odd ray casting; a missing point or polygon is never inside."""
    if point is None or not polygon:
        return False
    x, y = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y):
            crossing = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < crossing:
                inside = not inside
        j = i
    return inside


def line_of_sight(center: Point, radius: float, sides: int = 32) -> List[Point]:
    """Unobstructed line of sight: a regular polygon approximating a circle."""
    cx, cy = center
    return [
        (cx + radius * math.cos(2 * math.pi * k / sides), cy + radius * math.sin(2 * math.pi * k / sides))
        for k in range(sides)
    ]


@dataclass(frozen=True)
class HumanView:
    """What one observer knows about one human."""

    human_id: str
    location: Optional[Point]
    moving: bool
    visible: bool
    state: object = None


class FogOfWar:
    """Remembers, per observer, the last view of every human."""

    def __init__(self, fog_type: str = "NONE") -> None:
        if fog_type not in FOG_TYPES:
            raise ValueError(f"Unknown fog type {fog_type!r}")
        self.fog_type = fog_type
        self._memory: Dict[str, Dict[str, HumanView]] = {}

    def known(self, observer_id: str) -> Dict[str, HumanView]:
        return dict(self._memory.get(observer_id, {}))

    def update(
        self,
        observer_id: str,
        positions: Mapping[str, Tuple[Optional[Point], bool]],
        states: Mapping[str, object],
        sight: Optional[Polygon],
    ) -> Dict[str, HumanView]:
        """Refresh the observer's view.

        Args:
            positions: current ``(location, moving)`` per human
            states: current state per human
            sight: observer's line-of-sight polygon, or None when it has no location
        """
        humans = sorted(set(states) | set(positions))
        if self.fog_type == "NONE":
            visible = set(humans)
        elif self.fog_type == "FULL" or sight is None:
            visible = {observer_id}
        else:
            visible = {
                human_id
                for human_id in humans
                if point_in_polygon(positions.get(human_id, (None, False))[0], sight)
            }
        visible.add(observer_id)

        memory = self._memory.setdefault(observer_id, {})
        for human_id in humans:
            location, moving = positions.get(human_id, (None, False))
            if human_id in visible:
                memory[human_id] = HumanView(
                    human_id=human_id,
                    location=location,
                    moving=moving,
                    visible=True,
                    state=states.get(human_id),
                )
                continue

            last = memory.get(human_id)
            if last is None:
                continue
            if last.moving or point_in_polygon(last.location, sight):
                # It was moving, or it is no longer where it was seen
                memory[human_id] = replace(last, location=None, moving=False, visible=False)
            else:
                memory[human_id] = replace(last, visible=False)

        log_debug(
            f"View of {observer_id}: {len(visible)} visible, {len(memory) - len(visible)} remembered"
        )
        return dict(memory)


def console_for_observer(entries: Sequence, observer_id: Optional[str]) -> List:
    """Console entries an observer may read, sorted by time."""
    if observer_id is None:
        selected = list(entries)
    else:
        selected = [
            entry
            for entry in entries
            if entry.emitter_character_id is None or entry.emitter_character_id == observer_id
        ]
    return sorted(selected, key=lambda entry: entry.time)


__all__ = [
    "FOG_TYPES",
    "FogOfWar",
    "HumanView",
    "console_for_observer",
    "line_of_sight",
    "point_in_polygon",
]
