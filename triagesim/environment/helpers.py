"""Pathfinding and path interpolation on an ``ObstacleGrid``."""

from __future__ import annotations

import math
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .grid import Cell, ObstacleGrid

Waypoint = Tuple[float, float]

_DIRECTIONS = ((1, 0), (-1, 0), (0, 1), (0, -1))


def grid_shortest_path(grid: ObstacleGrid, start: Cell, goal: Cell) -> Optional[List[Cell]]:
    """Breadth-first shortest path between two cells, both ends included.

    Returns None when the goal is unreachable or either end is blocked.
    """
    if not grid.is_walkable(start) or not grid.is_walkable(goal):
        return None
    if start == goal:
        return [start]

    parents: Dict[Cell, Optional[Cell]] = {start: None}
    queue = deque([start])

    def neighbors(cell: Cell) -> Iterable[Cell]:
        x, y = cell
        for dx, dy in _DIRECTIONS:
            candidate = (x + dx, y + dy)
            if grid.is_walkable(candidate):
                yield candidate

    while queue:
        cell = queue.popleft()
        for neighbor in neighbors(cell):
            if neighbor in parents:
                continue
            parents[neighbor] = cell
            if neighbor == goal:
                path = [goal]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            queue.append(neighbor)
    return None


def find_path(
    grid: Optional[ObstacleGrid], start: Waypoint, destination: Waypoint
) -> Optional[List[Waypoint]]:
    """Waypoints from ``start`` to ``destination`` in map coordinates.

    Without a grid the path is the straight segment. Intermediate waypoints
    are the centers of the traversed cells.
    """
    if grid is None:
        return [start, destination]
    cells = grid_shortest_path(grid, grid.cell_of(*start), grid.cell_of(*destination))
    if cells is None:
        return None
    return [start] + [grid.center_of(cell) for cell in cells[1:-1]] + [destination]


def position_along_path(
    waypoints: Sequence[Waypoint], speed: float, elapsed: float
) -> Tuple[Waypoint, bool]:
    """Position after walking ``elapsed`` seconds at ``speed``.

    Returns the position and whether the walker is still moving.
    """
    if not waypoints:
        raise ValueError("Empty path")
    remaining = max(elapsed, 0) * speed
    for a, b in zip(waypoints, waypoints[1:]):
        segment = math.dist(a, b)
        if remaining < segment:
            ratio = remaining / segment
            return (a[0] + (b[0] - a[0]) * ratio, a[1] + (b[1] - a[1]) * ratio), True
        remaining -= segment
    return tuple(waypoints[-1]), False
