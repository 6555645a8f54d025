"""Obstacle grid and pathfinding used to move humans on the map."""

from .grid import Cell, ObstacleGrid
from .helpers import (
    Waypoint,
    find_path,
    grid_shortest_path,
    position_along_path,
)

__all__ = [
    "Cell",
    "ObstacleGrid",
    "Waypoint",
    "find_path",
    "grid_shortest_path",
    "position_along_path",
]
