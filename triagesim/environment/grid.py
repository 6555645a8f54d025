"""Obstacle grid used by the pathfinding collaborator.

Map coordinates are continuous; the grid discretizes them into square cells
of ``cell_size`` map units. A cell is walkable unless marked as an obstacle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Set, Tuple

Cell = Tuple[int, int]


@dataclass
class ObstacleGrid:
    """Rectangular grid of ``width`` x ``height`` cells anchored at the map origin."""

    width: int
    height: int
    cell_size: float = 1.0
    obstacles: Set[Cell] = field(default_factory=set)

    @classmethod
    def from_rows(cls, rows: Iterable[str], cell_size: float = 1.0) -> "ObstacleGrid":
        """Build a grid from text rows, ``#`` marking an obstacle. Row 0 is y=0."""
        rows = list(rows)
        grid = cls(width=max((len(row) for row in rows), default=0), height=len(rows), cell_size=cell_size)
        for y, row in enumerate(rows):
            for x, char in enumerate(row):
                if char == "#":
                    grid.obstacles.add((x, y))
        return grid

    def in_bounds(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.width and 0 <= y < self.height

    def is_walkable(self, cell: Cell) -> bool:
        return self.in_bounds(cell) and cell not in self.obstacles

    def cell_of(self, x: float, y: float) -> Cell:
        return int(x // self.cell_size), int(y // self.cell_size)

    def center_of(self, cell: Cell) -> Tuple[float, float]:
        return (cell[0] + 0.5) * self.cell_size, (cell[1] + 0.5) * self.cell_size
