"""Tests for the obstacle grid and path helpers."""

import pytest

from triagesim.environment import (
    ObstacleGrid,
    find_path,
    grid_shortest_path,
    position_along_path,
)


def _walled_grid() -> ObstacleGrid:
    return ObstacleGrid.from_rows(
        [
            "....",
            ".##.",
            "....",
        ]
    )


def test_from_rows_marks_obstacles():
    grid = _walled_grid()

    assert (grid.width, grid.height) == (4, 3)
    assert grid.obstacles == {(1, 1), (2, 1)}
    assert not grid.is_walkable((1, 1))
    assert not grid.is_walkable((4, 0))
    assert grid.is_walkable((3, 2))


def test_grid_shortest_path_routes_around_walls():
    grid = _walled_grid()

    path = grid_shortest_path(grid, (0, 1), (3, 1))

    assert path[0] == (0, 1)
    assert path[-1] == (3, 1)
    assert len(path) == 6
    assert not set(path) & grid.obstacles


def test_grid_shortest_path_unreachable():
    grid = ObstacleGrid.from_rows([".#.", ".#.", ".#."])

    assert grid_shortest_path(grid, (0, 0), (2, 0)) is None
    assert grid_shortest_path(grid, (1, 0), (2, 0)) is None


def test_find_path_without_grid_is_straight():
    assert find_path(None, (0, 0), (10, 5)) == [(0, 0), (10, 5)]


def test_find_path_uses_cell_centers():
    grid = ObstacleGrid(width=3, height=1, cell_size=2.0)

    waypoints = find_path(grid, (0.5, 0.5), (5.0, 1.0))

    assert waypoints == [(0.5, 0.5), (3.0, 1.0), (5.0, 1.0)]


def test_position_along_path():
    waypoints = [(0, 0), (10, 0), (10, 10)]

    assert position_along_path(waypoints, 2, 3) == ((6, 0), True)
    point, moving = position_along_path(waypoints, 2, 7)
    assert point == pytest.approx((10, 4))
    assert moving
    assert position_along_path(waypoints, 2, 60) == ((10, 10), False)


def test_position_along_empty_path_raises():
    with pytest.raises(ValueError):
        position_along_path([], 1.0, 5)
