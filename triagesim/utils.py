"""Numeric helpers shared by the physiology model.

Response curves are piecewise-linear lists of ``(x, y)`` points sorted by x.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Sequence, Tuple

Point = Tuple[float, float]
Curve = Sequence[Point]


def interpolate(x: float, points: Curve) -> float:
    """Piecewise-linear interpolation, clamped to the first/last y value."""
    if not points:
        return 0.0
    if x is None or math.isnan(x):
        return points[0][1]
    first_x, first_y = points[0]
    if x <= first_x:
        return first_y
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        if x <= x1:
            if x1 == x0:
                return y1
            return y0 + (x - x0) * (y1 - y0) / (x1 - x0)
    return points[-1][1]


def normalize(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def as_curve(raw: Iterable) -> Tuple[Point, ...]:
    """Accept ``[[x, y], ...]`` or ``[{"x": .., "y": ..}, ...]`` and return sorted points."""
    points = []
    for item in raw:
        if isinstance(item, Mapping):
            points.append((float(item["x"]), float(item["y"])))
        else:
            x, y = item
            points.append((float(x), float(y)))
    return tuple(sorted(points, key=lambda p: p[0]))
