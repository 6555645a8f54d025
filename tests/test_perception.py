"""Tests for fog of war and per-observer consoles."""

import pytest

from triagesim.perception import FogOfWar, console_for_observer, line_of_sight, point_in_polygon
from triagesim.schemas import MessageLog

SQUARE = [(0, 0), (10, 0), (10, 10), (0, 10)]


def test_point_in_polygon():
    assert point_in_polygon((5, 5), SQUARE)
    assert not point_in_polygon((15, 5), SQUARE)
    assert not point_in_polygon(None, SQUARE)
    assert not point_in_polygon((5, 5), None)


def test_line_of_sight_approximates_circle():
    polygon = line_of_sight((0, 0), 10, sides=16)

    assert len(polygon) == 16
    assert point_in_polygon((9, 0), polygon)
    assert not point_in_polygon((11, 0), polygon)


def test_unknown_fog_type_is_rejected():
    with pytest.raises(ValueError):
        FogOfWar("PARTIAL")


def test_no_fog_shows_everyone():
    fog = FogOfWar("NONE")

    view = fog.update("obs", {"a": ((100, 100), False)}, {"a": "state-a", "obs": "state-obs"}, None)

    assert set(view) == {"a", "obs"}
    assert view["a"].visible
    assert view["a"].state == "state-a"


def test_full_fog_shows_only_observer():
    fog = FogOfWar("FULL")

    view = fog.update("obs", {"obs": ((0, 0), False), "a": ((1, 1), False)}, {}, SQUARE)

    assert set(view) == {"obs"}


def test_sight_fog_remembers_still_humans_out_of_sight():
    fog = FogOfWar("SIGHT")
    positions = {"obs": ((1, 1), False), "a": ((5, 5), False)}
    fog.update("obs", positions, {}, SQUARE)

    moved_sight = [(20, 20), (30, 20), (30, 30), (20, 30)]
    view = fog.update("obs", {"obs": ((25, 25), False), "a": ((5, 5), False)}, {}, moved_sight)

    assert not view["a"].visible
    assert view["a"].location == (5, 5)


def test_sight_fog_forgets_location_when_it_is_visibly_empty():
    fog = FogOfWar("SIGHT")
    fog.update("obs", {"obs": ((1, 1), False), "a": ((5, 5), False)}, {}, SQUARE)

    view = fog.update("obs", {"obs": ((1, 1), False), "a": ((50, 50), False)}, {}, SQUARE)

    assert not view["a"].visible
    assert view["a"].location is None


def test_sight_fog_forgets_location_of_moving_humans():
    fog = FogOfWar("SIGHT")
    fog.update("obs", {"obs": ((1, 1), False), "a": ((5, 5), True)}, {}, SQUARE)

    moved_sight = [(20, 20), (30, 20), (30, 30), (20, 30)]
    view = fog.update("obs", {"obs": ((25, 25), False), "a": ((6, 6), True)}, {}, moved_sight)

    assert view["a"].location is None
    assert not view["a"].moving


def test_observers_have_separate_memories():
    fog = FogOfWar("SIGHT")
    fog.update("obs", {"obs": ((1, 1), False), "a": ((5, 5), False)}, {}, SQUARE)

    assert "a" in fog.known("obs")
    assert fog.known("other") == {}


def test_console_for_observer_filters_and_sorts():
    entries = [
        MessageLog(time=5, emitter_character_id="obs", message="mine"),
        MessageLog(time=1, emitter_character_id=None, message="public"),
        MessageLog(time=3, emitter_character_id="other", message="theirs"),
    ]

    assert [entry.message for entry in console_for_observer(entries, "obs")] == ["public", "mine"]
    assert [entry.message for entry in console_for_observer(entries, None)] == [
        "public",
        "theirs",
        "mine",
    ]
