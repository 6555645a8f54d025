"""Tests for the anatomical graph walk and the flow dispatcher."""

from __future__ import annotations

import pytest

from triagesim.physiology import BREAK, RETURN, BodyState, dispatch, find_connection, traverse
from triagesim.physiology.anatomy import connect, create_block, outgoing_edges


def _tree() -> BodyState:
    state = BodyState()
    for name in ("ROOT", "A", "A1", "B"):
        create_block(state, name)
    connect(state, "ROOT", "A", blood=0.5, nervous=True)
    connect(state, "A", "A1", blood=1.0, nervous=True)
    connect(state, "ROOT", "B", blood=0.5)
    return state


def _fan(shares) -> BodyState:
    state = BodyState()
    create_block(state, "ROOT")
    for index, share in enumerate(shares):
        name = f"C{index}"
        create_block(state, name)
        connect(state, "ROOT", name, blood=share)
    return state


def test_traverse_visits_each_block_once_depth_first():
    state = _tree()
    entered, left = [], []

    result = traverse(state, "ROOT", lambda block: entered.append(block.name), leave=lambda block: left.append(block.name))

    assert result is None
    assert entered == ["ROOT", "A", "A1", "B"]
    assert left == ["A1", "A", "B", "ROOT"]


def test_traverse_break_stops_below_block_only():
    state = _tree()
    entered, left = [], []

    def enter(block):
        entered.append(block.name)
        return BREAK if block.name == "A" else None

    traverse(state, "ROOT", enter, leave=lambda block: left.append(block.name))

    assert entered == ["ROOT", "A", "B"]
    assert "A" in left


def test_traverse_return_aborts_whole_walk():
    state = _tree()
    entered, left = [], []

    def enter(block):
        entered.append(block.name)
        return RETURN if block.name == "A" else None

    result = traverse(state, "ROOT", enter, leave=lambda block: left.append(block.name))

    assert result == RETURN
    assert entered == ["ROOT", "A"]
    assert left == []


def test_traverse_should_follow_prunes_edges():
    state = _tree()
    entered = []

    traverse(
        state,
        "ROOT",
        lambda block: entered.append(block.name),
        should_follow=lambda edge, _payload: edge.params.nervous,
    )

    assert entered == ["ROOT", "A", "A1"]


def test_traverse_unknown_start_is_a_no_op():
    assert traverse(_tree(), "NOWHERE", lambda block: None) is None


def test_find_connection_returns_block_path():
    state = _tree()
    assert find_connection(state, "ROOT", "A1") == ["ROOT", "A", "A1"]
    assert find_connection(state, "A1", "B") == ["A1", "A", "ROOT", "B"]
    assert find_connection(state, "ROOT", "A1", valid_block=lambda block: block.name != "A") == []


def test_dispatch_redistributes_absorbed_flow():
    state = _fan([0.5, 0.3, 0.2])
    state.find_block("C1").params.blood_resistance = 0.5
    edges = outgoing_edges(state, state.find_block("ROOT"))

    flows = dict((edge.target, flow) for edge, flow in dispatch(state, edges, 100.0))

    assert flows["C1"] == pytest.approx(15.0)
    assert flows["C0"] > 50.0
    assert flows["C2"] > 20.0
    assert sum(flows.values()) == pytest.approx(100.0)


def test_dispatch_blocked_children_receive_nothing():
    state = _fan([0.6, 0.4])
    for name in ("C0", "C1"):
        state.find_block(name).params.blood_flow = False
    edges = outgoing_edges(state, state.find_block("ROOT"))

    flows = [flow for _, flow in dispatch(state, edges, 100.0)]

    assert flows == [0.0, 0.0]


def test_dispatch_renormalizes_excess_shares(capsys):
    state = _fan([0.8, 0.7])
    edges = outgoing_edges(state, state.find_block("ROOT"))

    flows = [flow for _, flow in dispatch(state, edges, 100.0)]

    assert sum(flows) == pytest.approx(100.0)
    assert "renormalizing" in capsys.readouterr().out


def test_dispatch_never_creates_flow():
    state = _fan([0.25, 0.25, 0.25])
    state.find_block("C0").params.blood_flow = False
    state.find_block("C2").params.blood_resistance = 0.9
    edges = outgoing_edges(state, state.find_block("ROOT"))

    total = sum(flow for _, flow in dispatch(state, edges, 80.0))

    assert total <= 80.0 + 1e-9
    assert total == pytest.approx(0.75 * 80.0)
