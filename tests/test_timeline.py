"""Tests for snapshot timelines and the delayed action queue."""

from triagesim.actions import DelayedActionQueue
from triagesim.pathology import resolve_action
from triagesim.registry import ContentRegistry
from triagesim.schemas import ActDefinition, ActSource, WorldEvent
from triagesim.timeline import Snapshot, SnapshotTimeline


def _timeline() -> SnapshotTimeline:
    timeline = SnapshotTimeline()
    for time in (30, 0, 10):
        timeline.insert("h", Snapshot(time, f"at-{time}"))
    return timeline


def test_insert_keeps_time_order_and_replaces_same_instant():
    timeline = _timeline()
    timeline.insert("h", Snapshot(10, "replaced"))

    assert [snapshot.time for snapshot in timeline.snapshots("h")] == [0, 10, 30]
    assert timeline.snapshots("h")[1].state == "replaced"
    assert timeline.latest("h").time == 30


def test_most_recent_returns_snapshot_and_futures():
    timeline = _timeline()

    snapshot, futures = timeline.most_recent("h", 15)
    assert snapshot.time == 10
    assert [future.time for future in futures] == [30]

    snapshot, futures = timeline.most_recent("h", 10)
    assert snapshot.time == 10

    snapshot, futures = timeline.most_recent("h", 10, strict=True)
    assert snapshot.time == 0
    assert [future.time for future in futures] == [10, 30]


def test_most_recent_until_limits_futures():
    timeline = _timeline()

    _, futures = timeline.most_recent("h", 0, until=30)

    assert [future.time for future in futures] == [10]


def test_most_recent_unknown_key_or_too_early():
    timeline = _timeline()

    assert timeline.most_recent("ghost", 10) == (None, [])
    timeline.insert("late", Snapshot(50, "x"))
    assert timeline.most_recent("late", 10) == (None, [])
    assert timeline.latest("ghost") is None


def test_after_and_keys():
    timeline = _timeline()

    assert [snapshot.time for snapshot in timeline.after("h", 5)] == [10, 30]
    assert timeline.keys() == ["h"]
    assert "h" in timeline
    assert "ghost" not in timeline


def _measure_event(event_id: int) -> WorldEvent:
    return WorldEvent(
        id=event_id,
        time=0,
        payload={
            "type": "HumanMeasure",
            "target_id": f"p{event_id}",
            "source": {"type": "act", "act_id": "measureHR"},
        },
    )


def _measure_hr():
    registry = ContentRegistry(
        acts=[
            ActDefinition(
                id="measureHR",
                action={"type": "ActionBodyMeasure", "metric_name": ["vitals.cardio.hr"]},
            )
        ]
    )
    return resolve_action(registry, ActSource(act_id="measureHR"))


def test_queue_processes_due_actions_in_order():
    queue = DelayedActionQueue()
    action = _measure_hr()
    queue.push(20, action, _measure_event(1))
    queue.push(5, action, _measure_event(2))
    queue.push(50, action, _measure_event(3))

    applied = []
    count = queue.process_due(20, lambda entry: applied.append(entry.target_id))

    assert count == 2
    assert applied == ["p2", "p1"]
    assert [entry.due_date for entry in queue.pending()] == [50]
    assert queue.pending("p3")[0].event.id == 3


def test_queue_cancel_removes_event_actions():
    queue = DelayedActionQueue()
    action = _measure_hr()
    queue.push(10, action, _measure_event(1))
    queue.push(10, action, _measure_event(2))

    cancelled = queue.cancel(1)

    assert [entry.target_id for entry in cancelled] == ["p1"]
    assert len(queue) == 1
    assert queue.cancel(99) == []
