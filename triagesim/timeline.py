"""Per-entity snapshot timelines.

A timeline holds, per entity key, snapshots strictly ordered by time with at
most one snapshot per instant. Lookups never raise for an unknown key; they
return ``None`` and leave initialization to the caller.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class Snapshot(Generic[T]):
    time: float
    state: T


class SnapshotTimeline(Generic[T]):
    def __init__(self) -> None:
        self._snapshots: Dict[str, List[Snapshot[T]]] = {}

    def keys(self) -> List[str]:
        return list(self._snapshots)

    def __contains__(self, key: object) -> bool:
        return key in self._snapshots

    def snapshots(self, key: str) -> List[Snapshot[T]]:
        return list(self._snapshots.get(key, []))

    def _index_at_or_before(self, snapshots: List[Snapshot[T]], time: float, strict: bool) -> int:
        times = [snapshot.time for snapshot in snapshots]
        if strict:
            return bisect.bisect_left(times, time) - 1
        return bisect.bisect_right(times, time) - 1

    def most_recent(
        self,
        key: str,
        time: float,
        *,
        strict: bool = False,
        until: Optional[float] = None,
    ) -> Tuple[Optional[Snapshot[T]], List[Snapshot[T]]]:
        """Return the latest snapshot at (or strictly before) ``time`` and the snapshots after it.

        ``until`` limits the returned futures to those strictly before it.
        Returns ``(None, [])`` when the key has no snapshot at or before ``time``.
        """
        snapshots = self._snapshots.get(key)
        if not snapshots:
            return None, []
        index = self._index_at_or_before(snapshots, time, strict)
        if index < 0:
            return None, []
        futures = snapshots[index + 1:]
        if until is not None:
            futures = [snapshot for snapshot in futures if snapshot.time < until]
        return snapshots[index], futures

    def latest(self, key: str) -> Optional[Snapshot[T]]:
        snapshots = self._snapshots.get(key)
        return snapshots[-1] if snapshots else None

    def insert(self, key: str, snapshot: Snapshot[T]) -> Snapshot[T]:
        """Insert ``snapshot``; an existing snapshot at the same time is replaced."""
        snapshots = self._snapshots.setdefault(key, [])
        times = [existing.time for existing in snapshots]
        index = bisect.bisect_left(times, snapshot.time)
        if index < len(snapshots) and snapshots[index].time == snapshot.time:
            snapshots[index] = snapshot
        else:
            snapshots.insert(index, snapshot)
        return snapshot

    def after(self, key: str, time: float) -> List[Snapshot[T]]:
        return [snapshot for snapshot in self._snapshots.get(key, []) if snapshot.time > time]

    def items(self) -> Iterator[Tuple[str, List[Snapshot[T]]]]:
        for key, snapshots in self._snapshots.items():
            yield key, list(snapshots)


__all__ = ["Snapshot", "SnapshotTimeline"]
