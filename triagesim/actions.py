"""Delayed treatments and measures.

An action whose duration is positive is parked here when its event is
ingested and applied once simulated time reaches its due date.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from .logging_utils import log_debug
from .pathology import ResolvedAction
from .schemas import WorldEvent


@dataclass(frozen=True)
class DelayedAction:
    id: int
    due_date: float
    action: ResolvedAction
    event: WorldEvent

    @property
    def target_id(self) -> str:
        return self.event.payload.target_id


class DelayedActionQueue:
    """Pending actions kept in ``(due_date, id)`` order."""

    def __init__(self) -> None:
        self._pending: List[DelayedAction] = []
        self._next_id = 0

    def push(self, due_date: float, action: ResolvedAction, event: WorldEvent) -> DelayedAction:
        delayed = DelayedAction(id=self._next_id, due_date=due_date, action=action, event=event)
        self._next_id += 1
        self._pending.append(delayed)
        self._pending.sort(key=lambda entry: (entry.due_date, entry.id))
        log_debug(f"Delayed {action.label} until t={due_date}")
        return delayed

    def cancel(self, event_id: int) -> List[DelayedAction]:
        """Drop every pending action created by event ``event_id`` and return them."""
        cancelled = [entry for entry in self._pending if entry.event.id == event_id]
        self._pending = [entry for entry in self._pending if entry.event.id != event_id]
        return cancelled

    def pop_due(self, time: float) -> List[DelayedAction]:
        due = [entry for entry in self._pending if entry.due_date <= time]
        self._pending = [entry for entry in self._pending if entry.due_date > time]
        return due

    def process_due(self, time: float, apply: Callable[[DelayedAction], None]) -> int:
        """Apply and remove, in due-date order, every action due at or before ``time``."""
        due = self.pop_due(time)
        for entry in due:
            apply(entry)
        return len(due)

    def pending(self, target_id: Optional[str] = None) -> List[DelayedAction]:
        if target_id is None:
            return list(self._pending)
        return [entry for entry in self._pending if entry.target_id == target_id]

    def __len__(self) -> int:
        return len(self._pending)


__all__ = ["DelayedAction", "DelayedActionQueue"]
