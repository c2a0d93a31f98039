"""
Undo/redo history and per-day column occupancy.

``History`` is a bounded stack of board states with a cursor. Pushing after
an undo discards the redo branch; pushing past ``max_depth`` drops the oldest
entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, TypeVar

from .domain import Card, ColumnKey, Stage, WipLimits, Worker
from .rules import stage_counts

DEFAULT_MAX_DEPTH = 50

T = TypeVar("T")


@dataclass(frozen=True)
class HistoryEntry(Generic[T]):
    action: str
    state: T


class History(Generic[T]):
    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("History depth must be at least 1")
        self._entries: list[HistoryEntry[T]] = []
        self._index = -1
        self.max_depth = max_depth

    def push(self, action: str, state: T) -> None:
        del self._entries[self._index + 1 :]
        self._entries.append(HistoryEntry(action=action, state=state))
        overflow = len(self._entries) - self.max_depth
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def undo(self) -> T | None:
        if not self.can_undo():
            return None
        self._index -= 1
        return self._entries[self._index].state

    def redo(self) -> T | None:
        if not self.can_redo():
            return None
        self._index += 1
        return self._entries[self._index].state

    @property
    def actions(self) -> list[str]:
        return [entry.action for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Cumulative flow
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DaySnapshot:
    """Number of cards per column at the end of ``day``."""

    day: int
    column_counts: dict[ColumnKey, int]


def column_counts(cards: Iterable[Card]) -> dict[ColumnKey, int]:
    counts = stage_counts(cards)
    return {stage.column: counts[stage] for stage in Stage}


def record_day(
    snapshots: tuple[DaySnapshot, ...], day: int, cards: Iterable[Card]
) -> tuple[DaySnapshot, ...]:
    """Append a snapshot for ``day`` unless the last one is already for that day."""
    if snapshots and snapshots[-1].day == day:
        return snapshots
    return (*snapshots, DaySnapshot(day=day, column_counts=column_counts(cards)))


@dataclass(frozen=True)
class BoardSnapshot:
    """Everything needed to restore a board: the unit of undo and persistence."""

    current_day: int = 0
    cards: tuple[Card, ...] = ()
    workers: tuple[Worker, ...] = ()
    wip_limits: WipLimits = WipLimits()
    historical_data: tuple[DaySnapshot, ...] = ()
