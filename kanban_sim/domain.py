"""
Core domain: Stage, ColumnKey, WorkItems, Worker, Card, WipLimits and all
simulation-specific exceptions.

Nothing here imports from the rest of the package — this is the
innermost layer and has zero side-effects. Every value type is frozen;
"mutations" go through ``dataclasses.replace`` and return new objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

# Zero-argument source of floats in [0, 1). Injected everywhere randomness is used.
RandomFn = Callable[[], float]

MAX_ASSIGNED_WORKERS = 3


# ---------------------------------------------------------------------------
# Stage / ColumnKey / WorkerType
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    OPTIONS = "options"
    RED_ACTIVE = "red-active"
    RED_FINISHED = "red-finished"
    BLUE_ACTIVE = "blue-active"
    BLUE_FINISHED = "blue-finished"
    GREEN = "green"
    DONE = "done"

    @property
    def column(self) -> ColumnKey:
        return _STAGE_COLUMNS[self]

    @property
    def next(self) -> Stage | None:
        """Fixed successor in the pipeline; ``None`` for DONE."""
        index = _PIPELINE.index(self)
        return _PIPELINE[index + 1] if index + 1 < len(_PIPELINE) else None

    @property
    def is_producing(self) -> bool:
        return self in (Stage.RED_ACTIVE, Stage.BLUE_ACTIVE, Stage.GREEN)


class ColumnKey(str, Enum):
    OPTIONS = "options"
    RED_ACTIVE = "redActive"
    RED_FINISHED = "redFinished"
    BLUE_ACTIVE = "blueActive"
    BLUE_FINISHED = "blueFinished"
    GREEN = "green"
    DONE = "done"

    @property
    def field_name(self) -> str:
        """Attribute name on WipLimits."""
        return self.name.lower()


class WorkerType(str, Enum):
    RED = "red"
    BLUE = "blue"
    GREEN = "green"


_PIPELINE: tuple[Stage, ...] = tuple(Stage)

_STAGE_COLUMNS: dict[Stage, ColumnKey] = {
    stage: ColumnKey[stage.name] for stage in Stage
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SimulationError(Exception):
    """Base for all simulation-specific errors."""


class InvalidCardError(SimulationError):
    """Raised when a Card is constructed with values that break its invariants."""


class InvalidWorkerError(SimulationError):
    """Raised for an empty worker id or an unrecognised worker type."""


class InvalidWipLimitError(SimulationError):
    """Raised when a column limit is negative or has min above a non-zero max."""


class UnknownPolicyError(SimulationError):
    def __init__(self, policy_type: str) -> None:
        super().__init__(f"Unknown policy type: {policy_type!r}.")
        self.policy_type = policy_type


class CardNotFoundError(SimulationError):
    def __init__(self, card_id: str) -> None:
        super().__init__(f"Card '{card_id}' not found.")
        self.card_id = card_id


class WorkerNotFoundError(SimulationError):
    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker '{worker_id}' not found.")
        self.worker_id = worker_id


class NothingToUndoError(SimulationError):
    def __init__(self) -> None:
        super().__init__("Nothing to undo.")


class NothingToRedoError(SimulationError):
    def __init__(self) -> None:
        super().__init__("Nothing to redo.")


# ---------------------------------------------------------------------------
# WorkItems
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkProgress:
    total: int = 0
    completed: int = 0

    @property
    def is_complete(self) -> bool:
        # Not clamped on input: completed may exceed total.
        return self.completed >= self.total


@dataclass(frozen=True)
class WorkItems:
    """Red, blue and green progress. A zero total means "not required"."""

    red: WorkProgress = field(default_factory=WorkProgress)
    blue: WorkProgress = field(default_factory=WorkProgress)
    green: WorkProgress = field(default_factory=WorkProgress)

    def for_color(self, color: WorkerType) -> WorkProgress:
        return getattr(self, color.value)

    def is_color_complete(self, color: WorkerType) -> bool:
        return self.for_color(color).is_complete

    def apply_work(self, color: WorkerType, amount: int) -> WorkItems:
        """Add ``amount`` to one color, capped at its total. Excess is discarded."""
        progress = self.for_color(color)
        completed = min(progress.total, progress.completed + max(0, amount))
        return replace(self, **{color.value: replace(progress, completed=completed)})


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Worker:
    id: str
    type: WorkerType

    def __post_init__(self) -> None:
        worker_id = (self.id or "").strip()
        if not worker_id:
            raise InvalidWorkerError("Worker id cannot be empty")
        try:
            worker_type = WorkerType(self.type)
        except ValueError:
            raise InvalidWorkerError(f"Invalid worker type: {self.type}") from None
        object.__setattr__(self, "id", worker_id)
        object.__setattr__(self, "type", worker_type)


# A worker reference embedded in a card for a single simulated day.
AssignedWorker = Worker


# ---------------------------------------------------------------------------
# Card
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Card:
    """
    Immutable unit of work flowing through the pipeline.

    Attributes:
        id: Uppercase-letter identifier (A, B, …, Z, AA, …).
        content: Free text shown on the card.
        stage: Current pipeline stage.
        age: Days spent in non-terminal stages. Never negative.
        work_items: Red/blue/green progress counters.
        is_blocked: Suppresses every transition while set.
        block_reason: Free text, only meaningful while blocked.
        start_day: Day the card left options (its creation day until then).
        completion_day: Day the card reached done, otherwise ``None``.
        assigned_workers: At most three workers, valid for the current day only.
    """

    id: str
    content: str = ""
    stage: Stage = Stage.OPTIONS
    age: int = 0
    work_items: WorkItems = field(default_factory=WorkItems)
    is_blocked: bool = False
    block_reason: str | None = None
    start_day: int = 0
    completion_day: int | None = None
    assigned_workers: tuple[AssignedWorker, ...] = ()

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "stage", Stage(self.stage))
        except ValueError:
            raise InvalidCardError(f"Unknown stage: {self.stage!r}") from None
        if self.age < 0:
            raise InvalidCardError("Age cannot be negative")
        workers = tuple(self.assigned_workers)
        if len(workers) > MAX_ASSIGNED_WORKERS:
            raise InvalidCardError(
                f"Cannot assign more than {MAX_ASSIGNED_WORKERS} workers to a card"
            )
        object.__setattr__(self, "assigned_workers", workers)

    @property
    def has_capacity(self) -> bool:
        return len(self.assigned_workers) < MAX_ASSIGNED_WORKERS

    def with_stage(self, stage: Stage) -> Card:
        return replace(self, stage=stage)

    def with_worker(self, worker: AssignedWorker) -> Card:
        return replace(self, assigned_workers=(*self.assigned_workers, worker))

    def without_worker(self, worker_id: str) -> Card:
        return replace(
            self,
            assigned_workers=tuple(
                w for w in self.assigned_workers if w.id != worker_id
            ),
        )

    def cleared(self) -> Card:
        """Same card with no assigned workers."""
        if not self.assigned_workers:
            return self
        return replace(self, assigned_workers=())

    def __str__(self) -> str:
        blocked = f" BLOCKED({self.block_reason or '-'})" if self.is_blocked else ""
        workers = (
            f" workers={[w.id for w in self.assigned_workers]}"
            if self.assigned_workers
            else ""
        )
        return (
            f"[{self.id}] {self.content!r} — {self.stage.value} "
            f"age={self.age}{blocked}{workers}"
        )


# ---------------------------------------------------------------------------
# WIP limits
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnLimit:
    """``0`` in either bound means unconstrained, not a threshold of zero."""

    min: int = 0
    max: int = 0

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < 0:
            raise InvalidWipLimitError("WIP limits cannot be negative")
        if self.max != 0 and self.min > self.max:
            raise InvalidWipLimitError(
                "min must be less than or equal to max (when max is not 0)"
            )


@dataclass(frozen=True)
class WipLimits:
    options: ColumnLimit = ColumnLimit()
    red_active: ColumnLimit = ColumnLimit()
    red_finished: ColumnLimit = ColumnLimit()
    blue_active: ColumnLimit = ColumnLimit()
    blue_finished: ColumnLimit = ColumnLimit()
    green: ColumnLimit = ColumnLimit()
    done: ColumnLimit = ColumnLimit()

    def for_column(self, column: ColumnKey) -> ColumnLimit:
        return getattr(self, column.field_name)

    def with_column(self, column: ColumnKey, limit: ColumnLimit) -> WipLimits:
        return replace(self, **{column.field_name: limit})
