"""
Board snapshot schema and JSON round trip.

The on-disk format is a direct projection of the board with camelCase keys:

    {currentDay, cards, workers, wipLimits, historicalData}

Unknown keys are ignored on load. ``completionDay``/``blockReason`` are
omitted when unset and read back as ``None`` whether absent or null.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .domain import (
    Card,
    ColumnKey,
    ColumnLimit,
    SimulationError,
    Stage,
    WipLimits,
    Worker,
    WorkerType,
    WorkItems,
    WorkProgress,
)
from .history import BoardSnapshot, DaySnapshot


class SnapshotError(SimulationError):
    """Raised when saved board data cannot be parsed or validated."""


class CamelModel(BaseModel):
    """Base for every schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class WorkProgressSchema(CamelModel):
    total: int = Field(ge=0)
    completed: int = Field(ge=0)


class WorkItemsSchema(CamelModel):
    red: WorkProgressSchema
    blue: WorkProgressSchema
    green: WorkProgressSchema

    @classmethod
    def from_items(cls, items: WorkItems) -> "WorkItemsSchema":
        return cls(
            red=WorkProgressSchema(
                total=items.red.total, completed=items.red.completed
            ),
            blue=WorkProgressSchema(
                total=items.blue.total, completed=items.blue.completed
            ),
            green=WorkProgressSchema(
                total=items.green.total, completed=items.green.completed
            ),
        )

    def to_items(self) -> WorkItems:
        return WorkItems(
            red=WorkProgress(self.red.total, self.red.completed),
            blue=WorkProgress(self.blue.total, self.blue.completed),
            green=WorkProgress(self.green.total, self.green.completed),
        )


class WorkerSchema(CamelModel):
    id: str
    type: WorkerType

    @classmethod
    def from_worker(cls, worker: Worker) -> "WorkerSchema":
        return cls(id=worker.id, type=worker.type)

    def to_worker(self) -> Worker:
        return Worker(id=self.id, type=self.type)


class CardSchema(CamelModel):
    """
    A card as stored and as returned by the API.

    Attributes:
        id: Card identifier (A, B, …).
        content: Free text.
        stage: Pipeline stage.
        age: Days spent in non-terminal stages.
        start_day: Day the card left options.
        is_blocked: Whether transitions are suppressed.
        block_reason: Why the card is blocked, if it is.
        work_items: Red/blue/green progress.
        assigned_workers: Workers on the card for the current day.
        completion_day: Day the card reached done, if it has.
    """

    id: str
    content: str
    stage: Stage
    age: int = 0
    start_day: int = 0
    is_blocked: bool = False
    block_reason: str | None = None
    work_items: WorkItemsSchema
    assigned_workers: list[WorkerSchema] = Field(default_factory=list)
    completion_day: int | None = None

    @classmethod
    def from_card(cls, card: Card) -> "CardSchema":
        return cls(
            id=card.id,
            content=card.content,
            stage=card.stage,
            age=card.age,
            start_day=card.start_day,
            is_blocked=card.is_blocked,
            block_reason=card.block_reason,
            work_items=WorkItemsSchema.from_items(card.work_items),
            assigned_workers=[
                WorkerSchema.from_worker(w) for w in card.assigned_workers
            ],
            completion_day=card.completion_day,
        )

    def to_card(self) -> Card:
        return Card(
            id=self.id,
            content=self.content,
            stage=self.stage,
            age=self.age,
            work_items=self.work_items.to_items(),
            is_blocked=self.is_blocked,
            block_reason=self.block_reason,
            start_day=self.start_day,
            completion_day=self.completion_day,
            assigned_workers=tuple(w.to_worker() for w in self.assigned_workers),
        )


class ColumnLimitSchema(CamelModel):
    min: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)


class WipLimitsSchema(CamelModel):
    options: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    red_active: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    red_finished: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    blue_active: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    blue_finished: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    green: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)
    done: ColumnLimitSchema = Field(default_factory=ColumnLimitSchema)

    @classmethod
    def from_limits(cls, limits: WipLimits) -> "WipLimitsSchema":
        return cls(
            **{
                column.field_name: ColumnLimitSchema(
                    min=limits.for_column(column).min,
                    max=limits.for_column(column).max,
                )
                for column in ColumnKey
            }
        )

    def to_limits(self) -> WipLimits:
        return WipLimits(
            **{
                column.field_name: ColumnLimit(
                    min=getattr(self, column.field_name).min,
                    max=getattr(self, column.field_name).max,
                )
                for column in ColumnKey
            }
        )


class ColumnDataSchema(CamelModel):
    options: int = 0
    red_active: int = 0
    red_finished: int = 0
    blue_active: int = 0
    blue_finished: int = 0
    green: int = 0
    done: int = 0


class DaySnapshotSchema(CamelModel):
    day: int
    column_data: ColumnDataSchema

    @classmethod
    def from_snapshot(cls, snapshot: DaySnapshot) -> "DaySnapshotSchema":
        return cls(
            day=snapshot.day,
            column_data=ColumnDataSchema(
                **{
                    column.field_name: count
                    for column, count in snapshot.column_counts.items()
                }
            ),
        )

    def to_snapshot(self) -> DaySnapshot:
        return DaySnapshot(
            day=self.day,
            column_counts={
                column: getattr(self.column_data, column.field_name)
                for column in ColumnKey
            },
        )


class BoardState(CamelModel):
    current_day: int = Field(ge=0)
    cards: list[CardSchema] = Field(default_factory=list)
    workers: list[WorkerSchema] = Field(default_factory=list)
    wip_limits: WipLimitsSchema = Field(default_factory=WipLimitsSchema)
    historical_data: list[DaySnapshotSchema] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: BoardSnapshot) -> "BoardState":
        return cls(
            current_day=snapshot.current_day,
            cards=[CardSchema.from_card(c) for c in snapshot.cards],
            workers=[WorkerSchema.from_worker(w) for w in snapshot.workers],
            wip_limits=WipLimitsSchema.from_limits(snapshot.wip_limits),
            historical_data=[
                DaySnapshotSchema.from_snapshot(d) for d in snapshot.historical_data
            ],
        )

    def to_snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            current_day=self.current_day,
            cards=tuple(c.to_card() for c in self.cards),
            workers=tuple(w.to_worker() for w in self.workers),
            wip_limits=self.wip_limits.to_limits(),
            historical_data=tuple(d.to_snapshot() for d in self.historical_data),
        )


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def to_dict(snapshot: BoardSnapshot) -> dict:
    return BoardState.from_snapshot(snapshot).model_dump(
        mode="json", by_alias=True, exclude_none=True
    )


def from_dict(data: object) -> BoardSnapshot:
    """
    Raises:
        SnapshotError: ``data`` does not describe a valid board.
    """
    try:
        return BoardState.model_validate(data).to_snapshot()
    except (ValidationError, SimulationError) as exc:
        raise SnapshotError(f"Invalid board state: {exc}") from exc


def dumps_board(snapshot: BoardSnapshot, indent: int | None = 2) -> str:
    return BoardState.from_snapshot(snapshot).model_dump_json(
        by_alias=True, exclude_none=True, indent=indent
    )


def loads_board(text: str) -> BoardSnapshot:
    """
    Raises:
        SnapshotError: ``text`` is not JSON or not a valid board.
    """
    try:
        return BoardState.model_validate_json(text).to_snapshot()
    except (ValidationError, SimulationError) as exc:
        raise SnapshotError(f"Invalid board state: {exc}") from exc
