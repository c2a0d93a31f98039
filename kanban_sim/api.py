"""
FastAPI REST API — thin HTTP wrapper over SimulationBoard.

Responsibilities (only):
  - Parse and validate HTTP input (via Pydantic request schemas)
  - Delegate to the board
  - Translate simulation exceptions → HTTP status codes
  - Serialise cards and board state → response schemas

Simulation logic (WIP limits, transitions, policy) lives entirely in
simulation.py / policy.py — nothing is duplicated here.

Endpoints:
  GET    /board                       Full board state
  GET    /cards                       List cards (optional ?stage= filter)
  POST   /cards                       Create a card in options
  GET    /cards/{id}                  Get a single card
  POST   /cards/{id}/move             Click-to-advance (WIP-gated)
  POST   /cards/{id}/workers          Assign a worker for today
  POST   /cards/{id}/block            Block a card
  POST   /cards/{id}/unblock          Unblock a card
  POST   /days/advance                Simulate one day
  POST   /days/policy                 Simulate one day under a policy
  PUT    /wip-limits/{column}         Set one column's min/max
  POST   /workers                     Add a worker
  DELETE /workers/{id}                Remove a worker
  POST   /undo                        Restore the previous state
  POST   /redo                        Re-apply an undone state
  GET    /history                     Per-day column counts
  GET    /history/actions             Labels of the kept undo states
  GET    /metrics                     Lead time, throughput, WIP and aging

Configuration (read once at start-up):
  KANBAN_SIM_STATE_PATH     JSON state file, "" disables persistence
  KANBAN_SIM_SEED           Integer seed for reproducible runs
  KANBAN_SIM_HISTORY_DEPTH  Undo depth
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from random import Random
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import Field

from .board import SimulationBoard
from .domain import (
    CardNotFoundError,
    ColumnKey,
    InvalidCardError,
    InvalidWipLimitError,
    InvalidWorkerError,
    NothingToRedoError,
    NothingToUndoError,
    SimulationError,
    Stage,
    UnknownPolicyError,
    WorkerNotFoundError,
    WorkerType,
)
from .history import DEFAULT_MAX_DEPTH
from .metrics import FlowMetrics, flow_metrics
from .policy import SILOTED_EXPERT
from .serialization import (
    BoardState,
    CamelModel,
    CardSchema,
    DaySnapshotSchema,
    WipLimitsSchema,
    WorkerSchema,
)


# ---------------------------------------------------------------------------
# Shared board instance (created once at startup)
# ---------------------------------------------------------------------------

_board: SimulationBoard | None = None


def board_from_env() -> SimulationBoard:
    state_path = os.getenv("KANBAN_SIM_STATE_PATH", "board.json")
    seed = os.getenv("KANBAN_SIM_SEED")
    depth = int(os.getenv("KANBAN_SIM_HISTORY_DEPTH", str(DEFAULT_MAX_DEPTH)))
    return SimulationBoard(
        persist_path=Path(state_path) if state_path else None,
        random=Random(int(seed)).random if seed else None,
        history_depth=depth,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _board
    _board = board_from_env()
    yield
    _board = None


def get_board() -> SimulationBoard:
    assert _board is not None, "Board not initialised"
    return _board


BoardDep = Annotated[SimulationBoard, Depends(get_board)]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class CreateCardRequest(CamelModel):
    """
    Request body for creating a card.

    Attributes:
        content: Optional card text; random text is generated when omitted.
    """

    content: str | None = Field(default=None, min_length=1, max_length=200)


class AssignWorkerRequest(CamelModel):
    worker_id: str = Field(..., min_length=1)


class BlockRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)


class PolicyRequest(CamelModel):
    policy_type: str = SILOTED_EXPERT


class ColumnLimitRequest(CamelModel):
    min: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)


class CreateWorkerRequest(CamelModel):
    id: str = Field(..., min_length=1, max_length=40)
    type: WorkerType


class MoveResponse(CamelModel):
    """
    Response model for a click-to-advance.

    Attributes:
        card: The card after the attempt (unchanged when refused).
        alert_message: Why the move was refused, or ``None`` when it happened.
    """

    card: CardSchema
    alert_message: str | None


class DayCount(CamelModel):
    day: int
    count: int


class DayRate(CamelModel):
    day: int
    throughput: float


class StageAges(CamelModel):
    stage: Stage
    ages: list[int]


class MetricsResponse(CamelModel):
    """
    Flow metrics for the board as of the current day.

    Per-day series are lists ordered by day, starting at day 1.
    """

    current_day: int
    completed: int
    lead_times: list[int]
    average_lead_time: float
    throughput_by_day: list[DayCount]
    rolling_throughput: list[DayRate]
    wip_by_day: list[DayCount]
    predicted_lead_time: float
    ages_by_stage: list[StageAges]
    total_wip: int
    wip_limit_recommendation: int
    oldest_age: int
    average_age: float

    @classmethod
    def from_metrics(cls, metrics: FlowMetrics, current_day: int) -> "MetricsResponse":
        return cls(
            current_day=current_day,
            completed=metrics.completed,
            lead_times=metrics.lead_times,
            average_lead_time=metrics.average_lead_time,
            throughput_by_day=[
                DayCount(day=d, count=n) for d, n in metrics.throughput_by_day.items()
            ],
            rolling_throughput=[
                DayRate(day=d, throughput=t)
                for d, t in metrics.rolling_throughput.items()
            ],
            wip_by_day=[DayCount(day=d, count=n) for d, n in metrics.wip_by_day.items()],
            predicted_lead_time=metrics.predicted_lead_time,
            ages_by_stage=[
                StageAges(stage=s, ages=a) for s, a in metrics.ages_by_stage.items()
            ],
            total_wip=metrics.total_wip,
            wip_limit_recommendation=metrics.wip_limit_recommendation,
            oldest_age=metrics.oldest_age,
            average_age=metrics.average_age,
        )


# ---------------------------------------------------------------------------
# Exception → HTTP translation
# ---------------------------------------------------------------------------


def _http(exc: SimulationError) -> HTTPException:
    """Map domain exceptions to appropriate HTTP status codes."""
    if isinstance(exc, (CardNotFoundError, WorkerNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (NothingToUndoError, NothingToRedoError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(
        exc,
        (
            InvalidCardError,
            InvalidWorkerError,
            InvalidWipLimitError,
            UnknownPolicyError,
        ),
    ):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Kanban Flow Simulation API",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/board", response_model=BoardState)
def board_state(board: BoardDep) -> BoardState:
    return BoardState.from_snapshot(board.snapshot)


@app.get("/cards", response_model=list[CardSchema])
def list_cards(
    board: BoardDep,
    stage: Stage | None = Query(default=None, description="Filter by stage"),
) -> list[CardSchema]:
    cards = board.cards_by_stage(stage) if stage else board.all_cards()
    return [CardSchema.from_card(c) for c in cards]


@app.post("/cards", response_model=CardSchema, status_code=201)
async def create_card(body: CreateCardRequest, board: BoardDep) -> CardSchema:
    card = await board.add_card(content=body.content)
    return CardSchema.from_card(card)


@app.get("/cards/{card_id}", response_model=CardSchema)
def get_card(card_id: str, board: BoardDep) -> CardSchema:
    try:
        return CardSchema.from_card(board.get_card(card_id))
    except CardNotFoundError as exc:
        raise _http(exc)


@app.post("/cards/{card_id}/move", response_model=MoveResponse)
async def move_card(card_id: str, board: BoardDep) -> MoveResponse:
    """
    Advance a card from options, red-finished or blue-finished.

    A WIP refusal still returns 200; ``alertMessage`` explains it.

    Raises:
        404: Card not found.
    """
    try:
        result = await board.move_card(card_id)
    except SimulationError as exc:
        raise _http(exc)
    return MoveResponse(
        card=CardSchema.from_card(board.get_card(card_id)),
        alert_message=result.alert_message,
    )


@app.post("/cards/{card_id}/workers", response_model=CardSchema)
async def assign_worker(
    card_id: str, body: AssignWorkerRequest, board: BoardDep
) -> CardSchema:
    try:
        card = await board.assign_worker(card_id, body.worker_id)
    except SimulationError as exc:
        raise _http(exc)
    return CardSchema.from_card(card)


@app.post("/cards/{card_id}/block", response_model=CardSchema)
async def block_card(card_id: str, body: BlockRequest, board: BoardDep) -> CardSchema:
    try:
        card = await board.block_card(card_id, body.reason)
    except SimulationError as exc:
        raise _http(exc)
    return CardSchema.from_card(card)


@app.post("/cards/{card_id}/unblock", response_model=CardSchema)
async def unblock_card(card_id: str, board: BoardDep) -> CardSchema:
    try:
        card = await board.unblock_card(card_id)
    except SimulationError as exc:
        raise _http(exc)
    return CardSchema.from_card(card)


@app.post("/days/advance", response_model=BoardState)
async def advance_day(board: BoardDep) -> BoardState:
    return BoardState.from_snapshot(await board.advance_day())


@app.post("/days/policy", response_model=BoardState)
async def run_policy(body: PolicyRequest, board: BoardDep) -> BoardState:
    """
    Raises:
        422: Unknown policy type.
    """
    try:
        snapshot = await board.run_policy(body.policy_type)
    except SimulationError as exc:
        raise _http(exc)
    return BoardState.from_snapshot(snapshot)


@app.put("/wip-limits/{column}", response_model=WipLimitsSchema)
async def set_wip_limit(
    column: ColumnKey, body: ColumnLimitRequest, board: BoardDep
) -> WipLimitsSchema:
    try:
        limits = await board.set_wip_limit(column, body.min, body.max)
    except SimulationError as exc:
        raise _http(exc)
    return WipLimitsSchema.from_limits(limits)


@app.post("/workers", response_model=WorkerSchema, status_code=201)
async def add_worker(body: CreateWorkerRequest, board: BoardDep) -> WorkerSchema:
    try:
        worker = await board.add_worker(body.id, body.type)
    except SimulationError as exc:
        raise _http(exc)
    return WorkerSchema.from_worker(worker)


@app.delete("/workers/{worker_id}", status_code=204)
async def remove_worker(worker_id: str, board: BoardDep) -> None:
    try:
        await board.remove_worker(worker_id)
    except SimulationError as exc:
        raise _http(exc)


@app.post("/undo", response_model=BoardState)
async def undo(board: BoardDep) -> BoardState:
    try:
        return BoardState.from_snapshot(await board.undo())
    except SimulationError as exc:
        raise _http(exc)


@app.post("/redo", response_model=BoardState)
async def redo(board: BoardDep) -> BoardState:
    try:
        return BoardState.from_snapshot(await board.redo())
    except SimulationError as exc:
        raise _http(exc)


@app.get("/history", response_model=list[DaySnapshotSchema])
def history(board: BoardDep) -> list[DaySnapshotSchema]:
    return [
        DaySnapshotSchema.from_snapshot(d) for d in board.snapshot.historical_data
    ]


@app.get("/history/actions", response_model=list[str])
def history_actions(board: BoardDep) -> list[str]:
    """Labels of every kept state, oldest first, including redoable ones."""
    return board.history_actions()


@app.get("/metrics", response_model=MetricsResponse)
def metrics(board: BoardDep) -> MetricsResponse:
    snapshot = board.snapshot
    return MetricsResponse.from_metrics(
        flow_metrics(snapshot.cards, snapshot.current_day), snapshot.current_day
    )
