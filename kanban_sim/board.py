"""
SimulationBoard — stateful service around the pure simulation functions.

Responsibilities:
  - Own one board (cards, workers, current day, WIP limits, flow history)
  - Delegate every state change to simulation.py / policy.py
  - Undo/redo over whole-board snapshots
  - Per-day column counts for cumulative flow
  - JSON persistence (sync, fine at this scale)
  - Fire hooks for transitions, completions and blocks

The board is the only place that holds simulation state. All mutating
methods are async and protected by a single asyncio.Lock; hooks run
outside the lock.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from random import Random
from typing import Sequence

from loguru import logger

from .domain import (
    Card,
    CardNotFoundError,
    ColumnKey,
    ColumnLimit,
    InvalidWorkerError,
    NothingToRedoError,
    NothingToUndoError,
    RandomFn,
    Stage,
    WipLimits,
    Worker,
    WorkerNotFoundError,
    WorkerType,
)
from .factory import create_card, next_card_id
from .history import DEFAULT_MAX_DEPTH, BoardSnapshot, History, record_day
from .hooks import AsyncHookFn, HookRegistry
from .policy import SILOTED_EXPERT, run_policy_day
from .serialization import dumps_board, loads_board
from .simulation import MoveResult, advance_day, assign_worker, move_card


class SimulationBoard:
    """
    Args:
        wip_limits:    Column limits for a fresh board. Ignored when a saved
                       board is loaded from ``persist_path``.
        workers:       Initial worker roster for a fresh board.
        persist_path:  If given, board state is saved after every mutation
                       and loaded at start-up when the file exists.
                       Pass ``None`` to disable persistence (useful in tests).
        hooks:         ``{event: [async fn(card)]}`` registered at start-up.
        random:        Zero-argument float source in [0, 1). Defaults to a
                       private ``random.Random`` instance.
        history_depth: Maximum number of undo steps kept.
    """

    DEFAULT_PERSIST_PATH = Path("board.json")

    def __init__(
        self,
        wip_limits: WipLimits | None = None,
        workers: Sequence[Worker] = (),
        persist_path: Path | None = DEFAULT_PERSIST_PATH,
        hooks: dict[str, list[AsyncHookFn]] | None = None,
        random: RandomFn | None = None,
        history_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._state = BoardSnapshot(
            wip_limits=wip_limits or WipLimits(), workers=tuple(workers)
        )
        self._random = random if random is not None else Random().random
        self._persist_path = persist_path
        self._lock = asyncio.Lock()
        self._history: History[BoardSnapshot] = History(history_depth)
        self._hook_registry = HookRegistry()
        if hooks:
            for event, hook_list in hooks.items():
                for hook in hook_list:
                    self._hook_registry.register(event, hook)

        if persist_path and persist_path.exists():
            self._state = loads_board(persist_path.read_text())
            logger.info("Board loaded from {}", persist_path)

        self._state = replace(
            self._state,
            historical_data=record_day(
                self._state.historical_data,
                self._state.current_day,
                self._state.cards,
            ),
        )
        self._history.push("start", self._state)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> BoardSnapshot:
        return self._state

    @property
    def current_day(self) -> int:
        return self._state.current_day

    @property
    def wip_limits(self) -> WipLimits:
        return self._state.wip_limits

    def all_cards(self) -> list[Card]:
        return list(self._state.cards)

    def all_workers(self) -> list[Worker]:
        return list(self._state.workers)

    def get_card(self, card_id: str) -> Card:
        """Synchronous read — safe to call from routes without await."""
        for card in self._state.cards:
            if card.id == card_id:
                return card
        raise CardNotFoundError(card_id)

    def cards_by_stage(self, stage: Stage) -> list[Card]:
        return [c for c in self._state.cards if c.stage == stage]

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    def history_actions(self) -> list[str]:
        """Labels of the kept undo states, oldest first."""
        return self._history.actions

    def board_view(self) -> None:
        """Prints a snapshot grouped by stage."""
        print(f"\n══ DAY {self.current_day} ══")
        for stage in Stage:
            cards = self.cards_by_stage(stage)
            limit = self.wip_limits.for_column(stage.column)
            cap = f"{limit.max}" if limit.max else "∞"
            print(f"\n── {stage.value.upper()} ({len(cards)}/{cap}) ──")
            for c in cards:
                print(" ", c)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def add_card(self, content: str | None = None) -> Card:
        """Create a card in options with random work. ``content`` overrides the text."""
        async with self._lock:
            card = create_card(
                next_card_id(self._state.cards), self.current_day, self._random
            )
            if content:
                card = replace(card, content=content)
            self._commit(
                f"add card {card.id}",
                replace(self._state, cards=(*self._state.cards, card)),
            )
        logger.info("Created  {} — {!r}", card.id, card.content)
        return card

    async def move_card(self, card_id: str) -> MoveResult:
        """
        Click-to-advance one card.

        A WIP refusal is not an error: the result carries the alert message
        and the board is left untouched.

        Raises:
            CardNotFoundError: No card with that id.
        """
        async with self._lock:
            before = self.get_card(card_id)
            result = move_card(
                card_id, self._state.cards, self.current_day, self.wip_limits
            )
            if result.alert_message is None and result.cards != list(
                self._state.cards
            ):
                self._commit(
                    f"move card {card_id}",
                    replace(self._state, cards=tuple(result.cards)),
                )
            after = self.get_card(card_id)

        if after.stage != before.stage:
            await self._hook_registry.fire("on_transition", after)
        return result

    async def assign_worker(self, card_id: str, worker_id: str) -> Card:
        """
        Raises:
            CardNotFoundError:   No card with that id.
            WorkerNotFoundError: No worker with that id.
        """
        async with self._lock:
            self.get_card(card_id)
            self._get_worker(worker_id)
            cards = assign_worker(
                card_id, worker_id, self._state.cards, self._state.workers
            )
            self._commit(
                f"assign {worker_id} to {card_id}",
                replace(self._state, cards=tuple(cards)),
            )
            card = self.get_card(card_id)
        logger.info("Worker {} assigned to card {}", worker_id, card_id)
        return card

    async def block_card(self, card_id: str, reason: str | None = None) -> Card:
        async with self._lock:
            card = replace(self.get_card(card_id), is_blocked=True, block_reason=reason)
            self._replace_card(card, f"block card {card_id}")
        logger.warning("Card {} blocked ({})", card_id, reason or "no reason")
        await self._hook_registry.fire("on_blocked", card)
        return card

    async def unblock_card(self, card_id: str) -> Card:
        async with self._lock:
            card = replace(self.get_card(card_id), is_blocked=False, block_reason=None)
            self._replace_card(card, f"unblock card {card_id}")
        logger.info("Card {} unblocked", card_id)
        return card

    # ------------------------------------------------------------------
    # Days
    # ------------------------------------------------------------------

    async def advance_day(self) -> BoardSnapshot:
        """Simulate one day with whatever workers are currently assigned."""
        async with self._lock:
            before = self._state.cards
            result = advance_day(
                before, self.current_day, self.wip_limits, self._random
            )
            self._finish_day(
                f"advance to day {result.new_day}", result.cards, result.new_day
            )
            state = self._state
        await self._fire_transitions(before, state.cards)
        return state

    async def run_policy(self, policy_type: str = SILOTED_EXPERT) -> BoardSnapshot:
        """
        Simulate one day under an automatic policy.

        Raises:
            UnknownPolicyError: ``policy_type`` is not a known policy.
        """
        async with self._lock:
            before = self._state.cards
            result = run_policy_day(
                policy_type,
                before,
                self._state.workers,
                self.current_day,
                self.wip_limits,
                self._random,
            )
            self._finish_day(
                f"{policy_type} day {result.new_day}", result.cards, result.new_day
            )
            state = self._state
        await self._fire_transitions(before, state.cards)
        return state

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def set_wip_limit(
        self, column: ColumnKey, min_limit: int = 0, max_limit: int = 0
    ) -> WipLimits:
        """
        Raises:
            InvalidWipLimitError: Negative bounds, or min above a non-zero max.
        """
        limit = ColumnLimit(min=min_limit, max=max_limit)
        async with self._lock:
            limits = self.wip_limits.with_column(ColumnKey(column), limit)
            self._commit(
                f"set {ColumnKey(column).value} limit",
                replace(self._state, wip_limits=limits),
            )
        logger.info(
            "WIP limit {} → min {} max {}",
            ColumnKey(column).value,
            min_limit,
            max_limit,
        )
        return limits

    async def add_worker(self, worker_id: str, worker_type: WorkerType) -> Worker:
        """
        Raises:
            InvalidWorkerError: Empty id, unknown type, or id already taken.
        """
        worker = Worker(id=worker_id, type=worker_type)
        async with self._lock:
            if any(w.id == worker.id for w in self._state.workers):
                raise InvalidWorkerError(f"Worker '{worker.id}' already exists")
            self._commit(
                f"add worker {worker.id}",
                replace(self._state, workers=(*self._state.workers, worker)),
            )
        logger.info("Worker {} ({}) joined", worker.id, worker.type.value)
        return worker

    async def remove_worker(self, worker_id: str) -> None:
        """Remove a worker from the roster and from any card they are on."""
        async with self._lock:
            self._get_worker(worker_id)
            self._commit(
                f"remove worker {worker_id}",
                replace(
                    self._state,
                    workers=tuple(w for w in self._state.workers if w.id != worker_id),
                    cards=tuple(c.without_worker(worker_id) for c in self._state.cards),
                ),
            )
        logger.info("Worker {} removed", worker_id)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def undo(self) -> BoardSnapshot:
        """
        Raises:
            NothingToUndoError: Already at the oldest kept state.
        """
        async with self._lock:
            state = self._history.undo()
            if state is None:
                raise NothingToUndoError()
            self._state = state
            self._save()
        logger.info("Undo → day {}", state.current_day)
        return state

    async def redo(self) -> BoardSnapshot:
        """
        Raises:
            NothingToRedoError: No undone state to restore.
        """
        async with self._lock:
            state = self._history.redo()
            if state is None:
                raise NothingToRedoError()
            self._state = state
            self._save()
        logger.info("Redo → day {}", state.current_day)
        return state

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, action: str, state: BoardSnapshot) -> None:
        """Install a new state, record it for undo and persist. Must hold the lock."""
        self._state = state
        self._history.push(action, state)
        self._save()
        logger.debug("Commit: {}", action)

    def _finish_day(self, action: str, cards: Sequence[Card], new_day: int) -> None:
        self._commit(
            action,
            replace(
                self._state,
                cards=tuple(cards),
                current_day=new_day,
                historical_data=record_day(
                    self._state.historical_data, new_day, cards
                ),
            ),
        )

    def _replace_card(self, card: Card, action: str) -> None:
        self._commit(
            action,
            replace(
                self._state,
                cards=tuple(card if c.id == card.id else c for c in self._state.cards),
            ),
        )

    def _get_worker(self, worker_id: str) -> Worker:
        for worker in self._state.workers:
            if worker.id == worker_id:
                return worker
        raise WorkerNotFoundError(worker_id)

    async def _fire_transitions(
        self, before: Sequence[Card], after: Sequence[Card]
    ) -> None:
        previous = {card.id: card.stage for card in before}
        for card in after:
            if previous.get(card.id) == card.stage:
                continue
            await self._hook_registry.fire("on_transition", card)
            if card.stage == Stage.DONE:
                logger.success(
                    "Card {}  →  done  ✓ (day {})", card.id, card.completion_day
                )
                await self._hook_registry.fire("on_done", card)

    def _save(self) -> None:
        if not self._persist_path:
            return
        self._persist_path.write_text(dumps_board(self._state))
        logger.debug("Persisted → {}", self._persist_path)
