"""
Per-card simulation rules shared by every orchestrator.

  - Card aging
  - Stage transition readiness (the pipeline state machine)
  - WIP limit checks
  - Worker output calculation and application

All functions are pure: they read their inputs and return new values.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import replace
from typing import Iterable, NamedTuple

from .domain import (
    Card,
    ColumnKey,
    ColumnLimit,
    RandomFn,
    Stage,
    WipLimits,
    WorkerType,
    WorkItems,
)


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


def age_card(card: Card) -> Card:
    """Cards age by one day in every stage except options and done."""
    if card.stage in (Stage.OPTIONS, Stage.DONE):
        return card
    return replace(card, age=card.age + 1)


def age_cards(cards: Iterable[Card]) -> list[Card]:
    return [age_card(card) for card in cards]


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------


def _has_work_and_complete(items: WorkItems, color: WorkerType) -> bool:
    progress = items.for_color(color)
    return progress.total > 0 and progress.completed >= progress.total


def can_transition(card: Card) -> bool:
    """
    Is the card's work complete enough to leave its current stage?

    Says nothing about WIP slots. The stage's own color needs a non-zero
    total; prerequisite colors only need ``completed >= total``, so a zero
    total prerequisite passes.
    """
    if card.is_blocked:
        return False

    items = card.work_items
    stage = card.stage
    if stage in (Stage.OPTIONS, Stage.DONE):
        return False
    if stage in (Stage.RED_ACTIVE, Stage.RED_FINISHED):
        return _has_work_and_complete(items, WorkerType.RED)
    if stage in (Stage.BLUE_ACTIVE, Stage.BLUE_FINISHED):
        return _has_work_and_complete(
            items, WorkerType.BLUE
        ) and items.is_color_complete(WorkerType.RED)
    if stage == Stage.GREEN:
        return (
            _has_work_and_complete(items, WorkerType.GREEN)
            and items.is_color_complete(WorkerType.RED)
            and items.is_color_complete(WorkerType.BLUE)
        )
    raise AssertionError(f"Unhandled stage: {card.stage!r}")


# ---------------------------------------------------------------------------
# WIP limits
# ---------------------------------------------------------------------------


def can_move_in(limit: ColumnLimit, current_count: int) -> bool:
    """Would one more card keep the column under its max?"""
    if limit.max == 0:
        return True
    return current_count < limit.max


def can_move_out(limit: ColumnLimit, current_count: int) -> bool:
    """Would one card fewer keep the column above its min?"""
    if limit.min == 0:
        return True
    return current_count > limit.min


def can_move_into_column(
    limits: WipLimits, column: ColumnKey, current_count: int
) -> bool:
    return can_move_in(limits.for_column(column), current_count)


def can_move_out_of_column(
    limits: WipLimits, column: ColumnKey, current_count: int
) -> bool:
    return can_move_out(limits.for_column(column), current_count)


def stage_counts(cards: Iterable[Card]) -> Counter[Stage]:
    return Counter(card.stage for card in cards)


def count_in_stage(cards: Iterable[Card], stage: Stage) -> int:
    return sum(1 for card in cards if card.stage == stage)


# ---------------------------------------------------------------------------
# Worker output
# ---------------------------------------------------------------------------


class OutputRange(NamedTuple):
    min: int
    max: int


SPECIALIZED_RANGE = OutputRange(3, 6)
NON_SPECIALIZED_RANGE = OutputRange(0, 3)


def column_color(stage: Stage) -> WorkerType:
    if stage in (Stage.RED_ACTIVE, Stage.RED_FINISHED):
        return WorkerType.RED
    if stage in (Stage.BLUE_ACTIVE, Stage.BLUE_FINISHED):
        return WorkerType.BLUE
    return WorkerType.GREEN


def is_specialized(worker_type: WorkerType, color: WorkerType) -> bool:
    return worker_type == color


def output_range(worker_type: WorkerType, color: WorkerType) -> OutputRange:
    if is_specialized(worker_type, color):
        return SPECIALIZED_RANGE
    return NON_SPECIALIZED_RANGE


def calculate_output(
    worker_type: WorkerType, color: WorkerType, random: RandomFn
) -> int:
    """Uniform integer in the worker's range, drawn from ``random()`` in [0, 1)."""
    low, high = output_range(worker_type, color)
    return math.floor(random() * (high - low + 1)) + low


def apply_worker_output(card: Card, random: RandomFn) -> Card:
    """
    Let every assigned worker produce for one day, in assignment order.

    Only producing stages (red-active, blue-active, green) receive output.
    Each worker's amount is capped against the running completed count.
    """
    if not card.assigned_workers or not card.stage.is_producing:
        return card

    color = column_color(card.stage)
    items = card.work_items
    for worker in card.assigned_workers:
        items = items.apply_work(color, calculate_output(worker.type, color, random))
    return replace(card, work_items=items)
