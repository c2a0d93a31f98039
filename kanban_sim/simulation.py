"""
Board-level entry points for a single user action or a single day.

  advance_day    age → worker output → transition → clear workers, for every card
  move_card      one user click on one card, gated by WIP limits
  assign_worker  put one worker on one card for the current day

Each function takes the whole card collection and returns a new one.
Nothing here holds state; ``SimulationBoard`` in board.py owns that.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import NamedTuple, Sequence

from loguru import logger

from .domain import Card, ColumnKey, RandomFn, Stage, WipLimits, Worker
from .rules import (
    age_cards,
    apply_worker_output,
    can_move_into_column,
    can_move_out_of_column,
    can_transition,
    stage_counts,
)


class DayResult(NamedTuple):
    cards: list[Card]
    new_day: int


class MoveResult(NamedTuple):
    cards: list[Card]
    alert_message: str | None


# ---------------------------------------------------------------------------
# Day advancement
# ---------------------------------------------------------------------------


def transition_ready_cards(
    cards: Sequence[Card], stamp_day: int, wip_limits: WipLimits
) -> list[Card]:
    """
    Move every ready card to its successor stage.

    Occupancy is counted once on ``cards`` as given, so every decision is
    made against the same snapshot. Cards entering done get
    ``completion_day = stamp_day``.
    """
    counts = stage_counts(cards)
    result = []
    for card in cards:
        result.append(_transition(card, counts, stamp_day, wip_limits))
    return result


def _transition(
    card: Card, counts: Counter[Stage], stamp_day: int, wip_limits: WipLimits
) -> Card:
    if not can_transition(card):
        return card

    if not can_move_out_of_column(wip_limits, card.stage.column, counts[card.stage]):
        logger.debug("Card {} held in {} by min WIP", card.id, card.stage.value)
        return card

    target = card.stage.next
    if target is None:
        return card

    if not can_move_into_column(wip_limits, target.column, counts[target]):
        logger.debug("Card {} held out of {} by max WIP", card.id, target.value)
        return card

    logger.debug("Card {}  {} → {}", card.id, card.stage.value, target.value)
    if target == Stage.DONE:
        return replace(card, stage=target, completion_day=stamp_day)
    return replace(card, stage=target)


def clear_worker_assignments(cards: Sequence[Card]) -> list[Card]:
    return [card.cleared() for card in cards]


def advance_day(
    cards: Sequence[Card],
    current_day: int,
    wip_limits: WipLimits,
    random: RandomFn,
) -> DayResult:
    """
    Simulate one day for every card on the board.

    The order is fixed: age, apply worker output to the aged cards, try to
    transition using the post-output snapshot, then clear every worker
    assignment. Cards reaching done are stamped with ``current_day``
    (the day being left, not the new one).

    Args:
        cards:       Full card collection.
        current_day: Day number before advancing.
        wip_limits:  Column limits used to gate transitions.
        random:      Zero-argument callable returning floats in [0, 1).

    Returns:
        DayResult with the new cards and ``current_day + 1``.
    """
    aged = age_cards(cards)
    produced = [apply_worker_output(card, random) for card in aged]
    transitioned = transition_ready_cards(produced, current_day, wip_limits)
    final = clear_worker_assignments(transitioned)

    logger.info("Day {} → {}  ({} cards)", current_day, current_day + 1, len(final))
    return DayResult(cards=final, new_day=current_day + 1)


# ---------------------------------------------------------------------------
# Manual move
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _ClickMove:
    target: Stage
    target_name: str
    source_name: str
    sets_start_day: bool


CLICK_MOVES: dict[Stage, _ClickMove] = {
    Stage.OPTIONS: _ClickMove(Stage.RED_ACTIVE, "Red Active", "Options", True),
    Stage.RED_FINISHED: _ClickMove(
        Stage.BLUE_ACTIVE, "Blue Active", "Red Finished", False
    ),
    Stage.BLUE_FINISHED: _ClickMove(
        Stage.GREEN, "Green Activities", "Blue Finished", False
    ),
}


def move_card(
    card_id: str,
    cards: Sequence[Card],
    current_day: int,
    wip_limits: WipLimits,
) -> MoveResult:
    """
    Advance one card on a user click.

    Only options, red-finished and blue-finished cards are clickable; any
    other stage, a blocked card, or an unknown id leaves the board unchanged
    with no message. The target max WIP is checked before the source min WIP, so
    when both would fail the max message wins.
    """
    unchanged = list(cards)
    card = next((c for c in cards if c.id == card_id), None)
    if card is None or card.stage not in CLICK_MOVES:
        return MoveResult(unchanged, None)

    if card.is_blocked:
        logger.warning("Card {} is blocked; click ignored", card.id)
        return MoveResult(unchanged, None)

    move = CLICK_MOVES[card.stage]
    counts = stage_counts(cards)

    target_column: ColumnKey = move.target.column
    if not can_move_into_column(wip_limits, target_column, counts[move.target]):
        limit = wip_limits.for_column(target_column).max
        message = (
            f"Cannot move card to {move.target_name}: "
            f"Max WIP limit of {limit} would be exceeded."
        )
        logger.warning(message)
        return MoveResult(unchanged, message)

    source_column: ColumnKey = card.stage.column
    if not can_move_out_of_column(wip_limits, source_column, counts[card.stage]):
        limit = wip_limits.for_column(source_column).min
        message = (
            f"Cannot move card out of {move.source_name}: "
            f"Min WIP limit of {limit} would be violated."
        )
        logger.warning(message)
        return MoveResult(unchanged, message)

    if move.sets_start_day:
        moved = replace(card, stage=move.target, start_day=current_day)
    else:
        moved = replace(card, stage=move.target)

    logger.info("Card {}  {} → {}", card.id, card.stage.value, move.target.value)
    return MoveResult([moved if c.id == card_id else c for c in cards], None)


# ---------------------------------------------------------------------------
# Worker assignment
# ---------------------------------------------------------------------------


def assign_worker(
    card_id: str,
    worker_id: str,
    cards: Sequence[Card],
    workers: Sequence[Worker],
) -> list[Card]:
    """
    Put ``worker_id`` on ``card_id`` for the current day.

    The worker is taken off any other card first. Nothing changes when the
    worker or card is unknown; the worker is dropped without being placed
    when the target card already has three workers.
    """
    worker = next((w for w in workers if w.id == worker_id), None)
    target = next((c for c in cards if c.id == card_id), None)
    if worker is None or target is None:
        return list(cards)

    result = []
    for card in cards:
        on_card = any(w.id == worker_id for w in card.assigned_workers)
        if card.id == card_id:
            if not on_card and card.has_capacity:
                card = card.with_worker(worker)
        elif on_card:
            card = card.without_worker(worker_id)
        result.append(card)
    return result
