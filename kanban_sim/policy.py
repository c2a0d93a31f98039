"""
Automatic day policies.

Only one policy exists: "siloted-expert". Each worker only ever works in
the column matching their specialization, and the board is pulled
forward before anyone works:

  1. intake      options → red-active, lowest id first
  2. promotion   red-finished → blue-active, then blue-finished → green,
                 oldest first
  3. assignment  workers spread over their own color's producing column
  4. simulate    age → output → transition (stamped with the new day)
  5. reset       every worker assignment cleared
"""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from loguru import logger

from .domain import (
    MAX_ASSIGNED_WORKERS,
    Card,
    RandomFn,
    Stage,
    UnknownPolicyError,
    WipLimits,
    Worker,
    WorkerType,
)
from .rules import (
    age_cards,
    apply_worker_output,
    can_move_in,
    can_move_out,
    can_transition,
    count_in_stage,
    stage_counts,
)
from .simulation import DayResult, clear_worker_assignments, transition_ready_cards

SILOTED_EXPERT = "siloted-expert"
POLICY_TYPES: tuple[str, ...] = (SILOTED_EXPERT,)

PROMOTIONS: tuple[tuple[Stage, Stage], ...] = (
    (Stage.RED_FINISHED, Stage.BLUE_ACTIVE),
    (Stage.BLUE_FINISHED, Stage.GREEN),
)

WORKER_COLUMNS: tuple[tuple[WorkerType, Stage], ...] = (
    (WorkerType.RED, Stage.RED_ACTIVE),
    (WorkerType.BLUE, Stage.BLUE_ACTIVE),
    (WorkerType.GREEN, Stage.GREEN),
)


# ---------------------------------------------------------------------------
# Batch moves
# ---------------------------------------------------------------------------


def _batch_move(
    cards: list[Card],
    candidates: list[Card],
    source: Stage,
    target: Stage,
    wip_limits: WipLimits,
    start_day: int | None = None,
) -> list[Card]:
    """
    Move ``candidates`` (already ordered) from ``source`` to ``target`` one by one.

    The source min is checked once against the column as it stands before
    any move; the target max is re-checked before every move with the
    running occupancy, and the batch stops at the first refusal.
    """
    counts = stage_counts(cards)
    if not can_move_out(wip_limits.for_column(source.column), counts[source]):
        logger.debug("Min WIP on {} holds the whole batch", source.value)
        return cards

    target_limit = wip_limits.for_column(target.column)
    in_target = counts[target]
    moved: dict[str, Card] = {}
    for card in candidates:
        if not can_move_in(target_limit, in_target):
            logger.debug("Max WIP on {} reached at {}", target.value, in_target)
            break
        if start_day is None:
            moved[card.id] = replace(card, stage=target)
        else:
            moved[card.id] = replace(card, stage=target, start_day=start_day)
        in_target += 1

    if moved:
        logger.info(
            "Policy moved {} card(s) {} → {}", len(moved), source.value, target.value
        )
    return [moved.get(card.id, card) for card in cards]


def pull_from_options(
    cards: list[Card], current_day: int, wip_limits: WipLimits
) -> list[Card]:
    candidates = sorted(
        (c for c in cards if c.stage == Stage.OPTIONS and not c.is_blocked),
        key=lambda c: c.id,
    )
    return _batch_move(
        cards, candidates, Stage.OPTIONS, Stage.RED_ACTIVE, wip_limits, current_day
    )


def promote_finished(cards: list[Card], wip_limits: WipLimits) -> list[Card]:
    for source, target in PROMOTIONS:
        candidates = sorted(
            (c for c in cards if c.stage == source and can_transition(c)),
            key=lambda c: c.age,
            reverse=True,
        )
        cards = _batch_move(cards, candidates, source, target, wip_limits)
    return cards


# ---------------------------------------------------------------------------
# Worker assignment
# ---------------------------------------------------------------------------


def distribute_workers(
    workers: Sequence[Worker], cards: Sequence[Card]
) -> dict[str, list[Worker]]:
    """
    Spread ``workers`` over ``cards`` (already ordered by priority).

    First every card gets at most one worker, pairing by index. Leftover
    workers then go round-robin over the same cards, skipping full ones,
    until all are placed or every card is full; the rest sit idle.
    """
    placed: dict[str, list[Worker]] = {
        card.id: list(card.assigned_workers) for card in cards
    }
    if not workers or not cards:
        return placed

    for worker, card in zip(workers, cards):
        placed[card.id].append(worker)

    leftover = list(workers[len(cards):])
    index = 0
    while leftover:
        slot = placed[cards[index].id]
        if len(slot) < MAX_ASSIGNED_WORKERS:
            slot.append(leftover.pop(0))
        index += 1
        if index >= len(cards):
            if all(len(placed[c.id]) >= MAX_ASSIGNED_WORKERS for c in cards):
                logger.debug("{} worker(s) left idle", len(leftover))
                break
            index = 0
    return placed


def assign_workers_by_color(
    cards: list[Card], workers: Sequence[Worker]
) -> list[Card]:
    cards = clear_worker_assignments(cards)
    for worker_type, stage in WORKER_COLUMNS:
        column_cards = sorted(
            (c for c in cards if c.stage == stage and c.has_capacity),
            key=lambda c: c.age,
            reverse=True,
        )
        matching = [w for w in workers if w.type == worker_type]
        placed = distribute_workers(matching, column_cards)
        cards = [
            replace(card, assigned_workers=tuple(placed[card.id]))
            if card.id in placed
            else card
            for card in cards
        ]
    return cards


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_policy_day(
    policy_type: str,
    cards: Sequence[Card],
    workers: Sequence[Worker],
    current_day: int,
    wip_limits: WipLimits,
    random: RandomFn,
) -> DayResult:
    """
    Run one simulated day under ``policy_type``.

    Each phase sees the fully updated collection from the previous one.
    Unlike ``advance_day``, cards reaching done are stamped with the new
    day number (``current_day + 1``).

    Raises:
        UnknownPolicyError: ``policy_type`` is not "siloted-expert".
    """
    if policy_type not in POLICY_TYPES:
        raise UnknownPolicyError(policy_type)

    new_day = current_day + 1
    board = pull_from_options(list(cards), current_day, wip_limits)
    board = promote_finished(board, wip_limits)
    board = assign_workers_by_color(board, workers)

    board = age_cards(board)
    board = [apply_worker_output(card, random) for card in board]
    board = transition_ready_cards(board, new_day, wip_limits)
    board = clear_worker_assignments(board)

    done = count_in_stage(board, Stage.DONE)
    logger.info(
        "Policy {} ran day {} → {}  ({} done)",
        policy_type,
        current_day,
        new_day,
        done,
    )
    return DayResult(cards=board, new_day=new_day)
