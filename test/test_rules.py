"""Tests for kanban_sim.rules: aging, transition readiness, WIP checks, worker output."""

import pytest

from kanban_sim.domain import (
    Card,
    ColumnKey,
    ColumnLimit,
    Stage,
    WipLimits,
    Worker,
    WorkerType,
    WorkItems,
    WorkProgress,
)
from kanban_sim.rules import (
    NON_SPECIALIZED_RANGE,
    SPECIALIZED_RANGE,
    age_card,
    age_cards,
    apply_worker_output,
    calculate_output,
    can_move_in,
    can_move_into_column,
    can_move_out,
    can_move_out_of_column,
    can_transition,
    column_color,
    count_in_stage,
    output_range,
)


def make_card(stage, red=(5, 0), blue=(3, 0), green=(2, 0), **kwargs):
    return Card(
        id=kwargs.pop("id", "A"),
        stage=stage,
        work_items=WorkItems(
            red=WorkProgress(*red), blue=WorkProgress(*blue), green=WorkProgress(*green)
        ),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("stage", [Stage.OPTIONS, Stage.DONE])
def test_terminal_stages_do_not_age(stage):
    assert age_card(make_card(stage, age=4)).age == 4


@pytest.mark.parametrize(
    "stage",
    [
        Stage.RED_ACTIVE,
        Stage.RED_FINISHED,
        Stage.BLUE_ACTIVE,
        Stage.BLUE_FINISHED,
        Stage.GREEN,
    ],
)
def test_working_stages_age_by_one(stage):
    assert age_card(make_card(stage, age=4)).age == 5


def test_age_cards_preserves_order():
    cards = [
        make_card(Stage.GREEN, id="B"),
        make_card(Stage.OPTIONS, id="A"),
        make_card(Stage.RED_ACTIVE, id="C"),
    ]
    aged = age_cards(cards)
    assert [c.id for c in aged] == ["B", "A", "C"]
    assert [c.age for c in aged] == [1, 0, 1]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def test_blocked_card_never_transitions():
    for stage in Stage:
        card = make_card(stage, (5, 5), (3, 3), (2, 2), is_blocked=True)
        assert can_transition(card) is False


def test_options_and_done_never_transition():
    assert not can_transition(make_card(Stage.OPTIONS, (5, 5), (3, 3), (2, 2)))
    assert not can_transition(make_card(Stage.DONE, (5, 5), (3, 3), (2, 2)))


@pytest.mark.parametrize("stage", [Stage.RED_ACTIVE, Stage.RED_FINISHED])
def test_red_stages(stage):
    assert can_transition(make_card(stage, red=(5, 5)))
    assert can_transition(make_card(stage, red=(5, 7)))
    assert not can_transition(make_card(stage, red=(5, 4)))
    # A zero-total own color is a dead end
    assert not can_transition(make_card(stage, red=(0, 0)))


@pytest.mark.parametrize("stage", [Stage.BLUE_ACTIVE, Stage.BLUE_FINISHED])
def test_blue_stages(stage):
    assert can_transition(make_card(stage, red=(5, 5), blue=(3, 3)))
    assert not can_transition(make_card(stage, red=(5, 5), blue=(3, 2)))
    assert not can_transition(make_card(stage, red=(5, 4), blue=(3, 3)))
    assert not can_transition(make_card(stage, red=(5, 5), blue=(0, 0)))


def test_zero_total_prerequisite_passes():
    """Red with no work is satisfied when leaving blue."""
    assert can_transition(make_card(Stage.BLUE_ACTIVE, red=(0, 0), blue=(3, 3)))


def test_green_stage():
    assert can_transition(make_card(Stage.GREEN, (5, 5), (3, 3), (2, 2)))
    assert not can_transition(make_card(Stage.GREEN, (5, 5), (3, 3), (2, 1)))
    assert not can_transition(make_card(Stage.GREEN, (5, 5), (3, 2), (2, 2)))
    assert not can_transition(make_card(Stage.GREEN, (5, 4), (3, 3), (2, 2)))
    assert not can_transition(make_card(Stage.GREEN, (5, 5), (3, 3), (0, 0)))
    assert can_transition(make_card(Stage.GREEN, (0, 0), (0, 0), (2, 2)))


# ---------------------------------------------------------------------------
# WIP limits
# ---------------------------------------------------------------------------


def test_max_boundary():
    limit = ColumnLimit(min=0, max=3)
    assert can_move_in(limit, 2) is True
    assert can_move_in(limit, 3) is False
    assert can_move_in(limit, 4) is False


def test_min_boundary():
    limit = ColumnLimit(min=2, max=0)
    assert can_move_out(limit, 3) is True
    assert can_move_out(limit, 2) is False
    assert can_move_out(limit, 0) is False


@pytest.mark.parametrize("count", [0, 1, 5, 100])
def test_zero_limits_never_constrain(count):
    unconstrained = ColumnLimit(min=0, max=0)
    assert can_move_in(unconstrained, count)
    assert can_move_out(unconstrained, count)


def test_column_keyed_checks():
    limits = WipLimits(red_active=ColumnLimit(min=1, max=2))
    assert can_move_into_column(limits, ColumnKey.RED_ACTIVE, 1)
    assert not can_move_into_column(limits, ColumnKey.RED_ACTIVE, 2)
    assert can_move_out_of_column(limits, ColumnKey.RED_ACTIVE, 2)
    assert not can_move_out_of_column(limits, ColumnKey.RED_ACTIVE, 1)
    assert can_move_into_column(limits, ColumnKey.GREEN, 50)


def test_count_in_stage():
    cards = [
        make_card(Stage.GREEN, id="A"),
        make_card(Stage.GREEN, id="B"),
        make_card(Stage.DONE, id="C"),
    ]
    assert count_in_stage(cards, Stage.GREEN) == 2
    assert count_in_stage(cards, Stage.OPTIONS) == 0


# ---------------------------------------------------------------------------
# Worker output
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("color", list(WorkerType))
def test_specialized_output_extremes(color):
    assert calculate_output(color, color, lambda: 0) == 3
    assert calculate_output(color, color, lambda: 0.999) == 6
    assert output_range(color, color) == SPECIALIZED_RANGE


@pytest.mark.parametrize(
    "worker_type, color",
    [
        (WorkerType.RED, WorkerType.BLUE),
        (WorkerType.RED, WorkerType.GREEN),
        (WorkerType.BLUE, WorkerType.RED),
        (WorkerType.GREEN, WorkerType.BLUE),
    ],
)
def test_non_specialized_output_extremes(worker_type, color):
    assert calculate_output(worker_type, color, lambda: 0) == 0
    assert calculate_output(worker_type, color, lambda: 0.999) == 3
    assert output_range(worker_type, color) == NON_SPECIALIZED_RANGE


def test_output_midpoint():
    assert calculate_output(WorkerType.RED, WorkerType.RED, lambda: 0.5) == 5


def test_column_color():
    assert column_color(Stage.RED_ACTIVE) == WorkerType.RED
    assert column_color(Stage.BLUE_ACTIVE) == WorkerType.BLUE
    assert column_color(Stage.GREEN) == WorkerType.GREEN


def test_output_applied_to_column_color():
    card = make_card(
        Stage.BLUE_ACTIVE,
        red=(5, 5),
        blue=(8, 1),
        assigned_workers=[Worker("B1", WorkerType.BLUE)],
    )
    produced = apply_worker_output(card, lambda: 0)
    assert produced.work_items.blue == WorkProgress(8, 4)
    assert produced.work_items.red == WorkProgress(5, 5)


def test_output_clamped_and_sequential():
    """The first worker fills the card; the second one adds nothing."""
    draws = iter([0.999, 0.999])
    card = make_card(
        Stage.RED_ACTIVE,
        red=(5, 0),
        assigned_workers=[Worker("R1", WorkerType.RED), Worker("R2", WorkerType.RED)],
    )
    produced = apply_worker_output(card, lambda: next(draws))
    assert produced.work_items.red == WorkProgress(5, 5)


def test_multiple_workers_accumulate():
    card = make_card(
        Stage.GREEN,
        green=(10, 0),
        assigned_workers=[
            Worker("G1", WorkerType.GREEN),
            Worker("R1", WorkerType.RED),
            Worker("G2", WorkerType.GREEN),
        ],
    )
    # 3 (specialized) + 0 (red on green) + 3 (specialized)
    produced = apply_worker_output(card, lambda: 0)
    assert produced.work_items.green == WorkProgress(10, 6)


def test_no_output_without_workers():
    card = make_card(Stage.RED_ACTIVE, red=(5, 0))
    assert apply_worker_output(card, lambda: 0.999) == card


@pytest.mark.parametrize(
    "stage", [Stage.OPTIONS, Stage.RED_FINISHED, Stage.BLUE_FINISHED, Stage.DONE]
)
def test_no_output_outside_producing_stages(stage):
    card = make_card(stage, red=(5, 0), assigned_workers=[Worker("R1", "red")])
    assert apply_worker_output(card, lambda: 0.999).work_items == card.work_items
