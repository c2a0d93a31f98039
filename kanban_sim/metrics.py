"""
Flow metrics over a board's cards: lead time, throughput, WIP and aging.

Every function is pure and reads only ``cards`` and ``current_day``. Days
are 1-based here; day 0 (the setup day) never appears in per-day series.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from loguru import logger

from .domain import Card, Stage

ROLLING_WINDOW = 5
WIP_RECOMMENDATION_FACTOR = 0.8


def round1(value: float) -> float:
    """Round half up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def completed_cards(cards: Iterable[Card]) -> list[Card]:
    return [c for c in cards if c.stage == Stage.DONE]


def lead_times(cards: Iterable[Card]) -> list[int]:
    """Days from start to completion, one entry per done card."""
    return [
        c.completion_day - c.start_day if c.completion_day else 0
        for c in completed_cards(cards)
    ]


def average_lead_time(cards: Iterable[Card]) -> float:
    times = lead_times(cards)
    if not times:
        return 0.0
    return round1(sum(times) / len(times))


def throughput_by_day(cards: Iterable[Card], current_day: int) -> dict[int, int]:
    """Cards completed on each day ``1..current_day``."""
    counts = {day: 0 for day in range(1, current_day + 1)}
    for card in completed_cards(cards):
        if card.completion_day and card.completion_day in counts:
            counts[card.completion_day] += 1
    return counts


def rolling_throughput(
    cards: Iterable[Card], current_day: int, window: int = ROLLING_WINDOW
) -> dict[int, float]:
    """
    Mean throughput over the ``window`` days ending at each day.

    Only days with a full window behind them get a value.
    """
    if window < 1:
        raise ValueError("window must be at least 1")
    daily = throughput_by_day(cards, current_day)
    return {
        day: sum(daily.get(d, 0) for d in range(day - window + 1, day + 1)) / window
        for day in range(window, current_day + 1)
    }


def wip_by_day(cards: Iterable[Card], current_day: int) -> dict[int, int]:
    """
    Cards on the board each day ``1..current_day``.

    A card counts from its start day through its completion day, or through
    today while it is still open.
    """
    counts = {day: 0 for day in range(1, current_day + 1)}
    for card in cards:
        end = card.completion_day or current_day
        for day in range(max(card.start_day, 1), min(end, current_day) + 1):
            counts[day] += 1
    return counts


def predicted_lead_time(cards: Sequence[Card], current_day: int) -> float:
    """Little's law: average WIP divided by average daily throughput."""
    if current_day <= 0:
        return 0.0
    average_wip = sum(wip_by_day(cards, current_day).values()) / current_day
    average_throughput = len(completed_cards(cards)) / current_day
    if average_throughput <= 0:
        return 0.0
    return average_wip / average_throughput


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


def ages_by_stage(cards: Iterable[Card]) -> dict[Stage, list[int]]:
    ages: dict[Stage, list[int]] = {stage: [] for stage in Stage}
    for card in cards:
        ages[card.stage].append(card.age)
    return ages


def total_wip(cards: Iterable[Card]) -> int:
    return sum(1 for c in cards if c.stage != Stage.DONE)


def wip_limit_recommendation(cards: Iterable[Card]) -> int:
    """A total WIP cap 20% below the current work in progress."""
    return math.ceil(total_wip(cards) * WIP_RECOMMENDATION_FACTOR)


def oldest_age(cards: Iterable[Card]) -> int:
    return max((c.age for c in cards), default=0)


def average_age(cards: Iterable[Card]) -> float:
    """Mean age of the cards not yet done."""
    open_ages = [c.age for c in cards if c.stage != Stage.DONE]
    return round1(sum(open_ages) / max(1, len(open_ages)))


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FlowMetrics:
    completed: int
    lead_times: list[int]
    average_lead_time: float
    throughput_by_day: dict[int, int]
    rolling_throughput: dict[int, float]
    wip_by_day: dict[int, int]
    predicted_lead_time: float
    ages_by_stage: dict[Stage, list[int]]
    total_wip: int
    wip_limit_recommendation: int
    oldest_age: int
    average_age: float


def flow_metrics(cards: Sequence[Card], current_day: int) -> FlowMetrics:
    cards = list(cards)
    metrics = FlowMetrics(
        completed=len(completed_cards(cards)),
        lead_times=lead_times(cards),
        average_lead_time=average_lead_time(cards),
        throughput_by_day=throughput_by_day(cards, current_day),
        rolling_throughput=rolling_throughput(cards, current_day),
        wip_by_day=wip_by_day(cards, current_day),
        predicted_lead_time=predicted_lead_time(cards, current_day),
        ages_by_stage=ages_by_stage(cards),
        total_wip=total_wip(cards),
        wip_limit_recommendation=wip_limit_recommendation(cards),
        oldest_age=oldest_age(cards),
        average_age=average_age(cards),
    )
    logger.debug(
        "Metrics day {}: {} done, avg lead {}, WIP {}",
        current_day,
        metrics.completed,
        metrics.average_lead_time,
        metrics.total_wip,
    )
    return metrics
