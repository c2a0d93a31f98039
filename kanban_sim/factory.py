"""
Card ids and freshly generated cards.

Ids run A … Z, AA … AZ, BA … ZZ, AAA … like spreadsheet columns.
"""

from __future__ import annotations

import math
import re
from typing import Iterable

from .domain import Card, RandomFn, Stage, WorkItems, WorkProgress

ACTIONS = (
    "Create",
    "Implement",
    "Design",
    "Develop",
    "Test",
    "Refactor",
    "Optimize",
    "Fix",
    "Update",
    "Add",
)

SUBJECTS = (
    "user interface",
    "authentication",
    "database",
    "API",
    "dashboard",
    "reporting",
    "search functionality",
    "payment system",
    "notification system",
    "user profile",
    "settings page",
    "analytics",
    "integration",
    "documentation",
    "error handling",
    "performance",
    "security",
    "accessibility",
    "mobile view",
)

WORK_ITEMS_MIN = 1
WORK_ITEMS_MAX = 8

_CARD_ID = re.compile(r"^[A-Z]+$")


def is_valid_card_id(value: str) -> bool:
    return bool(value) and _CARD_ID.match(value) is not None


def following_id(card_id: str) -> str:
    """A → B, Z → AA, AZ → BA, ZZ → AAA."""
    chars = list(card_id)
    for i in range(len(chars) - 1, -1, -1):
        if chars[i] != "Z":
            chars[i] = chr(ord(chars[i]) + 1)
            return "".join(chars)
        chars[i] = "A"
    return "A" + "".join(chars)


def next_card_id(cards: Iterable[Card]) -> str:
    ids = [card.id for card in cards]
    if not ids:
        return "A"
    return following_id(max(ids, key=lambda i: (len(i), i)))


def _random_int(low: int, high: int, random: RandomFn) -> int:
    return math.floor(random() * (high - low + 1)) + low


def _pick(words: tuple[str, ...], random: RandomFn) -> str:
    return words[math.floor(random() * len(words))]


def create_card(card_id: str, current_day: int, random: RandomFn) -> Card:
    """New card in options with random content and 1–8 units of each color."""
    content = f"{_pick(ACTIONS, random)} {_pick(SUBJECTS, random)}"
    work_items = WorkItems(
        red=WorkProgress(total=_random_int(WORK_ITEMS_MIN, WORK_ITEMS_MAX, random)),
        blue=WorkProgress(total=_random_int(WORK_ITEMS_MIN, WORK_ITEMS_MAX, random)),
        green=WorkProgress(total=_random_int(WORK_ITEMS_MIN, WORK_ITEMS_MAX, random)),
    )
    return Card(
        id=card_id,
        content=content,
        stage=Stage.OPTIONS,
        work_items=work_items,
        start_day=current_day,
    )
