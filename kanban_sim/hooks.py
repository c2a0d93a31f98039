"""
Hooks system — decouple side effects from simulation logic.

The board fires events; listeners react. Nothing inside the simulation
knows or cares what happens downstream.

Events:
  on_transition  a card changed stage (manual move, policy or day advance)
  on_done        a card reached done
  on_blocked     a card was blocked
"""

from __future__ import annotations

from typing import Awaitable, Callable

from loguru import logger

from .domain import Card

AsyncHookFn = Callable[[Card], Awaitable[None]]

HOOK_EVENTS = ("on_transition", "on_done", "on_blocked")


class HookRegistry:
    """Maps event names to lists of async callables."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[AsyncHookFn]] = {
            event: [] for event in HOOK_EVENTS
        }

    def register(self, event: str, hook: AsyncHookFn) -> None:
        if event not in self._hooks:
            raise ValueError(f"Unknown hook event: {event}")
        self._hooks[event].append(hook)

    async def fire(self, event: str, card: Card) -> None:
        for hook in self._hooks.get(event, []):
            try:
                await hook(card)
            except Exception as e:
                logger.error("Hook {} failed for card {}: {}", event, card.id, e)


async def log_transition(card: Card) -> None:
    """Built-in hook: logs every card transition."""
    logger.info("Card {} → {}", card.id, card.stage.value)
