"""Bounded conversation history threaded through every model request."""

from __future__ import annotations

import logging

from gptsh.agent.models import Role, Turn

LOGGER = logging.getLogger(__name__)


class ConversationState:
    """Ordered, capped sequence of turns with an optional pinned priming turn.

    The priming turn, when given, always stays at the front of the history.
    Every other turn is evicted oldest-first to make room before an append
    would exceed ``max_turns``.
    """

    def __init__(self, *, max_turns: int, system_prompt: str | None = None) -> None:
        minimum = 2 if system_prompt else 1
        if max_turns < minimum:
            msg = f"max_turns must be at least {minimum}, got {max_turns}"
            raise ValueError(msg)
        self.max_turns = max_turns
        self._pinned = Turn(role="system", content=system_prompt) if system_prompt else None
        self._turns: list[Turn] = []

    @property
    def pinned(self) -> Turn | None:
        return self._pinned

    def __len__(self) -> int:
        return len(self._turns) + (1 if self._pinned else 0)

    def append(self, turn: Turn) -> None:
        self.evict_if_needed()
        self._turns.append(turn)

    def add(self, role: Role, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self.append(turn)
        return turn

    def snapshot(self) -> tuple[Turn, ...]:
        if self._pinned:
            return (self._pinned, *self._turns)
        return tuple(self._turns)

    def evict_if_needed(self, incoming: int = 1) -> int:
        """Drop the oldest unpinned turns so ``incoming`` more fit under the cap."""
        capacity = self.max_turns - (1 if self._pinned else 0)
        overflow = len(self._turns) + incoming - capacity
        if overflow <= 0:
            return 0
        evicted = min(overflow, len(self._turns))
        del self._turns[:evicted]
        LOGGER.debug(
            "conversation_evicted",
            extra={"evicted": evicted, "remaining": len(self), "max_turns": self.max_turns},
        )
        return evicted
