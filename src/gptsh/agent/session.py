"""Session loops driving the coordinator: single-shot, shell and chat."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from gptsh.agent.conversation import ConversationState
from gptsh.agent.loop import ExecutionCoordinator
from gptsh.agent.models import EXIT_FAILURE, EXIT_SUCCESS, RoundResult

LOGGER = logging.getLogger(__name__)

SHELL_EXIT_WORDS = frozenset({"exit"})
CHAT_EXIT_WORDS = frozenset({"exit", "quit"})

ReadPrompt = Callable[[], str]
OnRound = Callable[[RoundResult], None]


def run_single_shot(
    coordinator: ExecutionCoordinator,
    state: ConversationState,
    prompt: str,
    *,
    on_round: OnRound | None = None,
) -> int:
    """Run exactly one round and map its result to a process exit code."""
    try:
        result = coordinator.run_round(state, prompt)
    except Exception:  # noqa: BLE001
        LOGGER.exception("session_round_failed", extra={"round": 1})
        return EXIT_FAILURE
    if on_round:
        on_round(result)
    return result.exit_code


def run_interactive(
    coordinator: ExecutionCoordinator,
    state: ConversationState,
    *,
    read_prompt: ReadPrompt,
    exit_words: Iterable[str] = SHELL_EXIT_WORDS,
    on_round: OnRound | None = None,
) -> int:
    """Read prompts until an exit word, end of input, or an aborted round."""
    normalized_exit_words = {word.strip().lower() for word in exit_words}
    rounds = 0
    while True:
        try:
            line = read_prompt()
        except EOFError:
            LOGGER.debug("session_input_closed", extra={"rounds": rounds})
            break

        prompt = line.strip()
        if prompt.lower() in normalized_exit_words:
            break
        if not prompt:
            continue

        rounds += 1
        try:
            result = coordinator.run_round(state, prompt)
        except Exception:  # noqa: BLE001
            LOGGER.exception("session_round_failed", extra={"round": rounds})
            state.add("system", "The previous request failed with an internal error.")
            continue

        if on_round:
            on_round(result)
        if result.aborted:
            break

    LOGGER.debug("session_ended", extra={"rounds": rounds})
    return EXIT_SUCCESS
