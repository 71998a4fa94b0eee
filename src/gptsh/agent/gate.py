"""Yes/no/abort gate in front of every command execution."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from gptsh.agent.models import Command, SessionDecision

LOGGER = logging.getLogger(__name__)

ReadInput = Callable[[str], str]
WriteOutput = Callable[[str], None]

AFFIRMATIVE_INPUTS = frozenset({"y", "yes"})
NEGATIVE_INPUTS = frozenset({"n", "no"})
SHELL_ABORT_INPUTS = frozenset({"q"})
CHAT_ABORT_INPUTS = frozenset({"exit", "quit"})


class ConfirmationGate:
    """Shows a proposed command and turns the user's answer into a decision."""

    def __init__(
        self,
        *,
        read_input: ReadInput,
        write_output: WriteOutput,
        abort_inputs: Iterable[str] = SHELL_ABORT_INPUTS,
        default_yes: bool = True,
        no_execute: bool = False,
        max_retries: int = 3,
    ) -> None:
        self.read_input = read_input
        self.write_output = write_output
        self.abort_inputs = frozenset(value.strip().lower() for value in abort_inputs)
        self.default_yes = default_yes
        self.no_execute = no_execute
        self.max_retries = max(0, max_retries)

    @property
    def question(self) -> str:
        default_hint = "Y/n" if self.default_yes else "y/N"
        abort_hint = "/".join(sorted(self.abort_inputs))
        suffix = f"/{abort_hint}" if abort_hint else ""
        return f"Do you want to execute this command? ({default_hint}{suffix}) "

    def confirm(self, candidate: Command) -> SessionDecision:
        self.write_output(f"\nGenerated Command:\n{candidate.text}\n")
        if self.no_execute:
            LOGGER.info("confirmation_bypassed", extra={"reason": "no_execute"})
            return SessionDecision.SKIP

        for attempt in range(self.max_retries + 1):
            try:
                answer = self.read_input(self.question)
            except EOFError:
                LOGGER.info("confirmation_input_closed")
                return SessionDecision.ABORT_SESSION

            decision = self._interpret(answer)
            if decision is not None:
                LOGGER.debug(
                    "confirmation_decided",
                    extra={"decision": decision.value, "attempt": attempt + 1},
                )
                return decision
            if attempt < self.max_retries:
                self.write_output(f"Unrecognized answer: {answer.strip()!r}.")

        self.write_output("No valid answer received. Command execution cancelled.")
        return SessionDecision.SKIP

    def _interpret(self, answer: str) -> SessionDecision | None:
        normalized = answer.strip().lower()
        if not normalized:
            return SessionDecision.EXECUTE if self.default_yes else None
        if normalized in AFFIRMATIVE_INPUTS:
            return SessionDecision.EXECUTE
        if normalized in NEGATIVE_INPUTS:
            return SessionDecision.SKIP
        if normalized in self.abort_inputs:
            return SessionDecision.ABORT_SESSION
        return None
