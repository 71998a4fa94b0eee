"""One prompt/completion/confirm/execute round over a conversation."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from gptsh.agent.conversation import ConversationState
from gptsh.agent.extractor import extract_command
from gptsh.agent.gate import ConfirmationGate
from gptsh.agent.models import (
    Command,
    CompletionResult,
    ExecutionOutcome,
    ExecutionStatus,
    ProviderError,
    RoundResult,
    SessionDecision,
    Turn,
)
from gptsh.shell import ShellAdapter

LOGGER = logging.getLogger(__name__)

OnResponse = Callable[[str], None]


class CompletionProvider(Protocol):
    def complete(self, turns: Sequence[Turn]) -> CompletionResult: ...


class ExecutionCoordinator:
    """Runs a single round and folds its outcome back into the conversation.

    The coordinator never keeps a reference to the conversation between
    rounds; the session loop owns it and passes it into every call.
    """

    def __init__(
        self,
        *,
        client: CompletionProvider,
        shell: ShellAdapter,
        gate: ConfirmationGate,
        working_directory: str | None = None,
        output_limit: int = 2000,
        command_timeout: float | None = None,
        log_dir: str | Path | None = None,
        on_response: OnResponse | None = None,
    ) -> None:
        self.client = client
        self.shell = shell
        self.gate = gate
        self.working_directory = working_directory
        self.output_limit = output_limit
        self.command_timeout = command_timeout
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.on_response = on_response

    def run_round(self, state: ConversationState, prompt: str) -> RoundResult:
        result = RoundResult(prompt=prompt)
        state.add("user", prompt)

        completion = self.client.complete(state.snapshot())
        if isinstance(completion, ProviderError):
            result.error = completion
            state.add("system", f"The completion request failed ({completion.kind.value}).")
            self._append_log(result)
            return result

        result.response = completion.text
        state.add("assistant", completion.text)
        if self.on_response:
            self.on_response(completion.text)

        result.candidate = extract_command(completion.text)
        if not isinstance(result.candidate, Command):
            self._append_log(result)
            return result

        command = result.candidate
        result.decision = self.gate.confirm(command)
        if result.decision is SessionDecision.EXECUTE:
            command_result = self.shell.execute(
                command.text,
                cwd=self.working_directory,
                timeout=self.command_timeout,
            )
            result.outcome = command_result.to_outcome()
            state.add("system", self._summarize_outcome(command.text, result.outcome))
        elif result.decision is SessionDecision.SKIP:
            reason = "preview mode" if self.gate.no_execute else "declined by the user"
            state.add("system", f"The command `{command.text}` was not executed ({reason}).")

        self._append_log(result)
        return result

    def _summarize_outcome(self, command: str, outcome: ExecutionOutcome) -> str:
        if outcome.status is ExecutionStatus.FAILED_TO_START:
            return f"The command `{command}` failed to start: {outcome.reason}"

        if outcome.status is ExecutionStatus.SUCCEEDED:
            headline = f"The command `{command}` succeeded (exit status 0)."
        else:
            headline = f"The command `{command}` exited with status {outcome.exit_code}."
        return (
            f"{headline}\n"
            f"stdout:\n{self._truncate(outcome.stdout)}\n"
            f"stderr:\n{self._truncate(outcome.stderr)}"
        )

    def _truncate(self, text: str) -> str:
        text = text.rstrip()
        if len(text) <= self.output_limit:
            return text
        omitted = len(text) - self.output_limit
        return f"{text[: self.output_limit]}\n... [{omitted} characters truncated]"

    def _append_log(self, result: RoundResult) -> None:
        if self.log_dir is None:
            return
        outcome = result.outcome
        command = result.candidate.text if isinstance(result.candidate, Command) else None
        entry = {
            "log_version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": getattr(self.client, "model", None),
            "shell": getattr(self.shell, "name", self.shell.__class__.__name__),
            "working_directory": self.working_directory,
            "prompt": result.prompt,
            "command": command,
            "decision": result.decision.value if result.decision else None,
            "status": outcome.status.value if outcome else None,
            "returncode": outcome.exit_code if outcome else None,
            "duration": outcome.duration if outcome else None,
            "provider_error": str(result.error) if result.error else None,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            day_file = self.log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
            with day_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError as exc:
            LOGGER.warning(
                "session_log_write_failed",
                extra={"log_dir": str(self.log_dir), "error": str(exc)},
            )
