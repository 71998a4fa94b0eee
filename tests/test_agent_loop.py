from __future__ import annotations

import json
from collections.abc import Sequence

from gptsh.agent.conversation import ConversationState
from gptsh.agent.gate import ConfirmationGate
from gptsh.agent.loop import ExecutionCoordinator
from gptsh.agent.models import (
    Command,
    Completion,
    CompletionResult,
    ExecutionStatus,
    NoCommand,
    ProviderError,
    ProviderErrorKind,
    SessionDecision,
    Turn,
)
from gptsh.shell import CommandResult


class FakeShell:
    name = "fake"

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.results = results or {}
        self.commands: list[str] = []
        self.working_directories: list[str | None] = []

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.commands.append(command)
        self.working_directories.append(cwd)
        if command in self.results:
            return self.results[command]
        return CommandResult(command=command, shell=self.name, returncode=0, stdout="ok\n", stderr="")


class FakeClient:
    model = "fake-model"

    def __init__(self, responses: Sequence[CompletionResult]) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[Turn, ...]] = []

    def complete(self, turns: Sequence[Turn]) -> CompletionResult:
        self.requests.append(tuple(turns))
        return self.responses.pop(0)


def _gate(answers: Sequence[str] = (), *, no_execute: bool = False) -> ConfirmationGate:
    pending = list(answers)

    def read_input(_prompt: str) -> str:
        if not pending:
            raise AssertionError("confirmation should not have been requested")
        return pending.pop(0)

    return ConfirmationGate(
        read_input=read_input,
        write_output=lambda _text: None,
        no_execute=no_execute,
    )


def _state() -> ConversationState:
    return ConversationState(max_turns=20, system_prompt="translate to bash")


def test_confirmed_command_runs_and_outcome_is_recorded() -> None:
    shell = FakeShell()
    client = FakeClient([Completion("```bash\nls\n```")])
    coordinator = ExecutionCoordinator(
        client=client,
        shell=shell,
        gate=_gate(["y"]),
        working_directory="/tmp/workspace",
    )
    state = _state()

    result = coordinator.run_round(state, "list files")

    assert shell.commands == ["ls"]
    assert shell.working_directories == ["/tmp/workspace"]
    assert result.decision is SessionDecision.EXECUTE
    assert result.outcome is not None
    assert result.outcome.status is ExecutionStatus.SUCCEEDED
    assert result.exit_code == 0
    roles = [turn.role for turn in state.snapshot()]
    assert roles == ["system", "user", "assistant", "system"]
    assert "succeeded" in state.snapshot()[-1].content
    assert "ok" in state.snapshot()[-1].content


def test_request_carries_pinned_prompt_and_user_turn() -> None:
    client = FakeClient([Completion("no command here")])
    coordinator = ExecutionCoordinator(client=client, shell=FakeShell(), gate=_gate())

    coordinator.run_round(_state(), "hello")

    assert client.requests[0] == (
        Turn(role="system", content="translate to bash"),
        Turn(role="user", content="hello"),
    )


def test_prose_response_skips_gate_and_execution() -> None:
    shell = FakeShell()
    client = FakeClient([Completion("Testing builds confidence, pal.")])
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate())
    state = _state()

    result = coordinator.run_round(state, "chat about testing")

    assert isinstance(result.candidate, NoCommand)
    assert result.decision is None
    assert shell.commands == []
    assert state.snapshot()[-1] == Turn(role="assistant", content="Testing builds confidence, pal.")
    assert result.exit_code == 0


def test_provider_error_records_note_and_does_not_execute() -> None:
    shell = FakeShell()
    client = FakeClient(
        [ProviderError(kind=ProviderErrorKind.NETWORK_ERROR, message="connection refused")]
    )
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate())
    state = _state()

    result = coordinator.run_round(state, "list files")

    assert result.error is not None
    assert result.response is None
    assert shell.commands == []
    assert [turn.role for turn in state.snapshot()] == ["system", "user", "system"]
    assert "NetworkError" in state.snapshot()[-1].content
    assert result.exit_code == 1


def test_non_zero_exit_is_visible_to_next_round() -> None:
    shell = FakeShell(
        {
            "grep missing file.txt": CommandResult(
                command="grep missing file.txt",
                shell="fake",
                returncode=2,
                stdout="",
                stderr="grep: file.txt: No such file or directory\n",
            )
        }
    )
    client = FakeClient(
        [
            Completion("```bash\ngrep missing file.txt\n```"),
            Completion("The file does not exist."),
        ]
    )
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate(["y"]))
    state = _state()

    first = coordinator.run_round(state, "search the file")
    coordinator.run_round(state, "why did that fail?")

    assert first.outcome is not None
    assert first.outcome.status is ExecutionStatus.FAILED_NON_ZERO
    assert first.outcome.exit_code == 2
    assert first.exit_code == 2
    second_request = client.requests[1]
    assert any("exited with status 2" in turn.content for turn in second_request)
    assert any("No such file or directory" in turn.content for turn in second_request)


def test_no_execute_previews_and_never_runs() -> None:
    shell = FakeShell()
    client = FakeClient([Completion("```bash\nrm -rf *\n```")])
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate(no_execute=True))
    state = _state()

    result = coordinator.run_round(state, "delete everything")

    assert result.candidate == Command("rm -rf *")
    assert result.decision is SessionDecision.SKIP
    assert shell.commands == []
    assert "preview mode" in state.snapshot()[-1].content
    assert result.exit_code == 0


def test_declined_command_is_noted_in_conversation() -> None:
    shell = FakeShell()
    client = FakeClient([Completion("```bash\nreboot\n```")])
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate(["n"]))
    state = _state()

    result = coordinator.run_round(state, "restart")

    assert result.decision is SessionDecision.SKIP
    assert shell.commands == []
    assert state.snapshot()[-1].content == "The command `reboot` was not executed (declined by the user)."


def test_abort_decision_ends_round_without_running() -> None:
    shell = FakeShell()
    client = FakeClient([Completion("```bash\nls\n```")])
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate(["q"]))
    state = _state()

    result = coordinator.run_round(state, "list files")

    assert result.aborted is True
    assert shell.commands == []
    assert state.snapshot()[-1].role == "assistant"
    assert result.exit_code == 0


def test_failed_to_start_is_recorded_with_reason() -> None:
    shell = FakeShell(
        {
            "cd /tmp": CommandResult(
                command="cd /tmp",
                shell="fake",
                returncode=126,
                stdout="",
                stderr="",
                executed=False,
                not_started_reason="affects the shell's state",
            )
        }
    )
    client = FakeClient([Completion("```bash\ncd /tmp\n```")])
    coordinator = ExecutionCoordinator(client=client, shell=shell, gate=_gate(["y"]))
    state = _state()

    result = coordinator.run_round(state, "go to tmp")

    assert result.outcome is not None
    assert result.outcome.status is ExecutionStatus.FAILED_TO_START
    assert result.exit_code == 1
    assert "failed to start: affects the shell's state" in state.snapshot()[-1].content


def test_outcome_output_is_truncated() -> None:
    shell = FakeShell(
        {
            "yes | head": CommandResult(
                command="yes | head", shell="fake", returncode=0, stdout="y" * 500, stderr=""
            )
        }
    )
    client = FakeClient([Completion("```bash\nyes | head\n```")])
    coordinator = ExecutionCoordinator(
        client=client, shell=shell, gate=_gate(["y"]), output_limit=100
    )
    state = _state()

    coordinator.run_round(state, "spam")

    summary = state.snapshot()[-1].content
    assert "y" * 100 in summary
    assert "y" * 101 not in summary
    assert "[400 characters truncated]" in summary


def test_on_response_is_called_before_confirmation() -> None:
    events: list[str] = []
    client = FakeClient([Completion("Sure:\n```bash\nls\n```")])

    def read_input(_prompt: str) -> str:
        events.append("confirm")
        return "n"

    gate = ConfirmationGate(read_input=read_input, write_output=lambda _text: None)
    coordinator = ExecutionCoordinator(
        client=client,
        shell=FakeShell(),
        gate=gate,
        on_response=lambda _text: events.append("response"),
    )

    coordinator.run_round(_state(), "list")

    assert events == ["response", "confirm"]


def test_rounds_are_logged_as_json_lines(tmp_path) -> None:
    client = FakeClient(
        [
            Completion("```bash\nls\n```"),
            ProviderError(kind=ProviderErrorKind.RATE_LIMITED, message="slow down"),
        ]
    )
    coordinator = ExecutionCoordinator(
        client=client,
        shell=FakeShell(),
        gate=_gate(["y"]),
        log_dir=tmp_path,
    )
    state = _state()

    coordinator.run_round(state, "list files")
    coordinator.run_round(state, "again")

    log_files = list(tmp_path.glob("session-*.log"))
    assert len(log_files) == 1
    lines = log_files[0].read_text(encoding="utf-8").strip().splitlines()
    first, second = (json.loads(line) for line in lines)
    assert first["log_version"] == 1
    assert first["model"] == "fake-model"
    assert first["shell"] == "fake"
    assert first["prompt"] == "list files"
    assert first["command"] == "ls"
    assert first["decision"] == "execute"
    assert first["status"] == "succeeded"
    assert first["returncode"] == 0
    assert second["command"] is None
    assert second["provider_error"] == "RateLimited: slow down"


def test_state_stays_within_cap_across_many_rounds() -> None:
    responses = [Completion("```bash\nls\n```") for _ in range(10)]
    coordinator = ExecutionCoordinator(
        client=FakeClient(responses), shell=FakeShell(), gate=_gate(["y"] * 10)
    )
    state = ConversationState(max_turns=5, system_prompt="prime")

    for index in range(10):
        coordinator.run_round(state, f"prompt {index}")
        assert len(state) <= 5

    assert state.snapshot()[0].content == "prime"
