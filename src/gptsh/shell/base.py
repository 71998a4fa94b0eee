"""Base shell adapter primitives."""

from __future__ import annotations

import abc
import logging
import re
import time
from dataclasses import dataclass

from gptsh.agent.models import ExecutionOutcome

LOGGER = logging.getLogger(__name__)

SHELL_STATE_BUILTINS = frozenset({"cd", "export", "alias", "source", "unset"})

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]


@dataclass(slots=True)
class CommandResult:
    """Result of a command execution."""

    command: str
    shell: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0
    executed: bool = True
    not_started_reason: str | None = None

    def to_outcome(self) -> ExecutionOutcome:
        if not self.executed:
            return ExecutionOutcome.failed_to_start(
                self.not_started_reason or "command was not started"
            )
        if self.returncode == 0:
            return ExecutionOutcome.succeeded(
                stdout=self.stdout,
                stderr=self.stderr,
                duration=self.duration_seconds,
            )
        return ExecutionOutcome.failed_non_zero(
            self.returncode,
            stdout=self.stdout,
            stderr=self.stderr,
            duration=self.duration_seconds,
        )


class ShellAdapter(abc.ABC):
    """Abstract adapter for shell-specific command execution."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly shell adapter name."""

    @abc.abstractmethod
    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Execute a shell command and return a normalized result."""

    def not_started_reason(self, command: str) -> str | None:
        """Return why a command cannot run in a child process, if it cannot."""
        if is_shell_builtin(command):
            stripped = command.strip()
            return (
                f"The command '{stripped}' affects the shell's state and cannot be executed "
                f"directly by this program.\nPlease run the following command in your "
                f"terminal:\n{stripped}"
            )
        return None

    def log_request(self, command: str, *, timeout: float | None) -> None:
        LOGGER.info(
            "command_request",
            extra={
                "shell": self.name,
                "command": self._sanitize_command(command),
                "timeout": timeout,
            },
        )

    def log_result(self, result: CommandResult) -> None:
        LOGGER.info(
            "command_result",
            extra={
                "shell": result.shell,
                "returncode": result.returncode,
                "timed_out": result.timed_out,
                "duration_seconds": round(result.duration_seconds, 4),
                "executed": result.executed,
                "stdout_length": len(result.stdout),
                "stderr_length": len(result.stderr),
            },
        )

    @staticmethod
    def monotonic_now() -> float:
        return time.monotonic()

    def _sanitize_command(self, command: str) -> str:
        sanitized = command
        for pattern in _SECRET_PATTERNS:
            sanitized = pattern.sub(r"\1***", sanitized)
        return sanitized


def is_shell_builtin(command: str) -> bool:
    """True when the first word is a builtin that only changes the calling shell."""
    words = command.strip().split()
    return bool(words) and words[0] in SHELL_STATE_BUILTINS
