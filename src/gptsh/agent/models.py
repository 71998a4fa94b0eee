"""Data models shared by the conversation, gate and execution loop."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal

Role = Literal["user", "assistant", "system"]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


@dataclass(frozen=True, slots=True)
class Turn:
    """One role-tagged message in the conversation history."""

    role: Role
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class NoCommand:
    """The model response contained no executable command."""


@dataclass(frozen=True, slots=True)
class Command:
    """A non-empty, trimmed command extracted from a model response."""

    text: str

    def __post_init__(self) -> None:
        stripped = self.text.strip()
        if not stripped:
            msg = "Command text must not be empty"
            raise ValueError(msg)
        object.__setattr__(self, "text", stripped)


CommandCandidate = Command | NoCommand


class ExecutionStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED_NON_ZERO = "failed_non_zero"
    FAILED_TO_START = "failed_to_start"


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of running a confirmed command."""

    status: ExecutionStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    reason: str | None = None
    duration: float = 0.0

    @classmethod
    def succeeded(cls, stdout: str = "", stderr: str = "", duration: float = 0.0) -> ExecutionOutcome:
        return cls(
            status=ExecutionStatus.SUCCEEDED,
            stdout=stdout,
            stderr=stderr,
            exit_code=0,
            duration=duration,
        )

    @classmethod
    def failed_non_zero(
        cls,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        duration: float = 0.0,
    ) -> ExecutionOutcome:
        return cls(
            status=ExecutionStatus.FAILED_NON_ZERO,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration=duration,
        )

    @classmethod
    def failed_to_start(cls, reason: str) -> ExecutionOutcome:
        return cls(status=ExecutionStatus.FAILED_TO_START, reason=reason)


class SessionDecision(enum.Enum):
    EXECUTE = "execute"
    SKIP = "skip"
    ABORT_SESSION = "abort_session"


class ProviderErrorKind(enum.Enum):
    AUTH_ERROR = "AuthError"
    NETWORK_ERROR = "NetworkError"
    RATE_LIMITED = "RateLimited"
    MALFORMED_RESPONSE = "MalformedResponse"


@dataclass(frozen=True, slots=True)
class ProviderError:
    """Typed failure returned by the completion provider."""

    kind: ProviderErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class Completion:
    """Raw response text returned by the completion provider."""

    text: str


CompletionResult = Completion | ProviderError


@dataclass(slots=True)
class RoundResult:
    """Captured outcome of one prompt/completion/confirm/execute cycle."""

    prompt: str
    response: str | None = None
    candidate: CommandCandidate = NoCommand()
    decision: SessionDecision | None = None
    outcome: ExecutionOutcome | None = None
    error: ProviderError | None = None

    @property
    def aborted(self) -> bool:
        return self.decision is SessionDecision.ABORT_SESSION

    @property
    def exit_code(self) -> int:
        """Process exit code for single-shot mode."""
        if self.error is not None:
            return EXIT_FAILURE
        if self.outcome is None:
            return EXIT_SUCCESS
        if self.outcome.status is ExecutionStatus.SUCCEEDED:
            return EXIT_SUCCESS
        if self.outcome.status is ExecutionStatus.FAILED_NON_ZERO and self.outcome.exit_code:
            return self.outcome.exit_code
        return EXIT_FAILURE
