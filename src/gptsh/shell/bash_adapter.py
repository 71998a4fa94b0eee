"""Runs confirmed commands through ``bash -c`` (or ``sh -c``)."""

from __future__ import annotations

import locale
import shutil
import subprocess

from .base import CommandResult, ShellAdapter

EXIT_NOT_RUNNABLE = 126
EXIT_NOT_FOUND = 127
EXIT_TIMED_OUT = 124


class BashAdapter(ShellAdapter):
    """Captures stdout/stderr of a single non-interactive bash invocation."""

    def __init__(self, executable: str | None = None, *, fallback_to_sh: bool = True) -> None:
        self.executable = executable or _default_executable(fallback_to_sh=fallback_to_sh)

    @property
    def name(self) -> str:
        return "bash"

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.log_request(command, timeout=timeout)
        refusal = self.not_started_reason(command)
        if refusal:
            result = self._result(command, EXIT_NOT_RUNNABLE, executed=False, not_started_reason=refusal)
        else:
            result = self._spawn(command, cwd=cwd, timeout=timeout)
        self.log_result(result)
        return result

    def _spawn(self, command: str, *, cwd: str | None, timeout: float | None) -> CommandResult:
        started = self.monotonic_now()
        try:
            completed = subprocess.run(
                [self.executable, "-c", command],
                capture_output=True,
                cwd=cwd,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return self._result(
                command,
                EXIT_TIMED_OUT,
                stdout=exc.stdout,
                stderr=exc.stderr,
                timed_out=True,
                duration_seconds=self.monotonic_now() - started,
            )
        except OSError as exc:
            return self._result(
                command,
                EXIT_NOT_FOUND,
                executed=False,
                not_started_reason=f"Failed to execute command: {exc}",
                duration_seconds=self.monotonic_now() - started,
            )
        return self._result(
            command,
            _signal_to_exit_status(completed.returncode),
            stdout=completed.stdout,
            stderr=completed.stderr,
            duration_seconds=self.monotonic_now() - started,
        )

    def _result(
        self,
        command: str,
        returncode: int,
        *,
        stdout: bytes | str | None = None,
        stderr: bytes | str | None = None,
        **fields: object,
    ) -> CommandResult:
        return CommandResult(
            command=command,
            shell=self.name,
            returncode=returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            **fields,  # type: ignore[arg-type]
        )


def _default_executable(*, fallback_to_sh: bool) -> str:
    if shutil.which("bash"):
        return "bash"
    if fallback_to_sh and shutil.which("sh"):
        return "sh"
    return "bash"


def _signal_to_exit_status(returncode: int) -> int:
    # killed by signal N is reported as 128+N, as bash does
    return 128 - returncode if returncode < 0 else returncode


def _decode(payload: bytes | str | None) -> str:
    if not payload:
        return ""
    if isinstance(payload, str):
        return payload
    for encoding in ("utf-8", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
