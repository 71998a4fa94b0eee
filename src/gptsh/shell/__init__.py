"""Shell adapter implementations."""

from .base import CommandResult, ShellAdapter, is_shell_builtin
from .bash_adapter import BashAdapter


def create_shell_adapter(shell_name: str) -> ShellAdapter:
    normalized = shell_name.strip().lower()
    if normalized in {"bash", "sh", "shell"}:
        return BashAdapter(executable="sh" if normalized == "sh" else None)
    msg = f"Unsupported shell adapter: {shell_name}"
    raise ValueError(msg)


__all__ = [
    "BashAdapter",
    "CommandResult",
    "ShellAdapter",
    "create_shell_adapter",
    "is_shell_builtin",
]
