"""Locate the executable command inside a model response."""

from __future__ import annotations

import re
from collections.abc import Iterator

from gptsh.agent.models import Command, CommandCandidate, NoCommand

SHELL_LANGUAGES = frozenset({"sh", "bash", "shell"})

_FENCE_OPEN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^\n]*)$")
_FENCE_CLOSE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*$")


def extract_command(text: str) -> CommandCandidate:
    """Return the first non-empty fenced block tagged sh/bash/shell.

    Untagged fences, other languages and unterminated fences never produce a
    command; ambiguous responses resolve to ``NoCommand``.
    """
    for language, body in _iter_fenced_blocks(text):
        if language not in SHELL_LANGUAGES:
            continue
        stripped = body.strip()
        if stripped:
            return Command(stripped)
    return NoCommand()


def _iter_fenced_blocks(text: str) -> Iterator[tuple[str, str]]:
    lines = text.splitlines()
    index = 0
    while index < len(lines):
        opener = _FENCE_OPEN.match(lines[index])
        if opener is None:
            index += 1
            continue

        fence = opener.group("fence")
        info = opener.group("info").strip()
        if fence[0] == "`" and "`" in info:
            # backtick fences cannot carry backticks in the info string
            index += 1
            continue

        body: list[str] = []
        cursor = index + 1
        closed = False
        while cursor < len(lines):
            closer = _FENCE_CLOSE.match(lines[cursor])
            if (
                closer is not None
                and closer.group("fence")[0] == fence[0]
                and len(closer.group("fence")) >= len(fence)
            ):
                closed = True
                break
            body.append(lines[cursor])
            cursor += 1

        if not closed:
            return
        yield _language_of(info), "\n".join(body)
        index = cursor + 1


def _language_of(info: str) -> str:
    if not info:
        return ""
    first_word = info.split()[0]
    return first_word.lstrip("{.").rstrip("}").lower()
