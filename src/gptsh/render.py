"""Terminal rendering: prompt, spinner, and light highlighting of model replies."""

from __future__ import annotations

import getpass
import itertools
import os
import re
import sys
import threading
from pathlib import Path
from typing import TextIO

_RST = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[31m"
_GREEN = "\033[32m"
_BLUE = "\033[34m"
_CYAN = "\033[36m"


def use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def home_relative(path: Path, home: Path | None = None) -> str:
    """Render a path with the home directory collapsed to ``~``."""
    home_text = str(home or Path.home())
    path_text = str(path)
    if path_text == home_text or path_text.startswith(home_text + os.sep):
        return "~" + path_text[len(home_text):]
    return path_text


def _username() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "Unknown User"


def shell_prompt(color: bool = False, cwd: Path | None = None) -> str:
    working_directory = home_relative(cwd or Path.cwd())
    user = _username()
    if not color:
        return f"[gptsh]:{user}:{working_directory}$ "
    return f"[{_RED}gptsh{_RST}]:{_GREEN}{user}{_RST}:{_BLUE}{working_directory}{_RST}$ "


def highlight(text: str) -> str:
    """Colour code fences and headers in markdown-ish model output."""
    out = []
    in_code_block = False
    for line in text.split("\n"):
        if re.match(r"^\s*(```|~~~)", line):
            in_code_block = not in_code_block
            out.append(f"{_DIM}{line}{_RST}")
            continue
        if in_code_block:
            out.append(f"  {_GREEN}{line}{_RST}")
            continue
        m = re.match(r"^(#{1,3})\s+(.*)", line)
        if m:
            out.append(f"{_BOLD}{_CYAN}{m.group(2)}{_RST}")
            continue
        out.append(line)
    return "\n".join(out)


class Spinner:
    """Spinner on a TTY stream while a blocking call runs."""

    FRAMES = "/-\\|"

    def __init__(self, stream: TextIO | None = None, interval: float = 0.1) -> None:
        self.stream = stream or sys.stderr
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> Spinner:
        if use_color(self.stream):
            self._thread = threading.Thread(target=self._spin, daemon=True)
            self._thread.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self.stream.write("\r \r")
            self.stream.flush()

    def _spin(self) -> None:
        for frame in itertools.cycle(self.FRAMES):
            if self._stop.is_set():
                break
            self.stream.write(f"\r{frame}")
            self.stream.flush()
            self._stop.wait(self.interval)
