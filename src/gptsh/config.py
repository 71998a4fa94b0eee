"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

CONFIG_FILE_NAME = ".gptsh_config"

COMMAND_SYSTEM_PROMPT = " ".join(
    [
        "You are gptsh, an assistant that translates natural-language requests into bash commands.",
        "Reply with exactly one fenced code block tagged bash containing the command and nothing else.",
        "Prefer safe, non-destructive commands unless the request explicitly asks otherwise.",
        (
            "Earlier messages may report whether a previous command was executed, skipped,"
            " or failed, with its exit status and output; use them to resolve follow-up requests."
        ),
    ]
)

CHAT_SYSTEM_PROMPT = " ".join(
    [
        "You are a helpful assistant chatting in a terminal,",
        "use proper formatting so that your answers are easy to read. Address the user as pal or buddy.",
        (
            "When the user asks you to do something on their machine, include the bash command"
            " in a fenced code block tagged bash; it runs only after the user confirms it."
        ),
        "Put at most one such block in a reply and use untagged blocks for examples that must not run.",
    ]
)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, missing_key: str = "") -> None:
        super().__init__(message)
        self.missing_key = missing_key


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from ``.env``, config files and environment variables."""

    api_key: str | None
    model: str
    api_url: str
    timeout: float
    context: str | None
    max_history: int
    default_yes: bool
    confirm_retries: int
    output_limit: int
    shell: str
    working_directory: str | None
    log_dir: str | None
    log_level: str | None
    command_timeout: float | None = None

    @classmethod
    def from_env(cls) -> AppConfig:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        file_config = _load_preferred_file_config()

        return cls(
            api_key=(
                os.getenv("GPTSH_API_KEY")
                or os.getenv("OPENAI_API_KEY")
                or _to_optional_string(file_config.get("api_key"))
            ),
            model=(
                os.getenv("GPTSH_MODEL")
                or _to_optional_string(file_config.get("model"))
                or "gpt-4o-mini"
            ),
            api_url=(
                os.getenv("GPTSH_API_URL")
                or _to_optional_string(file_config.get("api_url"))
                or "https://api.openai.com/v1/chat/completions"
            ),
            timeout=_to_positive_float(
                os.getenv("GPTSH_TIMEOUT") or file_config.get("timeout"),
                default=30.0,
            ),
            context=(
                os.getenv("GPTSH_CONTEXT")
                or _to_optional_string(file_config.get("context"))
            ),
            max_history=_to_positive_int(
                os.getenv("GPTSH_MAX_HISTORY") or file_config.get("max_history"),
                default=40,
            ),
            default_yes=_to_bool(
                os.getenv("GPTSH_DEFAULT_YES"),
                default=_file_bool(file_config.get("default_yes"), default=True),
            ),
            confirm_retries=_to_positive_int(
                os.getenv("GPTSH_CONFIRM_RETRIES") or file_config.get("confirm_retries"),
                default=3,
            ),
            output_limit=_to_positive_int(
                os.getenv("GPTSH_OUTPUT_LIMIT") or file_config.get("output_limit"),
                default=2000,
            ),
            shell=(
                os.getenv("GPTSH_SHELL")
                or _to_optional_string(file_config.get("shell"))
                or "bash"
            ),
            working_directory=(
                os.getenv("GPTSH_CWD")
                or _to_optional_string(file_config.get("cwd"))
            ),
            log_dir=(
                os.getenv("GPTSH_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
            ),
            log_level=(
                os.getenv("GPTSH_LOG_LEVEL")
                or _to_optional_string(file_config.get("log_level"))
            ),
            command_timeout=_to_optional_positive_float(
                os.getenv("GPTSH_COMMAND_TIMEOUT") or file_config.get("command_timeout")
            ),
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                "Error: OPENAI_API_KEY not set in environment.",
                missing_key="OPENAI_API_KEY",
            )
        return self.api_key

    def system_prompt(self, base_prompt: str) -> str:
        """Append the user's configured context to a base system prompt."""
        if not self.context:
            return base_prompt
        return f"{base_prompt}\n\nAdditional context from the user:\n{self.context}"


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _file_bool(value: object, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _to_bool(value, default=default)
    return default


def _load_file_config(path_value: str | Path) -> dict[str, object]:
    path = Path(path_value).expanduser()
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("GPTSH_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    home_config = _load_file_config(Path.home() / CONFIG_FILE_NAME)
    local_override = _load_file_config(CONFIG_FILE_NAME)
    return _merge_dicts(home_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_positive_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_optional_positive_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    parsed = _to_positive_float(value, default=0.0)
    return parsed or None
