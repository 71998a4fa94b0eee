"""Command-line interface for gptsh."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import cast

from .agent.conversation import ConversationState
from .agent.gate import CHAT_ABORT_INPUTS, SHELL_ABORT_INPUTS, ConfirmationGate
from .agent.loop import CompletionProvider, ExecutionCoordinator
from .agent.models import (
    EXIT_FAILURE,
    CompletionResult,
    ExecutionStatus,
    NoCommand,
    RoundResult,
    SessionDecision,
    Turn,
)
from .agent.session import CHAT_EXIT_WORDS, SHELL_EXIT_WORDS, run_interactive, run_single_shot
from .config import CHAT_SYSTEM_PROMPT, COMMAND_SYSTEM_PROMPT, AppConfig, ConfigurationError
from .llm.client import LLMClient
from .render import Spinner, highlight, shell_prompt, use_color
from .shell import create_shell_adapter

LOGGER = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


class CLIArgs(argparse.Namespace):
    shell: bool
    chat: bool
    no_execute: bool
    prompt: list[str]


class SpinningClient:
    """Shows a spinner while the wrapped provider call is in flight."""

    def __init__(self, client: CompletionProvider) -> None:
        self.client = client
        self.model = getattr(client, "model", None)

    def complete(self, turns: Sequence[Turn]) -> CompletionResult:
        with Spinner():
            return self.client.complete(turns)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gptsh",
        description="Translate natural-language prompts into shell commands and run them on confirmation.",
    )
    parser.add_argument("--shell", action="store_true", help="Run in continuous shell mode")
    parser.add_argument("--chat", action="store_true", help="Run in chat mode")
    parser.add_argument(
        "--no-execute",
        dest="no_execute",
        action="store_true",
        help="Output the generated command without executing it",
    )
    parser.add_argument("prompt", nargs="*", help="Prompt for single-shot mode")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args(argv))
    config = AppConfig.from_env()
    _configure_logging(config.log_level)

    prompt = " ".join(args.prompt).strip()
    if not (args.chat or args.shell) and not prompt:
        print("Error: No prompt provided.\n", file=sys.stderr)
        parser.print_help(sys.stderr)
        return EXIT_FAILURE

    try:
        api_key = config.require_api_key()
    except ConfigurationError as exc:
        print(exc, file=sys.stderr)
        return EXIT_FAILURE

    working_directory: str | None = None
    if config.working_directory is not None:
        resolved_working_directory = Path(config.working_directory).expanduser().resolve()
        if not resolved_working_directory.is_dir():
            print(f"Invalid configured cwd directory: {config.working_directory}", file=sys.stderr)
            return EXIT_FAILURE
        working_directory = str(resolved_working_directory)

    try:
        adapter = create_shell_adapter(config.shell)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    color = use_color(sys.stdout)
    client = LLMClient(
        api_key=api_key,
        model=config.model,
        api_url=config.api_url,
        timeout=config.timeout,
    )
    gate = ConfirmationGate(
        read_input=input,
        write_output=print,
        abort_inputs=CHAT_ABORT_INPUTS if args.chat else SHELL_ABORT_INPUTS,
        default_yes=config.default_yes,
        no_execute=args.no_execute,
        max_retries=config.confirm_retries,
    )
    coordinator = ExecutionCoordinator(
        client=SpinningClient(client),
        shell=adapter,
        gate=gate,
        working_directory=working_directory,
        output_limit=config.output_limit,
        command_timeout=config.command_timeout,
        log_dir=config.log_dir,
        on_response=(lambda text: _print_chat_reply(text, color=color)) if args.chat else None,
    )
    state = ConversationState(
        max_turns=config.max_history,
        system_prompt=config.system_prompt(CHAT_SYSTEM_PROMPT if args.chat else COMMAND_SYSTEM_PROMPT),
    )
    LOGGER.debug(
        "session_starting",
        extra={
            "mode": "chat" if args.chat else "shell" if args.shell else "single",
            "model": config.model,
            "shell": adapter.name,
            "no_execute": args.no_execute,
        },
    )

    try:
        if args.chat:
            print("Entering chat mode. Type 'exit' or 'quit' to end the session.")
            code = run_interactive(
                coordinator,
                state,
                read_prompt=lambda: input("You: "),
                exit_words=CHAT_EXIT_WORDS,
                on_round=lambda result: _report_round(result, chat=True),
            )
            print("See you later pal.")
            return code
        if args.shell:
            print("Entering continuous shell mode. Type 'exit' to quit.")
            return run_interactive(
                coordinator,
                state,
                read_prompt=lambda: input(shell_prompt(color=color)),
                exit_words=SHELL_EXIT_WORDS,
                on_round=_report_round,
            )
        return run_single_shot(coordinator, state, prompt, on_round=_report_round)
    except KeyboardInterrupt:
        print()
        return EXIT_INTERRUPTED


def _configure_logging(level: str | None) -> None:
    if not level:
        return
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def _print_chat_reply(text: str, *, color: bool) -> None:
    reply = text.strip()
    print(f"\ngptsh: {highlight(reply) if color else reply}\n")


def _report_round(result: RoundResult, chat: bool = False) -> None:
    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        if not chat:
            print("Tip: Check your internet connection and API key, then try again.", file=sys.stderr)
        return

    if isinstance(result.candidate, NoCommand):
        if not chat and result.response is not None:
            print("The model did not return a bash command:")
            print(result.response.strip())
        return

    if result.decision is SessionDecision.SKIP:
        print("Command not executed.")
        return

    outcome = result.outcome
    if outcome is None:
        return
    if outcome.status is ExecutionStatus.FAILED_TO_START:
        print(outcome.reason, file=sys.stderr)
        return
    if outcome.stdout:
        print(outcome.stdout, end="" if outcome.stdout.endswith("\n") else "\n")
    if outcome.stderr:
        print(outcome.stderr, end="" if outcome.stderr.endswith("\n") else "\n", file=sys.stderr)
    if outcome.status is ExecutionStatus.FAILED_NON_ZERO:
        print(f"Command exited with status {outcome.exit_code}.", file=sys.stderr)


if __name__ == "__main__":
    raise SystemExit(main())
