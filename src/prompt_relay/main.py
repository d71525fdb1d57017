"""CLI entrypoint for prompt-relay."""

import json
import logging
from pathlib import Path

import rich_click as click

from prompt_relay import __version__
from prompt_relay.config import MAX_TIMEOUT_SECONDS, RelaySettings
from prompt_relay.orchestrator.controllers import (
    AskCommand,
    BatchCommand,
    CheckCommand,
    CommandResult,
    ProcessCommand,
    RelayCliController,
    StreamCommand,
)
from prompt_relay.orchestrator.validator import OUTPUT_FORMATS

click.rich_click.USE_MARKDOWN = True
RELAY_CONTROLLER = RelayCliController()
_BACKEND_CHOICE = click.Choice(["claude", "gemini"], case_sensitive=False)


def _parse_settings_json(ctx, param, value: str | None) -> dict | None:  # noqa: ARG001
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as error:
        raise click.BadParameter(f"invalid JSON: {error}") from error
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object")
    return parsed


def _request_options(*, include_partial_default: bool):
    """Attach the full set of request options to a command."""

    options = [
        click.option("--model", default=None, help="Model id; defaults per backend."),
        click.option("--system-prompt", default=None, help="System prompt text."),
        click.option(
            "--append-system-prompt",
            default=None,
            help="Text appended to the backend's default system prompt.",
        ),
        click.option(
            "--allowed-tool",
            "allowed_tools",
            multiple=True,
            help="Allowed tool name. Can be repeated.",
        ),
        click.option(
            "--disallowed-tool",
            "disallowed_tools",
            multiple=True,
            help="Disallowed tool name. Can be repeated.",
        ),
        click.option(
            "--dangerously-skip-permissions",
            "skip_permissions",
            is_flag=True,
            default=False,
            help="Skip backend permission checks.",
        ),
        click.option(
            "--settings",
            "settings_json",
            default=None,
            callback=_parse_settings_json,
            help="Backend settings as a JSON object.",
        ),
        click.option(
            "--mcp-config",
            "mcp_config",
            multiple=True,
            help="MCP server config path. Can be repeated.",
        ),
        click.option("--session-id", default=None, help="Session id to use."),
        click.option(
            "--continue-session",
            is_flag=True,
            default=False,
            help="Continue the most recent session.",
        ),
        click.option("--resume-session", default=None, help="Session id to resume."),
        click.option(
            "--include-partial-messages/--no-include-partial-messages",
            default=include_partial_default,
            show_default=True,
            help="Emit partial message events in stream-json mode.",
        ),
        click.option("--backend", type=_BACKEND_CHOICE, default=None, help="Backend to run."),
        click.option(
            "--no-fallback",
            "disable_fallback",
            is_flag=True,
            default=False,
            help="Do not retry on the other backend.",
        ),
        click.option(
            "--timeout-seconds",
            type=click.FloatRange(min=0, min_open=True, max=MAX_TIMEOUT_SECONDS),
            default=None,
            help="Wall-clock budget; defaults to PROMPT_RELAY_REQUEST_TIMEOUT_SECONDS.",
        ),
    ]

    def decorator(func):
        for option in reversed(options):
            func = option(func)
        return func

    return decorator


def _request_payload(prompt: str, output_format: str | None, **options) -> dict[str, object]:
    backend = options["backend"]
    return {
        "prompt": prompt,
        "outputFormat": output_format,
        "model": options["model"],
        "systemPrompt": options["system_prompt"],
        "appendSystemPrompt": options["append_system_prompt"],
        "allowedTools": list(options["allowed_tools"]) or None,
        "disallowedTools": list(options["disallowed_tools"]) or None,
        "dangerouslySkipPermissions": options["skip_permissions"],
        "settings": options["settings_json"],
        "mcpConfig": list(options["mcp_config"]) or None,
        "sessionId": options["session_id"],
        "continueSession": options["continue_session"],
        "resumeSession": options["resume_session"],
        "includePartialMessages": options["include_partial_messages"],
        "cli": backend.lower() if backend is not None else None,
        "disableFallback": options["disable_fallback"],
        "timeout": options["timeout_seconds"],
    }


@click.group()
@click.version_option(version=__version__, prog_name="prompt-relay")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level for stderr logging; defaults to PROMPT_RELAY_LOG_LEVEL.",
)
def prompt_relay(log_level: str | None) -> None:
    """Run prompts through the claude or gemini CLI with automatic fallback."""

    try:
        settings = RelaySettings.from_env()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@prompt_relay.command("info")
def info() -> None:
    """Show configuration and backend capabilities."""

    _emit(RELAY_CONTROLLER.info())


@prompt_relay.command("ask")
@click.argument("prompt")
@click.option(
    "--output-format",
    type=click.Choice(OUTPUT_FORMATS),
    default="json",
    show_default=True,
    help="Backend output format.",
)
@click.option("--model", default=None, help="Model id; defaults per backend.")
@click.option("--system-prompt", default=None, help="System prompt text.")
@click.option("--backend", type=_BACKEND_CHOICE, default=None, help="Backend to run.")
@click.option(
    "--no-fallback",
    "disable_fallback",
    is_flag=True,
    default=False,
    help="Do not retry on the other backend.",
)
def ask(  # noqa: PLR0913
    prompt: str,
    output_format: str,
    model: str | None,
    system_prompt: str | None,
    backend: str | None,
    disable_fallback: bool,
) -> None:
    """Run one prompt and print the decoded output."""

    _emit(
        RELAY_CONTROLLER.ask(
            AskCommand(
                prompt=prompt,
                output_format=output_format,
                model=model,
                system_prompt=system_prompt,
                backend=backend.lower() if backend is not None else None,
                disable_fallback=disable_fallback,
            ),
        ),
    )


@prompt_relay.command("process")
@click.argument("prompt")
@click.option(
    "--output-format",
    type=click.Choice(OUTPUT_FORMATS),
    default="json",
    show_default=True,
    help="Backend output format.",
)
@_request_options(include_partial_default=False)
def process(prompt: str, output_format: str, **options) -> None:
    """Run one prompt with every request option and print output with metadata."""

    _emit(
        RELAY_CONTROLLER.process(
            ProcessCommand(payload=_request_payload(prompt, output_format, **options)),
        ),
    )


@prompt_relay.command("stream")
@click.argument("prompt")
@_request_options(include_partial_default=True)
def stream(prompt: str, **options) -> None:
    """Relay backend stream-json output to stdout as it arrives."""

    result = RELAY_CONTROLLER.stream(
        StreamCommand(
            payload=_request_payload(prompt, "stream-json", **options),
            output=click.get_binary_stream("stdout"),
        ),
    )
    _emit(result)


@prompt_relay.command("batch")
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help='JSON request body: {"prompts": [...], ...common options}.',
)
def batch(file_path: Path) -> None:
    """Run up to 10 prompts sequentially with isolated failures."""

    _emit(RELAY_CONTROLLER.batch(BatchCommand(file_path=file_path)))


@prompt_relay.command("check")
@click.option("--backend", type=_BACKEND_CHOICE, default=None, help="Backend to check.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True, max=MAX_TIMEOUT_SECONDS),
    default=None,
    help="Timeout for the synthetic prompt.",
)
def check(backend: str | None, timeout_seconds: float | None) -> None:
    """Check that one backend CLI is installed and answers a prompt."""

    _emit(
        RELAY_CONTROLLER.check(
            CheckCommand(
                backend=backend.lower() if backend is not None else None,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )


def _emit(result: CommandResult) -> None:
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.exceptions.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    prompt_relay()
