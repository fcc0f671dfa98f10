"""``agentline respond``: one-shot prompt to structured output."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from pydantic import ValidationError
from rich.console import Console

from agentline.config import (
    FileSystemPrompt,
    SessionConfig,
    TextSystemPrompt,
    load_config,
)
from agentline.debug_log import LoggingSink, setup_debug_logging
from agentline.errors import AgentLineError
from agentline.session import open_session

if TYPE_CHECKING:
    from agentline.debug_log import LogSink


def _read_prompt(prompt: str | None, file_path: Path | None) -> str:
    if file_path is not None:
        return file_path.read_text(encoding="utf-8").strip()
    if prompt is not None:
        return prompt
    if not sys.stdin.isatty():
        return click.get_text_stream("stdin").read().strip()
    raise click.UsageError("Provide a PROMPT argument, --file, or pipe the prompt on stdin")


def _build_config(
    config_path: Path | None,
    *,
    working_directory: Path | None,
    model: str | None,
    system_prompt: str | None,
    system_prompt_file: Path | None,
    schema_path: Path | None,
    timeout: float | None,
) -> SessionConfig:
    if system_prompt is not None and system_prompt_file is not None:
        raise click.UsageError("--system-prompt and --system-prompt-file are mutually exclusive")

    overrides: dict[str, Any] = {
        "working_directory": working_directory,
        "model": model,
        "response_timeout": timeout,
    }
    if system_prompt is not None:
        overrides["system_prompt"] = TextSystemPrompt(text=system_prompt)
    elif system_prompt_file is not None:
        overrides["system_prompt"] = FileSystemPrompt(path=system_prompt_file)
    if schema_path is not None:
        overrides["output_schema"] = schema_path.read_text(encoding="utf-8")

    try:
        if config_path is not None:
            return load_config(config_path, **overrides)
        given = {key: value for key, value in overrides.items() if value is not None}
        return SessionConfig(**given)
    except ValidationError as e:
        raise click.UsageError(f"Invalid session configuration:\n{e}") from e


async def _respond(config: SessionConfig, prompt: str, sink: LogSink | None) -> str:
    async with open_session(config, sink=sink) as session:
        return await session.respond_raw(prompt)


@click.command()
@click.argument("prompt", required=False, default=None)
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    help="Read prompt from a file (supports multiline content)",
)
@click.option(
    "-s",
    "--schema",
    "schema_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    help="JSON schema file the structured output must follow",
)
@click.option("-m", "--model", default=None, help="Model alias or full model name")
@click.option("--system-prompt", default=None, help="Replace the default system prompt")
@click.option(
    "--system-prompt-file",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    help="Replace the default system prompt with a file's contents",
)
@click.option(
    "--cwd",
    "working_directory",
    type=click.Path(exists=True, file_okay=False, resolve_path=True, path_type=Path),
    default=None,
    help="Working directory for the agent (default: current directory)",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    help="TOML file with a [session] table",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Give up after this many seconds without a result",
)
@click.option("-v", "--verbose", is_flag=True, help="Log the session transcript to stderr")
def respond(
    prompt: str | None,
    file_path: Path | None,
    schema_path: Path | None,
    model: str | None,
    system_prompt: str | None,
    system_prompt_file: Path | None,
    working_directory: Path | None,
    config_path: Path | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Send one prompt and print the structured output as canonical JSON.

    \b
    Examples:
        agentline respond "list the modules in this repo" --schema modules.json
        agentline respond -f task.md --cwd ~/src/project -m sonnet
        echo "summarize README.md" | agentline respond -c agentline.toml
    """
    text = _read_prompt(prompt, file_path)
    config = _build_config(
        config_path,
        working_directory=working_directory,
        model=model,
        system_prompt=system_prompt,
        system_prompt_file=system_prompt_file,
        schema_path=schema_path,
        timeout=timeout,
    )

    setup_debug_logging(verbose)
    sink = LoggingSink() if verbose else None
    console = Console(stderr=True)

    with console.status("[cyan]Waiting for agent...", spinner="dots"):
        try:
            payload = asyncio.run(_respond(config, text, sink))
        except AgentLineError as e:
            console.print(str(e), style="red", highlight=False, markup=False, soft_wrap=True)
            raise click.exceptions.Exit(1) from e

    click.echo(payload)
