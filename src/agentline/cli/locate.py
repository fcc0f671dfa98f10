"""``agentline locate``: show which agent CLI would be launched."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from agentline.config import DEFAULT_EXECUTABLE_NAME
from agentline.errors import ExecutableNotFound
from agentline.launch import find_executable


@click.command()
@click.option(
    "-n",
    "--name",
    default=DEFAULT_EXECUTABLE_NAME,
    show_default=True,
    help="Executable name to search for",
)
@click.option(
    "--executable",
    type=click.Path(path_type=Path),
    default=None,
    help="Explicit executable path to check instead of searching",
)
def locate(name: str, executable: Path | None) -> None:
    """Print the resolved agent CLI path, or every path that was searched."""
    console = Console(stderr=True)
    try:
        path = find_executable(name, override=executable)
    except ExecutableNotFound as e:
        console.print(f"[red]{name} not found.[/] Searched:", highlight=False, soft_wrap=True)
        for searched in e.searched_paths:
            console.print(f"  {searched}", highlight=False, markup=False, soft_wrap=True)
        raise click.exceptions.Exit(1) from e

    click.echo(path)
