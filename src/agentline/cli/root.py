"""Root CLI command registration."""

from __future__ import annotations

import click

from agentline.cli.locate import locate
from agentline.cli.respond import respond
from agentline.version import get_agentline_version


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Drive an agent CLI over stream-json and get structured output back."""
    if version:
        click.echo(f"agentline {get_agentline_version()}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(respond)
cli.add_command(locate)
