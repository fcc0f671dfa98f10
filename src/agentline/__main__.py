"""CLI entry point for agentline."""

from __future__ import annotations

from agentline.cli import cli

if __name__ == "__main__":
    cli()
