"""Command-line interface for agentline."""

from agentline.cli.root import cli

__all__ = ["cli"]
