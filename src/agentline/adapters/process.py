"""Subprocess spawn and teardown adapter for the agent CLI."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


def _normalize_cwd(cwd: str | Path | None) -> str | None:
    if cwd is None:
        return None
    return str(cwd)


def _normalize_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    return dict(env)


async def spawn_exec(
    executable: str,
    args: Sequence[str] = (),
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> asyncio.subprocess.Process:
    """Spawn *executable* with all three standard streams piped."""
    return await asyncio.create_subprocess_exec(
        executable,
        *args,
        cwd=_normalize_cwd(cwd),
        env=_normalize_env(env),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


def child_pids(pid: int) -> list[int]:
    """Return descendant PIDs of *pid* (empty when it is gone)."""
    try:
        return [child.pid for child in psutil.Process(pid).children(recursive=True)]
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def kill_pids(pids: Sequence[int]) -> None:
    for pid in pids:
        with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            psutil.Process(pid).kill()


async def terminate_process(
    process: asyncio.subprocess.Process,
    *,
    timeout: float,
) -> int | None:
    """Terminate *process*, escalating to kill after *timeout* seconds.

    Children spawned by the CLI (tool runners, MCP servers) are killed along
    with it. Returns the exit code when known.
    """
    if process.returncode is not None:
        return process.returncode

    descendants = child_pids(process.pid)
    with contextlib.suppress(ProcessLookupError):
        process.terminate()

    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except TimeoutError:
        logger.warning("Process %s ignored SIGTERM for %.1fs; killing", process.pid, timeout)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(ProcessLookupError):
            await process.wait()

    kill_pids(descendants)
    return process.returncode


__all__ = [
    "child_pids",
    "kill_pids",
    "spawn_exec",
    "terminate_process",
]
