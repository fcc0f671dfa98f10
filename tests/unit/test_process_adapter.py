"""Unit tests for the process spawn/teardown adapter."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from agentline.adapters import process as process_adapter
from agentline.adapters.process import child_pids, spawn_exec, terminate_process

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


async def test_spawn_exec_pipes_all_streams(tmp_path: Path):
    process = await spawn_exec(
        sys.executable,
        ["-c", "import os, sys; print(os.getcwd()); print(os.environ['MARK'])"],
        cwd=tmp_path,
        env={"MARK": "m-1"},
    )

    stdout, _ = await process.communicate()

    assert process.returncode == 0
    assert stdout.decode().split() == [str(tmp_path.resolve()), "m-1"]


async def test_terminate_process_returns_exit_code_of_finished_process():
    process = MagicMock(spec=asyncio.subprocess.Process)
    process.returncode = 7

    assert await terminate_process(process, timeout=0.1) == 7
    process.terminate.assert_not_called()


async def test_terminate_process_stops_a_running_child():
    process = await spawn_exec(sys.executable, ["-c", "import time; time.sleep(60)"])

    code = await terminate_process(process, timeout=5.0)

    assert code is not None
    assert code != 0


async def test_terminate_process_escalates_to_kill(monkeypatch: pytest.MonkeyPatch):
    if sys.platform == "win32":
        pytest.skip("SIGTERM handling is POSIX-only")
    script = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)\n"
    )
    process = await spawn_exec(sys.executable, ["-c", script])
    assert process.stdout is not None
    await process.stdout.readline()
    killed: list[list[int]] = []
    monkeypatch.setattr(process_adapter, "kill_pids", killed.append)

    code = await terminate_process(process, timeout=0.2)

    assert code == -9
    assert killed == [[]]


def test_child_pids_of_missing_process_is_empty():
    assert child_pids(2**22 + 12345) == []
