"""Pytest fixtures for agentline tests."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from agentline.debug_log import RingBufferSink
from agentline.transport import SubprocessTransport

if TYPE_CHECKING:
    from collections.abc import Callable

FAKE_AGENT = Path(__file__).parent / "helpers" / "fake_agent.py"

settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture(autouse=True)
def _no_executable_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's AGENTLINE_EXECUTABLE from leaking into tests."""
    monkeypatch.delenv("AGENTLINE_EXECUTABLE", raising=False)


@pytest.fixture
def ring_sink() -> RingBufferSink:
    return RingBufferSink()


@pytest.fixture
def fake_agent_transport(
    tmp_path: Path, ring_sink: RingBufferSink
) -> Callable[..., SubprocessTransport]:
    """Factory for a transport running ``tests/helpers/fake_agent.py``."""

    def make(mode: str = "echo", **env: str) -> SubprocessTransport:
        environment = {**os.environ, "FAKE_AGENT_MODE": mode, **env}
        return SubprocessTransport(
            sys.executable,
            [str(FAKE_AGENT)],
            working_directory=tmp_path,
            environment=environment,
            sink=ring_sink,
            shutdown_timeout=2.0,
        )

    return make


@pytest.fixture
def fake_agent_executable(tmp_path: Path) -> Path:
    """An executable wrapper that launches the fake agent like a real CLI."""
    if sys.platform == "win32":
        pytest.skip("shell wrapper requires a POSIX platform")
    wrapper = tmp_path / "bin" / "claude"
    wrapper.parent.mkdir()
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_AGENT}" "$@"\n')
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper
