"""Executable discovery, argument list and environment for the agent CLI."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from agentline.config import DEFAULT_EXECUTABLE_NAME, FileSystemPrompt, TextSystemPrompt
from agentline.errors import ExecutableNotFound

if TYPE_CHECKING:
    from collections.abc import Mapping

    from agentline.config import SessionConfig

EXECUTABLE_ENV = "AGENTLINE_EXECUTABLE"

# --print enables non-interactive mode, which --input-format/--output-format require;
# --verbose is mandatory for stream-json output under --print.
BASE_ARGUMENTS: tuple[str, ...] = (
    "--print",
    "--verbose",
    "--output-format",
    "stream-json",
    "--input-format",
    "stream-json",
    "--dangerously-skip-permissions",
    "--setting-sources",
    "project",
)


def common_binary_paths(home: Path | None = None) -> list[str]:
    """Directories where the CLI is commonly installed, in search order.

    Also prepended to the child's ``PATH`` since GUI-launched parents often do
    not inherit the user's shell ``PATH``.
    """
    home_dir = home if home is not None else Path.home()

    paths = [
        f"{home_dir}/.local/bin",
        "/opt/homebrew/bin",
        "/usr/local/bin",
        f"{home_dir}/.volta/bin",
        f"{home_dir}/.fnm/aliases/default/bin",
        f"{home_dir}/.npm-global/bin",
        f"{home_dir}/.yarn/bin",
        "/usr/bin",
        "/bin",
    ]

    nvm_dir = home_dir / ".nvm" / "versions" / "node"
    try:
        node_versions = sorted(entry.name for entry in nvm_dir.iterdir())
    except OSError:
        node_versions = []
    for version in reversed(node_versions):
        paths.append(f"{nvm_dir}/{version}/bin")

    return paths


def candidate_executables(
    name: str = DEFAULT_EXECUTABLE_NAME,
    home: Path | None = None,
) -> list[str]:
    return [f"{directory}/{name}" for directory in common_binary_paths(home)]


def _is_executable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_executable(
    name: str = DEFAULT_EXECUTABLE_NAME,
    *,
    override: str | Path | None = None,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve the CLI executable.

    An explicit *override* (or the ``AGENTLINE_EXECUTABLE`` variable) is used
    as-is; otherwise the candidate directories are searched in order.

    Raises:
        ExecutableNotFound: With every path that was checked.
    """
    env = os.environ if environ is None else environ
    explicit = override if override is not None else env.get(EXECUTABLE_ENV)
    if explicit:
        explicit_path = str(Path(explicit).expanduser())
        if _is_executable_file(explicit_path):
            return explicit_path
        raise ExecutableNotFound([explicit_path])

    searched = candidate_executables(name, home)
    for path in searched:
        if _is_executable_file(path):
            return path
    raise ExecutableNotFound(searched)


def build_arguments(config: SessionConfig) -> list[str]:
    """Build the CLI argument list (excluding the executable)."""
    args = list(BASE_ARGUMENTS)

    prompt = config.system_prompt
    if isinstance(prompt, TextSystemPrompt):
        args += ["--system-prompt", prompt.text]
    elif isinstance(prompt, FileSystemPrompt):
        args += ["--system-prompt-file", str(prompt.path)]

    if config.model:
        args += ["--model", config.model]

    if config.output_schema:
        args += ["--json-schema", config.output_schema]

    args += config.extra_arguments
    return args


def build_environment(
    config: SessionConfig,
    base: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> dict[str, str]:
    """Build the child environment from *base* (default: ``os.environ``)."""
    env = dict(os.environ if base is None else base)
    env.update(config.environment)
    env["PWD"] = str(config.working_directory)

    # Background tasks must not outlive the exchange.
    env["CLAUDE_CODE_DISABLE_BACKGROUND_TASKS"] = "1"

    existing_path = env.get("PATH", "")
    env["PATH"] = os.pathsep.join([*common_binary_paths(home), existing_path])
    return env


__all__ = [
    "BASE_ARGUMENTS",
    "EXECUTABLE_ENV",
    "build_arguments",
    "build_environment",
    "candidate_executables",
    "common_binary_paths",
    "find_executable",
]
