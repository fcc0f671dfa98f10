"""Session configuration."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

from agentline.limits import MAX_BUFFER_SIZE, SHUTDOWN_TIMEOUT, TEARDOWN_TIMEOUT

DEFAULT_EXECUTABLE_NAME = "claude"


class TextSystemPrompt(BaseModel):
    """System prompt passed inline (``--system-prompt``)."""

    type: Literal["text"] = "text"
    text: str


class FileSystemPrompt(BaseModel):
    """System prompt read from a file by the CLI (``--system-prompt-file``)."""

    type: Literal["file"] = "file"
    path: Path


SystemPromptSource = Annotated[
    TextSystemPrompt | FileSystemPrompt,
    Field(discriminator="type"),
]


class SessionConfig(BaseModel):
    """Everything needed to spawn and drive one agent CLI session."""

    working_directory: Path = Field(
        default_factory=Path.cwd,
        description="Directory the agent operates in (inherits its project settings)",
    )
    model: str | None = Field(
        default=None, description="Model alias or full model name (None = CLI default)"
    )
    system_prompt: SystemPromptSource | None = Field(
        default=None, description="Replaces the CLI's default system prompt entirely"
    )
    output_schema: str | None = Field(
        default=None, description="JSON schema for the structured output, as a JSON string"
    )
    executable: Path | None = Field(
        default=None, description="Explicit CLI path; skips candidate directory search"
    )
    executable_name: str = Field(default=DEFAULT_EXECUTABLE_NAME)
    extra_arguments: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for the CLI process"
    )
    shutdown_timeout: float = Field(
        default=SHUTDOWN_TIMEOUT,
        gt=0,
        description="Seconds to wait for the process to exit after terminate before killing",
    )
    teardown_timeout: float = Field(
        default=TEARDOWN_TIMEOUT,
        gt=0,
        description="Bound on session teardown; teardown proceeds regardless when exceeded",
    )
    response_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Optional bound on a single respond() call (None = wait indefinitely)",
    )
    max_buffer_size: int = Field(default=MAX_BUFFER_SIZE, gt=0)

    @field_validator("working_directory", "executable", mode="after")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser()

    @field_validator("output_schema", mode="before")
    @classmethod
    def _schema_to_string(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return json.dumps(value, separators=(",", ":"))
        return value

    @field_validator("output_schema", mode="after")
    @classmethod
    def _schema_is_json(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"output_schema is not valid JSON: {e}") from e
        return value


def load_config(path: Path, **overrides: Any) -> SessionConfig:
    """Load a ``[session]`` table from a TOML file.

    Relative ``working_directory`` and ``executable`` values are resolved
    against the config file's directory. Keyword overrides win over file
    values; ``None`` overrides are ignored.
    """
    with path.open("rb") as f:
        data = tomllib.load(f)

    section: dict[str, Any] = dict(data.get("session", {}))
    section.update({key: value for key, value in overrides.items() if value is not None})

    base = path.parent
    for key in ("working_directory", "executable"):
        raw = section.get(key)
        if raw is not None and not Path(raw).expanduser().is_absolute():
            section[key] = base / raw

    return SessionConfig.model_validate(section)


__all__ = [
    "DEFAULT_EXECUTABLE_NAME",
    "FileSystemPrompt",
    "SessionConfig",
    "SystemPromptSource",
    "TextSystemPrompt",
    "load_config",
]
