"""Wire models for the stream-json protocol.

Outbound: one ``user`` message per line on stdin.
Inbound: newline-delimited events on stdout, discriminated by ``type``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from agentline.json_value import encode_value


class MessageContent(BaseModel):
    """Inner message with role and content."""

    role: Literal["user"] = "user"
    content: str


class InputMessage(BaseModel):
    """Message written to the agent's stdin.

    Serialized as ``{"type":"user","message":{"role":"user","content":"..."}}``.
    """

    type: Literal["user"] = "user"
    message: MessageContent

    @classmethod
    def from_prompt(cls, prompt: str) -> InputMessage:
        return cls(message=MessageContent(content=prompt))


class StreamMessage(BaseModel):
    """Any event on the agent's stdout; only ``type`` is required."""

    model_config = ConfigDict(extra="allow")

    type: str
    subtype: str | None = None


class ResultMessage(StreamMessage):
    """Final event of a turn, carrying the structured output."""

    result: JsonValue = None
    structured_output: JsonValue = None
    is_error: bool | None = None
    session_id: str | None = None
    total_cost_usd: float | None = None
    duration_ms: int | None = None
    num_turns: int | None = None

    @property
    def is_result(self) -> bool:
        return self.type == "result" and self.subtype == "success"

    @property
    def has_payload(self) -> bool:
        return self.structured_output is not None

    @property
    def is_terminal(self) -> bool:
        return self.is_result and self.has_payload

    def payload_json(self) -> str:
        """Canonical serialization of ``structured_output``."""
        return encode_value(self.structured_output)

    def summary(self) -> dict[str, Any]:
        return self.model_dump(
            include={"subtype", "session_id", "total_cost_usd", "duration_ms", "num_turns"},
            exclude_none=True,
        )


class SessionSummary(BaseModel):
    """Diagnostics for the last completed exchange."""

    session_id: str | None = None
    total_cost_usd: float | None = None
    duration_ms: int | None = None
    num_turns: int | None = None
    payload_chars: int = Field(default=0, ge=0)


__all__ = [
    "InputMessage",
    "MessageContent",
    "ResultMessage",
    "SessionSummary",
    "StreamMessage",
]
