"""Unit tests for stream-json wire models."""

from __future__ import annotations

import json

import pytest

from agentline.messages import InputMessage, ResultMessage, SessionSummary, StreamMessage
from agentline.transport import encode_line

pytestmark = pytest.mark.unit


def test_input_message_wire_shape():
    line = encode_line(InputMessage.from_prompt('say "hi"\nplease'))

    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    assert json.loads(line) == {
        "type": "user",
        "message": {"role": "user", "content": 'say "hi"\nplease'},
    }


def test_stream_message_keeps_unknown_fields():
    message = StreamMessage.model_validate({"type": "system", "subtype": "init", "cwd": "/x"})

    assert message.type == "system"
    assert message.model_extra == {"cwd": "/x"}


class TestResultMessage:
    def test_success_with_payload_is_terminal(self):
        message = ResultMessage.model_validate(
            {"type": "result", "subtype": "success", "structured_output": {"a": 1}}
        )

        assert message.is_result
        assert message.has_payload
        assert message.is_terminal
        assert message.payload_json() == '{"a":1}'

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "result", "subtype": "success"},
            {"type": "result", "subtype": "success", "structured_output": None},
            {"type": "result", "subtype": "error_during_execution", "structured_output": 1},
            {"type": "assistant", "subtype": "success", "structured_output": 1},
        ],
    )
    def test_not_terminal(self, data: dict):
        assert not ResultMessage.model_validate(data).is_terminal

    def test_summary_omits_missing_fields(self):
        message = ResultMessage.model_validate(
            {
                "type": "result",
                "subtype": "success",
                "session_id": "abc",
                "duration_ms": 1200,
                "structured_output": [],
            }
        )

        assert message.summary() == {"subtype": "success", "session_id": "abc", "duration_ms": 1200}


def test_session_summary_rejects_negative_payload_size():
    with pytest.raises(ValueError):
        SessionSummary(payload_chars=-1)
