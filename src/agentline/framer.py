"""Incremental JSONL framing of agent stdout.

Raw stdout chunks are buffered until complete lines are available. Each
complete line is offered to an optional callback and checked for the terminal
``result`` event; the first terminal event's structured output is returned as
canonical JSON.

Scanning resumes where the previous call stopped, so a single long line that
arrives across many small chunks is scanned once in total rather than once
per chunk.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from agentline.errors import ParseError
from agentline.json_value import decode_value
from agentline.limits import MAX_BUFFER_SIZE
from agentline.messages import ResultMessage

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

NEWLINE = b"\n"
# Tab plus every Unicode space separator (category Zs).
_HORIZONTAL_WHITESPACE = (
    "\t\u0020\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006"
    "\u2007\u2008\u2009\u200a\u202f\u205f\u3000"
)


def _decode_line(raw: bytes) -> str:
    """Decode a raw line; undecodable lines come back empty."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return ""
    return text.strip(_HORIZONTAL_WHITESPACE)


class StreamFramer:
    """Turns a byte stream into JSONL lines and finds the terminal result."""

    def __init__(self, max_buffer_size: int = MAX_BUFFER_SIZE) -> None:
        self._max_buffer_size = max_buffer_size
        self._buffer = bytearray()
        self._search_offset = 0
        self._lock = threading.Lock()
        self.last_result: ResultMessage | None = None
        self.terminal_without_payload = False

    @property
    def max_buffer_size(self) -> int:
        return self._max_buffer_size

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    @property
    def search_offset(self) -> int:
        return self._search_offset

    def reset(self) -> None:
        """Drop buffered bytes and per-exchange diagnostics."""
        with self._lock:
            self._clear_buffer()
            self.last_result = None
            self.terminal_without_payload = False

    def feed(self, chunk: bytes, on_line: Callable[[str], None] | None = None) -> str | None:
        """Feed a stdout chunk, emitting complete lines via *on_line*.

        Returns:
            The canonical structured output once the terminal result event is
            framed, otherwise ``None``. Bytes after the terminal line stay
            buffered for the next call.

        Raises:
            ParseError: If the buffer grows past ``max_buffer_size``. The
                buffer is cleared first, so the framer stays usable.
        """
        with self._lock:
            return self._feed(chunk, on_line)

    def _clear_buffer(self) -> None:
        self._buffer = bytearray()
        self._search_offset = 0

    def _feed(self, chunk: bytes, on_line: Callable[[str], None] | None) -> str | None:
        self._buffer += chunk

        if len(self._buffer) > self._max_buffer_size:
            buffered = len(self._buffer)
            self._clear_buffer()
            raise ParseError(
                f"Buffer exceeded {self._max_buffer_size} bytes",
                BufferError(f"{buffered} bytes buffered without a newline"),
            )

        while self._search_offset < len(self._buffer):
            index = self._buffer.find(NEWLINE, self._search_offset)
            if index < 0:
                break

            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            self._search_offset = 0

            line = _decode_line(raw)
            if not line:
                continue

            if on_line is not None:
                on_line(line)

            payload = self._try_parse_result(line)
            if payload is not None:
                return payload

        self._search_offset = len(self._buffer)
        return None

    def _try_parse_result(self, line: str) -> str | None:
        try:
            data = decode_value(line)
        except (ValueError, RecursionError):
            return None

        if not isinstance(data, dict) or data.get("type") != "result":
            return None

        try:
            message = ResultMessage.model_validate(data)
        except ValueError as e:
            logger.debug("Ignoring malformed result event: %s", e)
            return None

        self.last_result = message
        if not message.is_result:
            return None
        if not message.has_payload:
            # Keep scanning; a later result line may still carry the payload.
            self.terminal_without_payload = True
            logger.warning("Result event carried no structured_output; still waiting")
            return None

        try:
            return message.payload_json()
        except (TypeError, RecursionError) as e:
            logger.debug("Ignoring unrepresentable structured_output: %s", e)
            return None


__all__ = ["NEWLINE", "StreamFramer"]
