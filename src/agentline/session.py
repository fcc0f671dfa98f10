"""Session orchestration: one prompt in, one structured result out."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import warnings
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, get_origin

from pydantic import TypeAdapter, ValidationError

from agentline.config import SessionConfig
from agentline.debug_log import LogLevel, emit
from agentline.errors import OutputDecodingFailed, ProcessExited, ResponseTimedOut
from agentline.framer import StreamFramer
from agentline.limits import TEARDOWN_TIMEOUT
from agentline.messages import InputMessage, SessionSummary
from agentline.transport import SubprocessTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from agentline.debug_log import LogSink

logger = logging.getLogger(__name__)

UNKNOWN_EXIT_CODE = -1


def _type_name(output_type: Any) -> str:
    if get_origin(output_type) is None and isinstance(output_type, type):
        return output_type.__name__
    return repr(output_type)


class Session:
    """A conversation with one agent CLI process.

    Exactly one ``respond()`` runs at a time; overlapping calls queue on an
    internal lock. ``close()`` (or leaving ``async with``) is required; the
    finalizer only kills a leaked process.
    """

    def __init__(
        self,
        transport: SubprocessTransport,
        *,
        sink: LogSink | None = None,
        framer: StreamFramer | None = None,
        response_timeout: float | None = None,
        teardown_timeout: float = TEARDOWN_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._sink = sink
        self._framer = framer or StreamFramer()
        self._response_timeout = response_timeout
        self._teardown_timeout = teardown_timeout
        self._lock = asyncio.Lock()
        self._closed = False
        self.last_summary: SessionSummary | None = None

    @classmethod
    async def open(
        cls,
        config: SessionConfig | str | Path | None = None,
        *,
        sink: LogSink | None = None,
        transport: SubprocessTransport | None = None,
        **overrides: Any,
    ) -> Session:
        """Spawn the CLI and connect.

        *config* may also be a bare working directory. Keyword overrides are
        applied on top of it (or the defaults).

        Raises:
            ExecutableNotFound, WorkingDirectoryNotFound, ProcessLaunchFailed
        """
        if isinstance(config, str | Path):
            overrides.setdefault("working_directory", config)
            config = None
        if config is None:
            config = SessionConfig(**overrides)
        elif overrides:
            config = SessionConfig.model_validate({**config.model_dump(), **overrides})

        if transport is None:
            transport = SubprocessTransport.from_config(config, sink=sink)

        session = cls(
            transport,
            sink=sink,
            framer=StreamFramer(config.max_buffer_size),
            response_timeout=config.response_timeout,
            teardown_timeout=config.teardown_timeout,
        )

        emit(sink, "Connecting to agent CLI...")
        try:
            await transport.connect()
        except BaseException:
            session._closed = True
            await transport.close()
            raise
        emit(sink, "Connected successfully")
        return session

    @property
    def transport(self) -> SubprocessTransport:
        return self._transport

    @property
    def framer(self) -> StreamFramer:
        return self._framer

    @property
    def closed(self) -> bool:
        return self._closed

    async def respond[T](
        self,
        prompt: str,
        output_type: type[T] = dict,
        *,
        timeout: float | None = None,
    ) -> T:
        """Send *prompt* and decode the structured result as *output_type*.

        *output_type* is anything pydantic can validate: a ``BaseModel``, a
        dataclass, a ``TypedDict``, ``dict``, ``list[int]``...

        After a ``ResponseTimedOut`` the agent may still be producing output
        for the abandoned prompt; close the session rather than reusing it.

        Raises:
            SessionNotReady: The transport is not running.
            ParseError: Buffered output exceeded the framer limit.
            OutputDecodingFailed: The payload does not fit *output_type*.
            ProcessExited: Output ended before a result event.
            ResponseTimedOut: *timeout* (or the configured one) elapsed.
        """
        payload = await self.respond_raw(prompt, timeout=timeout)
        return self._decode(payload, output_type)

    async def respond_raw(self, prompt: str, *, timeout: float | None = None) -> str:
        """Send *prompt* and return the canonical JSON of the structured result."""
        limit = timeout if timeout is not None else self._response_timeout
        async with self._lock:
            if limit is None:
                return await self._exchange(prompt)
            try:
                async with asyncio.timeout(limit):
                    return await self._exchange(prompt)
            except TimeoutError as e:
                emit(self._sink, f"No result within {limit:g}s", LogLevel.ERROR)
                raise ResponseTimedOut(limit) from e

    def _on_line(self, line: str) -> None:
        emit(self._sink, line, LogLevel.RECEIVED)

    async def _exchange(self, prompt: str) -> str:
        self._framer.terminal_without_payload = False

        emit(self._sink, f"Sending prompt ({len(prompt)} chars)", LogLevel.SENT)
        await self._transport.write(InputMessage.from_prompt(prompt))

        on_line = self._on_line if self._sink is not None else None
        async with contextlib.aclosing(self._transport.stdout_chunks()) as chunks:
            async for chunk in chunks:
                payload = self._framer.feed(chunk, on_line)
                if payload is not None:
                    emit(self._sink, f"Got result JSON ({len(payload)} chars)")
                    self._record_summary(payload)
                    return payload

        emit(self._sink, "Stream ended without result", LogLevel.ERROR)
        await self._transport.settle()
        raise ProcessExited(self._exit_code(), self._exit_detail())

    def _record_summary(self, payload: str) -> None:
        result = self._framer.last_result
        summary = result.summary() if result is not None else {}
        summary.pop("subtype", None)
        self.last_summary = SessionSummary(payload_chars=len(payload), **summary)

    def _exit_code(self) -> int:
        code = self._transport.returncode
        return code if code is not None else UNKNOWN_EXIT_CODE

    def _exit_detail(self) -> str:
        if self._framer.terminal_without_payload:
            return "Result event carried no structured_output"
        return self._transport.stderr_tail() or "No result received"

    def _decode[T](self, payload: str, output_type: type[T]) -> T:
        name = _type_name(output_type)
        try:
            result = TypeAdapter(output_type).validate_json(payload)
        except ValidationError as e:
            emit(self._sink, f"Decoding failed: {e}", LogLevel.ERROR)
            raise OutputDecodingFailed(name, e) from e
        emit(self._sink, f"Successfully decoded {name}")
        return result

    async def close(self) -> None:
        """End the session and release the process. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._transport.close()
        emit(self._sink, "Session closed")

    async def shutdown(self, timeout: float | None = None) -> None:
        """Close within *timeout* seconds; proceed regardless when exceeded."""
        limit = timeout if timeout is not None else self._teardown_timeout
        try:
            await asyncio.wait_for(self.close(), timeout=limit)
        except TimeoutError:
            logger.warning("Session teardown exceeded %.1fs; killing process", limit)
            emit(self._sink, f"Teardown timed out after {limit:g}s", LogLevel.ERROR)
            self._transport.kill_now()
            code = await self._transport.wait_exit()
            emit(self._sink, f"Process killed (code: {code})")

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        with contextlib.suppress(OSError):
            self._transport.kill_now()
        warnings.warn(f"Unclosed session {self!r}", ResourceWarning, stacklevel=1)


@asynccontextmanager
async def open_session(
    config: SessionConfig | str | Path | None = None,
    *,
    sink: LogSink | None = None,
    **overrides: Any,
) -> AsyncIterator[Session]:
    """``async with open_session(...) as session:`` with bounded teardown."""
    session = await Session.open(config, sink=sink, **overrides)
    try:
        yield session
    finally:
        await session.shutdown()


__all__ = ["UNKNOWN_EXIT_CODE", "Session", "open_session"]
