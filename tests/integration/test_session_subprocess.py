"""Integration tests: sessions and transports against a real subprocess."""

from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from typing import TYPE_CHECKING

import psutil
import pytest
from pydantic import BaseModel

from agentline.debug_log import LogLevel
from agentline.errors import OutputDecodingFailed, ProcessExited, ResponseTimedOut, SessionNotReady
from agentline.session import Session, open_session
from agentline.transport import TransportState

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from agentline.debug_log import RingBufferSink
    from agentline.transport import SubprocessTransport

    TransportFactory = Callable[..., SubprocessTransport]

pytestmark = pytest.mark.integration


class Echo(BaseModel):
    echo: str
    turn: int


async def _open(transport: SubprocessTransport, sink: RingBufferSink) -> Session:
    session = Session(transport, sink=sink, teardown_timeout=5.0)
    await transport.connect()
    return session


class TestTransport:
    async def test_round_trip_and_close(self, fake_agent_transport: TransportFactory):
        transport = fake_agent_transport()
        await transport.connect()
        pid = transport.pid
        assert transport.state is TransportState.RUNNING

        await transport.write({"type": "user", "message": {"role": "user", "content": "hi"}})
        data = b""
        async with contextlib.aclosing(transport.stdout_chunks()) as chunks:
            async for chunk in chunks:
                data += chunk
                if b'"type": "result"' in data and data.endswith(b"\n"):
                    break

        events = [json.loads(line) for line in data.splitlines()]
        assert [event["type"] for event in events] == ["system", "assistant", "result"]
        assert events[-1]["structured_output"] == {"echo": "hi", "turn": 1}

        await transport.close()
        assert transport.state is TransportState.CLOSED
        assert transport.returncode is not None
        assert pid is not None
        assert not psutil.pid_exists(pid) or psutil.Process(pid).status() == psutil.STATUS_ZOMBIE

    async def test_connect_is_idempotent(self, fake_agent_transport: TransportFactory):
        transport = fake_agent_transport()
        await transport.connect()
        pid = transport.pid

        await transport.connect()

        assert transport.pid == pid
        await transport.close()

    async def test_second_consumer_is_rejected(self, fake_agent_transport: TransportFactory):
        transport = fake_agent_transport()
        await transport.connect()
        first = transport.stdout_chunks()
        await anext(first)

        with pytest.raises(SessionNotReady, match="already being consumed"):
            await anext(transport.stdout_chunks())

        await first.aclose()
        await transport.close()

    async def test_close_ends_an_in_flight_read(self, fake_agent_transport: TransportFactory):
        transport = fake_agent_transport("hang")
        await transport.connect()
        await transport.write({"type": "user", "message": {"role": "user", "content": "wait"}})

        async def drain() -> int:
            count = 0
            async for _ in transport.stdout_chunks():
                count += 1
            return count

        reader = asyncio.create_task(drain())
        await asyncio.sleep(0.2)
        await transport.close()

        assert await asyncio.wait_for(reader, timeout=5.0) >= 1
        assert transport.state is TransportState.CLOSED

    async def test_killed_process_is_reaped(self, fake_agent_transport: TransportFactory):
        if sys.platform == "win32":
            pytest.skip("signal exit codes are POSIX-only")
        transport = fake_agent_transport("hang")
        await transport.connect()

        transport.kill_now()
        code = await transport.wait_exit(timeout=5.0)

        assert code == -9
        assert transport.returncode == -9
        await transport.close()

    async def test_stderr_is_captured(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        transport = fake_agent_transport("crash")
        await transport.connect()
        await transport.write({"type": "user", "message": {"role": "user", "content": "x"}})

        async for _ in transport.stdout_chunks():
            pass
        await transport.settle()
        assert transport.returncode == 3
        await transport.close()

        assert "fatal: model overloaded" in transport.stderr_tail()
        assert any("fatal" in m for m in ring_sink.messages(LogLevel.ERROR))
        assert transport.returncode == 3


class TestSession:
    async def test_respond_decodes_structured_output(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport(), ring_sink)

        async with session:
            first = await session.respond("hello", Echo)
            second = await session.respond("again", Echo)

        assert first == Echo(echo="hello", turn=1)
        assert second == Echo(echo="again", turn=2)
        assert session.last_summary is not None
        assert session.last_summary.session_id == "fake-session"
        assert any('"type": "system"' in m for m in ring_sink.messages(LogLevel.RECEIVED))

    async def test_structured_payload_is_canonical(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        transport = fake_agent_transport("structured", FAKE_AGENT_OUTPUT='{"z": 1.0, "a": "ü"}')
        session = await _open(transport, ring_sink)

        async with session:
            assert await session.respond_raw("go") == '{"a":"ü","z":1}'

    async def test_large_lines_are_framed(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport("large"), ring_sink)

        async with session:
            result = await session.respond("big", Echo)

        assert result.echo == "big"

    async def test_crash_surfaces_process_exited(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport("crash"), ring_sink)

        async with session:
            with pytest.raises(ProcessExited) as exc_info:
                await session.respond("go")

        assert exc_info.value.code == "PROCESS_EXITED"
        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "fatal: model overloaded"

    async def test_missing_payload_surfaces_process_exited(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport("no_payload"), ring_sink)

        async with session:
            with pytest.raises(ProcessExited, match="no structured_output"):
                await session.respond("go")

    async def test_wrong_shape_surfaces_output_decoding_failed(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport(), ring_sink)

        async with session:
            with pytest.raises(OutputDecodingFailed) as exc_info:
                await session.respond("go", list[int])

        assert exc_info.value.target_type == "list[int]"

    async def test_hang_times_out_and_teardown_is_bounded(
        self, fake_agent_transport: TransportFactory, ring_sink: RingBufferSink
    ):
        session = await _open(fake_agent_transport("hang"), ring_sink)

        with pytest.raises(ResponseTimedOut):
            await session.respond("go", timeout=0.3)
        await asyncio.wait_for(session.shutdown(), timeout=10.0)

        assert session.closed
        assert session.transport.state is TransportState.CLOSED

    async def test_open_session_with_config(
        self, tmp_path: Path, fake_agent_executable: Path, ring_sink: RingBufferSink
    ):
        async with open_session(
            working_directory=tmp_path, executable=fake_agent_executable, sink=ring_sink
        ) as session:
            result = await session.respond("configured", Echo)

        assert result == Echo(echo="configured", turn=1)
        assert session.closed
        assert any(m.startswith("Process started (PID: ") for m in ring_sink.messages())
