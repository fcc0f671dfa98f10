"""Subprocess transport for the agent CLI.

One outbound write channel (stdin, one JSON line per message) and one inbound
lazy sequence of raw stdout chunks. A background reader task per output pipe
pushes data into a bounded queue; closing the transport stops the readers
before the pipes are released and then finalizes the queue, which the
consumer observes as ordinary end of stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from agentline.adapters.process import child_pids, kill_pids, spawn_exec, terminate_process
from agentline.debug_log import LogLevel, emit
from agentline.errors import (
    ProcessLaunchFailed,
    SessionNotReady,
    WorkingDirectoryNotFound,
)
from agentline.launch import build_arguments, build_environment, find_executable
from agentline.limits import (
    CHUNK_QUEUE_SIZE,
    EXIT_SETTLE_TIMEOUT,
    READ_CHUNK_SIZE,
    SHUTDOWN_TIMEOUT,
    STDERR_TAIL_BYTES,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence

    from agentline.config import SessionConfig
    from agentline.debug_log import LogSink

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    RUNNING = "running"
    CLOSED = "closed"


def encode_line(message: BaseModel | Mapping[str, Any]) -> bytes:
    """Serialize one outbound message as a newline-terminated JSON line."""
    if isinstance(message, BaseModel):
        text = message.model_dump_json()
    else:
        text = json.dumps(message, ensure_ascii=False, separators=(",", ":"))
    return text.encode("utf-8") + b"\n"


class SubprocessTransport:
    """Owns the agent CLI process and its three pipes."""

    def __init__(
        self,
        executable: str,
        arguments: Sequence[str] = (),
        *,
        working_directory: str | Path,
        environment: Mapping[str, str] | None = None,
        sink: LogSink | None = None,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        read_chunk_size: int = READ_CHUNK_SIZE,
        chunk_queue_size: int = CHUNK_QUEUE_SIZE,
    ) -> None:
        self.executable = executable
        self.arguments = list(arguments)
        self.working_directory = Path(working_directory)
        self.environment = dict(environment) if environment is not None else None
        self._sink = sink
        self._shutdown_timeout = shutdown_timeout
        self._read_chunk_size = read_chunk_size
        self._chunk_queue_size = chunk_queue_size

        self._check_working_directory()

        self._state = TransportState.DISCONNECTED
        self._process: asyncio.subprocess.Process | None = None
        self._returncode: int | None = None
        self._chunks: asyncio.Queue[bytes | None] | None = None
        self._stdout_done = False
        self._consuming = False
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_tail = bytearray()

    @classmethod
    def from_config(cls, config: SessionConfig, sink: LogSink | None = None) -> SubprocessTransport:
        """Resolve the executable and build arguments/environment from *config*.

        Raises:
            ExecutableNotFound: If no candidate path holds the CLI.
            WorkingDirectoryNotFound: If the working directory is missing.
        """
        executable = find_executable(config.executable_name, override=config.executable)
        emit(sink, f"Found CLI at: {executable}")
        emit(sink, f"Working directory: {config.working_directory}")
        return cls(
            executable,
            build_arguments(config),
            working_directory=config.working_directory,
            environment=build_environment(config),
            sink=sink,
            shutdown_timeout=config.shutdown_timeout,
        )

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is TransportState.RUNNING

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        if self._process is not None and self._process.returncode is not None:
            return self._process.returncode
        return self._returncode

    def stderr_tail(self) -> str:
        """Last few KiB of stderr, decoded leniently."""
        return self._stderr_tail.decode("utf-8", "replace").strip()

    def _check_working_directory(self) -> None:
        if not self.working_directory.is_dir():
            raise WorkingDirectoryNotFound(str(self.working_directory))

    async def connect(self) -> None:
        """Spawn the process and start the pipe readers. No-op when running.

        Raises:
            SessionNotReady: If the transport was already closed.
            WorkingDirectoryNotFound: If the working directory disappeared.
            ProcessLaunchFailed: If the OS could not start the executable.
        """
        if self._state is TransportState.RUNNING:
            return
        if self._state is TransportState.CLOSED:
            raise SessionNotReady("transport is closed")

        self._check_working_directory()
        emit(self._sink, f"Arguments: {' '.join(self.arguments)}")

        try:
            process = await spawn_exec(
                self.executable,
                self.arguments,
                cwd=self.working_directory,
                env=self.environment,
            )
        except OSError as e:
            emit(self._sink, f"Process launch failed: {e}", LogLevel.ERROR)
            raise ProcessLaunchFailed(e) from e

        self._process = process
        self._chunks = asyncio.Queue(maxsize=self._chunk_queue_size)
        self._stdout_done = False
        self._stdout_task = asyncio.create_task(self._pump_stdout(process))
        self._stderr_task = asyncio.create_task(self._pump_stderr(process))
        self._state = TransportState.RUNNING
        logger.debug("Spawned %s (pid=%s)", self.executable, process.pid)
        emit(self._sink, f"Process started (PID: {process.pid})")

    async def write(self, message: BaseModel | Mapping[str, Any]) -> None:
        """Write one message to stdin as a JSON line.

        Raises:
            SessionNotReady: Before ``connect()``, after ``close()``, or when
                the process has stopped reading its input.
        """
        process = self._process
        stdin = process.stdin if process is not None else None
        if self._state is not TransportState.RUNNING or stdin is None or stdin.is_closing():
            emit(self._sink, "Cannot write: session not ready", LogLevel.ERROR)
            raise SessionNotReady()

        data = encode_line(message)
        emit(self._sink, f"Writing to stdin: {data.decode('utf-8').rstrip()}", LogLevel.SENT)

        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            emit(self._sink, f"stdin write failed: {e}", LogLevel.ERROR)
            raise SessionNotReady("agent stdin is closed") from e

    async def stdout_chunks(self) -> AsyncIterator[bytes]:
        """Yield raw stdout chunks until EOF or ``close()``.

        Single consumer only; the sequence is empty before ``connect()``.
        """
        queue = self._chunks
        if queue is None:
            return
        if self._consuming:
            raise SessionNotReady("stdout is already being consumed")

        self._consuming = True
        try:
            while True:
                if self._stdout_done and queue.empty():
                    return
                chunk = await queue.get()
                if chunk is None:
                    return
                yield chunk
        finally:
            self._consuming = False

    async def settle(self, timeout: float = EXIT_SETTLE_TIMEOUT) -> None:
        """Wait briefly for stderr to drain and the exit code to arrive.

        Used after stdout ended early so error reports carry both.
        """
        pending: list[asyncio.Future[Any]] = []
        if self._stderr_task is not None and not self._stderr_task.done():
            pending.append(self._stderr_task)
        exit_waiter = None
        if self._process is not None and self._process.returncode is None:
            exit_waiter = asyncio.ensure_future(self._process.wait())
            pending.append(exit_waiter)

        try:
            if pending:
                await asyncio.wait(pending, timeout=timeout)
        finally:
            if exit_waiter is not None and not exit_waiter.done():
                exit_waiter.cancel()

    async def _pump_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        assert self._chunks is not None
        try:
            while data := await process.stdout.read(self._read_chunk_size):
                await self._chunks.put(data)
        except (OSError, ValueError) as e:
            logger.debug("stdout reader stopped: %s", e)
        finally:
            self._finish_chunks()

    async def _pump_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        try:
            while data := await process.stderr.read(self._read_chunk_size):
                self._record_stderr(data)
                emit(self._sink, f"stderr: {data.decode('utf-8', 'replace')}", LogLevel.ERROR)
        except (OSError, ValueError) as e:
            logger.debug("stderr reader stopped: %s", e)

    def _record_stderr(self, data: bytes) -> None:
        self._stderr_tail += data
        overflow = len(self._stderr_tail) - STDERR_TAIL_BYTES
        if overflow > 0:
            del self._stderr_tail[:overflow]

    def _finish_chunks(self, *, discard: bool = False) -> None:
        """Mark stdout finished and wake the consumer."""
        self._stdout_done = True
        queue = self._chunks
        if queue is None:
            return
        if discard:
            while not queue.empty():
                queue.get_nowait()
        # A full queue needs no sentinel: the consumer checks _stdout_done once drained.
        with contextlib.suppress(asyncio.QueueFull):
            queue.put_nowait(None)

    async def _cancel_readers(self) -> None:
        tasks = [task for task in (self._stdout_task, self._stderr_task) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._stdout_task = None
        self._stderr_task = None

    def _end_input(self) -> None:
        stdin = self._process.stdin if self._process is not None else None
        if stdin is not None and not stdin.is_closing():
            with contextlib.suppress(BrokenPipeError, ConnectionResetError, RuntimeError):
                stdin.close()

    async def close(self) -> None:
        """Stop readers, end input, terminate the process, release everything.

        Idempotent, and safe when ``connect()`` never succeeded.
        """
        if self._state is TransportState.CLOSED:
            return
        self._state = TransportState.CLOSED

        # Readers must be gone before any pipe is torn down.
        await self._cancel_readers()
        self._end_input()

        process = self._process
        if process is not None:
            self._returncode = await terminate_process(process, timeout=self._shutdown_timeout)
            emit(self._sink, f"Process exited (code: {self._returncode})")

        self._finish_chunks(discard=True)
        self._process = None

    def kill_now(self) -> None:
        """Synchronously kill the process tree; for finalizers and forced teardown."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        kill_pids([*child_pids(process.pid), process.pid])
        self._state = TransportState.CLOSED

    async def wait_exit(self, timeout: float = EXIT_SETTLE_TIMEOUT) -> int | None:
        """Reap the process after ``kill_now()`` and release the readers.

        Waits at most *timeout* seconds for the exit code.
        """
        process = self._process
        if process is None:
            return self._returncode
        with contextlib.suppress(TimeoutError, ProcessLookupError):
            await asyncio.wait_for(process.wait(), timeout=timeout)
        if process.returncode is not None:
            self._returncode = process.returncode
        await self._cancel_readers()
        self._finish_chunks(discard=True)
        return self._returncode


__all__ = ["SubprocessTransport", "TransportState", "encode_line"]
