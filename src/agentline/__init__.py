"""Structured-output sessions with a stream-json agent CLI."""

from __future__ import annotations

from agentline.config import (
    FileSystemPrompt,
    SessionConfig,
    TextSystemPrompt,
    load_config,
)
from agentline.debug_log import LogLevel, LoggingSink, RingBufferSink
from agentline.errors import (
    AgentLineError,
    ExecutableNotFound,
    OutputDecodingFailed,
    ParseError,
    ProcessExited,
    ProcessLaunchFailed,
    ResponseTimedOut,
    SessionNotReady,
    WorkingDirectoryNotFound,
)
from agentline.framer import StreamFramer
from agentline.session import Session, open_session
from agentline.transport import SubprocessTransport
from agentline.version import get_agentline_version

__version__ = get_agentline_version()

__all__ = [
    "AgentLineError",
    "ExecutableNotFound",
    "FileSystemPrompt",
    "LogLevel",
    "LoggingSink",
    "OutputDecodingFailed",
    "ParseError",
    "ProcessExited",
    "ProcessLaunchFailed",
    "ResponseTimedOut",
    "RingBufferSink",
    "Session",
    "SessionConfig",
    "SessionNotReady",
    "StreamFramer",
    "SubprocessTransport",
    "TextSystemPrompt",
    "WorkingDirectoryNotFound",
    "__version__",
    "load_config",
    "open_session",
]
