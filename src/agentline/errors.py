"""Error taxonomy for agent sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agentline.limits import PARSE_ERROR_PREFIX

if TYPE_CHECKING:
    from collections.abc import Sequence

INSTALL_HINT = "Install with: curl -fsSL https://claude.ai/install.sh | bash"


class AgentLineError(RuntimeError):
    """Base for session errors with a machine-readable code."""

    def __init__(self, message: str, *, code: str) -> None:
        super().__init__(message)
        self.code = code


class ExecutableNotFound(AgentLineError):
    """Raised when no candidate path holds an executable agent CLI."""

    def __init__(self, searched_paths: Sequence[str]) -> None:
        self.searched_paths = list(searched_paths)
        searched = ", ".join(self.searched_paths) or "(no candidates)"
        super().__init__(
            f"Agent CLI not found. Searched: {searched}. {INSTALL_HINT}",
            code="EXECUTABLE_NOT_FOUND",
        )


class WorkingDirectoryNotFound(AgentLineError):
    """Raised when the session working directory does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Working directory not found: {path}", code="WORKING_DIRECTORY_NOT_FOUND")


class ProcessLaunchFailed(AgentLineError):
    """Raised when the OS refuses to start the agent process."""

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Failed to launch agent CLI: {cause}", code="PROCESS_LAUNCH_FAILED")
        self.__cause__ = cause


class ProcessExited(AgentLineError):
    """Raised when the output stream ends before a result was produced."""

    def __init__(self, returncode: int, stderr: str | None = None) -> None:
        self.returncode = returncode
        self.stderr = stderr
        message = f"Agent CLI exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message, code="PROCESS_EXITED")


class ParseError(AgentLineError):
    """Raised for fatal framing failures, including buffer overflow."""

    def __init__(self, line: str, cause: BaseException | None = None) -> None:
        self.line = line
        self.cause = cause
        super().__init__(
            f"Failed to parse JSON: {line[:PARSE_ERROR_PREFIX]}...",
            code="PARSE_ERROR",
        )
        if cause is not None:
            self.__cause__ = cause


class SessionNotReady(AgentLineError):
    """Raised when the transport is used outside its running state."""

    def __init__(self, detail: str | None = None) -> None:
        message = "Session not ready for communication"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, code="SESSION_NOT_READY")


class OutputDecodingFailed(AgentLineError):
    """Raised when the structured payload does not fit the requested type."""

    def __init__(self, target_type: str, cause: BaseException) -> None:
        self.target_type = target_type
        self.cause = cause
        super().__init__(
            f"Failed to decode output as {target_type}: {cause}",
            code="OUTPUT_DECODING_FAILED",
        )
        self.__cause__ = cause


class ResponseTimedOut(AgentLineError):
    """Raised when an opt-in response timeout elapses."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"No result received within {timeout:g}s",
            code="RESPONSE_TIMED_OUT",
        )


__all__ = [
    "INSTALL_HINT",
    "AgentLineError",
    "ExecutableNotFound",
    "OutputDecodingFailed",
    "ParseError",
    "ProcessExited",
    "ProcessLaunchFailed",
    "ResponseTimedOut",
    "SessionNotReady",
    "WorkingDirectoryNotFound",
]
