"""Diagnostic log sinks for agent sessions.

A sink is any ``(text, level)`` callable. Sessions and transports report
connection progress, every line sent and received, and stderr output through
the sink so callers can surface them however they like.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from agentline.limits import DEBUG_BUILD, MAX_LOG_LINES, MAX_LOG_MESSAGE_LENGTH

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class LogLevel(StrEnum):
    """Category of a sink entry."""

    INFO = "info"
    SENT = "sent"
    RECEIVED = "received"
    ERROR = "error"


type LogSink = Callable[[str, LogLevel], None]

_LOGGING_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SENT: logging.DEBUG,
    LogLevel.RECEIVED: logging.DEBUG,
    LogLevel.ERROR: logging.ERROR,
}


def truncate_message(text: str, limit: int = MAX_LOG_MESSAGE_LENGTH) -> str:
    if len(text) > limit:
        return text[:limit] + "... [truncated]"
    return text


def emit(sink: LogSink | None, text: str, level: LogLevel = LogLevel.INFO) -> None:
    """Send *text* to *sink* when one is configured.

    Sink failures are logged and never propagate into the session.
    """
    if sink is None:
        return
    try:
        sink(text, level)
    except Exception:
        logger.exception("Log sink raised while handling a %s entry", level.value)


@dataclass(slots=True)
class LogEntry:
    """A captured sink entry."""

    level: LogLevel
    message: str
    timestamp: float


class RingBufferSink:
    """Sink that keeps the most recent entries in memory."""

    def __init__(self, maxlen: int = MAX_LOG_LINES) -> None:
        self.entries: deque[LogEntry] = deque(maxlen=maxlen)
        self._generation = 0

    def __call__(self, text: str, level: LogLevel) -> None:
        self.entries.append(
            LogEntry(level=LogLevel(level), message=truncate_message(text), timestamp=time.time())
        )

    @property
    def generation(self) -> int:
        """Incremented every time the buffer is cleared."""
        return self._generation

    def clear(self) -> None:
        self.entries.clear()
        self._generation += 1

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [entry.message for entry in self.entries if level is None or entry.level == level]

    def export_to_file(self, file_path: str) -> int:
        """Export all buffered entries to a file.

        Args:
            file_path: Path to write the log file to

        Returns:
            Number of log entries written
        """
        from datetime import datetime
        from pathlib import Path

        output_path = Path(file_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with output_path.open("w", encoding="utf-8") as f:
            f.write("# agentline session log export\n")
            f.write(f"# Total entries: {len(self.entries)}\n")
            f.write(f"# Buffer generation: {self._generation}\n")
            f.write("# " + "=" * 76 + "\n\n")

            for entry in self.entries:
                ts = datetime.fromtimestamp(entry.timestamp).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
                f.write(f"{ts} [{entry.level.value.upper()}] {entry.message}\n")

        return len(self.entries)


class LoggingSink:
    """Sink that forwards entries to a stdlib logger."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logging.getLogger("agentline.session")

    def __call__(self, text: str, level: LogLevel) -> None:
        level = LogLevel(level)
        self._logger.log(
            _LOGGING_LEVELS[level],
            "[%s] %s",
            level.value,
            truncate_message(text),
        )


def setup_debug_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use.

    Pre-release builds log at DEBUG even without *verbose*.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose or DEBUG_BUILD else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


__all__ = [
    "LogEntry",
    "LogLevel",
    "LogSink",
    "LoggingSink",
    "RingBufferSink",
    "emit",
    "setup_debug_logging",
    "truncate_message",
]
