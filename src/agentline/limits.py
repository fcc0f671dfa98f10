"""Buffer sizes, timeouts and log limits shared across modules."""

from __future__ import annotations

import os


def _is_debug_build() -> bool:
    """Check if this is a debug/dev build.

    Debug mode is enabled when:
    1. AGENTLINE_DEBUG env var is set to "1" or "true" (explicit override)
    2. Version contains a pre-release marker ("dev", "a", "b", "rc")

    Production releases (e.g., "0.2.0") have debug disabled by default.
    """
    env_debug = os.environ.get("AGENTLINE_DEBUG", "").lower()
    if env_debug in ("1", "true"):
        return True
    if env_debug in ("0", "false"):
        return False

    from agentline.version import get_agentline_version

    version_lower = get_agentline_version().lower()
    return any(indicator in version_lower for indicator in ("dev", "a", "b", "rc"))


DEBUG_BUILD: bool = _is_debug_build()
"""True for pre-release/dev builds, False for production releases."""


MAX_BUFFER_SIZE = 50 * 1024 * 1024
"""Maximum unflushed bytes a framer may hold before it resets."""

READ_CHUNK_SIZE = 64 * 1024
CHUNK_QUEUE_SIZE = 64
STDERR_TAIL_BYTES = 8 * 1024


SHUTDOWN_TIMEOUT = 5.0
TEARDOWN_TIMEOUT = 2.0
EXIT_SETTLE_TIMEOUT = 1.0


MAX_LOG_MESSAGE_LENGTH = 4096
MAX_LOG_LINES = 2000
PARSE_ERROR_PREFIX = 100
