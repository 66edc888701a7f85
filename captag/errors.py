"""
Error types and error logging for captag.

Engine errors are all recoverable: they abort one operation and leave the
collection untouched. The CLI logs full stack traces for debugging while
showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class CaptagError(Exception):
    """Base class for recoverable captag errors."""


class PatternError(CaptagError):
    """A user-supplied regular expression failed to compile.

    The message is the underlying ``re.error`` message, verbatim.
    """

    def __init__(self, pattern: str, message: str):
        super().__init__(message)
        self.pattern = pattern


class MissingInputError(CaptagError):
    """A required text input (tag, pattern, target) was empty."""


class StoreError(CaptagError):
    """A collection store failed to read or persist an item."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting CAPTAG_STORE_PATH."""
    store = os.environ.get("CAPTAG_STORE_PATH")
    if store:
        return Path(store) / "captag-errors.log"
    return Path.home() / ".captag" / "captag-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Best effort
    return log_path
