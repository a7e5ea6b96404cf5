"""
Error taxonomy and error logging for copydeck.

Every failure in the snapshot subsystem propagates to the caller as one of the
exception types below. Nothing is recovered locally. The CLI logs full stack
traces with log_exception() while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class CopydeckError(Exception):
    """Base class for all copydeck errors."""


class ValidationError(CopydeckError):
    """Caller input rejected before touching the store (e.g. empty label)."""


class SnapshotPermissionError(CopydeckError):
    """Snapshot key does not belong to the requesting user."""

    def __init__(self, key: str, username: Optional[str], reason: str):
        self.key = key
        self.username = username
        self.reason = reason
        who = username or "anonymous"
        super().__init__(f"Snapshot {key!r} is not accessible to {who}: {reason}")


class NotFoundError(CopydeckError):
    """Requested record is absent from every collection that was searched."""

    def __init__(self, key: str, searched: tuple[str, ...] = ()):
        self.key = key
        self.searched = searched
        where = f" (searched: {', '.join(searched)})" if searched else ""
        super().__init__(f"Snapshot not found: {key!r}{where}")


class StoreError(CopydeckError):
    """A record store call failed (network, malformed response, field error)."""

    def __init__(self, operation: str, collection: str, detail: str):
        self.operation = operation
        self.collection = collection
        self.detail = detail
        super().__init__(f"{operation} on {collection!r} failed: {detail}")


def _error_log_path(store_path=None) -> Path:
    """Resolve error log path: explicit store, then COPYDECK_STORE_PATH, then ~/.copydeck."""
    if store_path:
        return Path(store_path).expanduser() / "copydeck-errors.log"
    store = os.environ.get("COPYDECK_STORE_PATH")
    if store:
        return Path(store) / "copydeck-errors.log"
    return Path.home() / ".copydeck" / "copydeck-errors.log"


def log_exception(exc: Exception, context: str = "", store_path=None) -> Path:
    """
    Append an exception and its traceback to copydeck-errors.log.

    Args:
        exc: The exception to record
        context: What was running, usually the CLI command
        store_path: Store directory the log belongs in (default: the
            environment or home store)

    Returns:
        Path of the error log, for pointing the user at it
    """
    log_path = _error_log_path(store_path)
    header = datetime.now(timezone.utc).isoformat(timespec="seconds")
    if context:
        header += f" {context}"
    entry = "\n".join([
        "-" * 72,
        f"{header}: {type(exc).__name__}",
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    ])
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Owner-only permissions
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        pass  # error log is best effort
    return log_path
