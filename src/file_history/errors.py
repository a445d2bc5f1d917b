"""Custom exceptions for file-history.

This module defines typed exceptions for better error handling and clearer
error messages throughout the application.
"""

from typing import Optional, Sequence


class FileHistoryError(RuntimeError):
    """Base class for all file-history errors."""
    pass


class InvalidPathError(FileHistoryError):
    """Path cannot be safely encoded as a storage key."""

    def __init__(self, path: object, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot encode path {path!r}: {reason}")


# Backend Errors
class BackendError(FileHistoryError):
    """Base class for version-control backend errors."""
    pass


class BackendUnavailableError(BackendError):
    """The git binary is missing or cannot be executed."""

    def __init__(self, binary: str, detail: str = ""):
        self.binary = binary
        message = f"git backend '{binary}' is not available"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class GitCommandError(BackendError):
    """A git command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"git {' '.join(self.argv)} failed with exit status {returncode}"
            + (f": {stderr.strip()}" if stderr.strip() else "")
        )


# Lookup Errors
class HistoryLookupError(FileHistoryError):
    """Base class for missing keys and snapshots."""
    pass


class NotFoundError(HistoryLookupError):
    """Storage key has no history in the repository."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No history found for '{key}'")


class NoHistoryError(HistoryLookupError):
    """Storage key has no snapshot chain to read a head from."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"'{key}' has no snapshots")


class SnapshotNotFoundError(HistoryLookupError):
    """Snapshot id does not belong to the key's chain."""

    def __init__(self, key: str, snapshot_id: str):
        self.key = key
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id[:12]} is not part of the history of '{key}'")


class StaleSelectionError(HistoryLookupError):
    """Selected snapshot disappeared between listing and acting on it."""

    def __init__(self, key: str, snapshot_id: Optional[str] = None):
        self.key = key
        self.snapshot_id = snapshot_id
        what = f"snapshot {snapshot_id[:12]}" if snapshot_id else "history"
        super().__init__(
            f"The selected {what} of '{key}' no longer exists. "
            f"It may have been deleted from another session; refresh the list."
        )


# Write Errors
class AmendError(FileHistoryError):
    """Message of the latest snapshot cannot be rewritten."""
    pass


class InvalidMessageError(FileHistoryError):
    """Snapshot message cannot be stored (git rejects NUL bytes)."""
    pass


class LockTimeoutError(FileHistoryError):
    """Repository write lock could not be acquired in time."""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for repository lock {lock_path}"
        )


# Configuration Errors
class ConfigError(FileHistoryError):
    """Invalid or unreadable configuration."""
    pass
