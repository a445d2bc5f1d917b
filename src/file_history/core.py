"""Core data models for file-history."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .utils import humanize_size


# ============= Snapshots =============

class Snapshot(BaseModel):
    """One immutable recorded state of a file.

    Content is not carried on the model; fetch it with
    ``BackupRepository.get_snapshot_content``.
    """

    model_config = ConfigDict(frozen=True)

    id: str  # full commit hash
    key: str
    timestamp: datetime  # timezone-aware UTC
    message: str
    parent: Optional[str] = None  # previous snapshot of the same key

    @property
    def short_id(self) -> str:
        return self.id[:12]


class SnapshotEntry(BaseModel):
    """Presentation-ready listing row."""

    model_config = ConfigDict(frozen=True)

    display_time: str
    id: str
    message: str


# ============= Save results =============

class SaveStatus(str, Enum):
    """Outcome of a save hook invocation."""

    SAVED = "saved"
    UNCHANGED = "unchanged"
    EXCLUDED = "excluded"
    FAILED = "failed"


class SaveResult(BaseModel):
    """Result of backing up one saved file.

    The save hook never raises; failures come back with status FAILED
    and the error text so the caller can surface them.
    """

    path: str
    status: SaveStatus
    key: Optional[str] = None
    snapshot_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != SaveStatus.FAILED

    def summary(self) -> str:
        """Get human-readable summary."""
        if self.status == SaveStatus.SAVED:
            return f"✓ Saved {self.path} ({self.snapshot_id[:12]})"
        if self.status == SaveStatus.UNCHANGED:
            return f"No changes in {self.path}"
        if self.status == SaveStatus.EXCLUDED:
            return f"{self.path} is excluded from backup"
        return f"✗ Backup of {self.path} failed: {self.error}"


# ============= Repository information =============

class RepositoryStats(BaseModel):
    """Size and population of the backup repository."""

    root: str
    files: int
    snapshots: int
    disk_bytes: int

    def summary(self) -> str:
        """Get human-readable summary."""
        return (
            f"{self.files} files, {self.snapshots} snapshots, "
            f"{humanize_size(self.disk_bytes)} on disk"
        )
