"""High-level service: save hooks, browsing and history management."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .config import BackupConfig
from .core import SaveResult, SaveStatus
from .diffing import open_as_new_document, render_diff, restore
from .errors import FileHistoryError
from .history import CandidateList, FileCandidate, HistoryQuery
from .ignore import ExclusionFilter
from .pathcodec import encode_path, resolve_for_key
from .repository import BackupRepository

logger = logging.getLogger(__name__)

PathArg = Union[str, Path]


@dataclass
class ServiceDeps:
    """Dependency injection container for testability."""
    repository: BackupRepository
    exclusions: ExclusionFilter


def _absolute(path: PathArg) -> str:
    return os.path.abspath(os.fspath(path))


class FileHistoryService:
    """Entry point for editors, selection UIs and management UIs.

    - Save hooks never raise: backup failures come back as a FAILED
      SaveResult so the editor's own save is never blocked.
    - Everything else raises typed FileHistoryError subclasses.
    """

    def __init__(self, config: BackupConfig, deps: Optional[ServiceDeps] = None):
        """Initialize with config OR deps.

        The repository is created if absent and, when
        ``config.compact_on_start`` is set, compacted once before any save.

        Args:
            config: Explicit configuration
            deps: Full dependency injection (for testing)
        """
        self.config = config
        if deps is None:
            deps = ServiceDeps(
                repository=BackupRepository(config),
                exclusions=ExclusionFilter(config.exclude, config.exclude_globs),
            )
        self.deps = deps
        self.repository.init()
        if config.compact_on_start:
            self.repository.compact()
        self.query = HistoryQuery(self.repository)

    @property
    def repository(self) -> BackupRepository:
        return self.deps.repository

    def key_for(self, path: PathArg) -> str:
        """Storage key of a (possibly relative) file path."""
        return resolve_for_key(path)

    # === Save hooks ===

    def on_file_saved(self, path: PathArg, content: Optional[bytes] = None) -> SaveResult:
        """Back up a file that was just saved, with an automatic message.

        Args:
            path: Saved file
            content: Saved bytes; read from disk when None
        """
        absolute = _absolute(path)
        return self._save(absolute, content, self.config.commit_message.format(path=absolute))

    def on_file_saved_with_message(
        self, path: PathArg, content: Optional[bytes], message: str
    ) -> SaveResult:
        """Back up a saved file with a caller-supplied message."""
        return self._save(_absolute(path), content, message)

    def _save(self, absolute: str, content: Optional[bytes], message: str) -> SaveResult:
        if self.deps.exclusions.is_excluded(absolute):
            logger.debug("Skipping excluded file %s", absolute)
            return SaveResult(path=absolute, status=SaveStatus.EXCLUDED)

        key = None
        try:
            key = encode_path(absolute)
            if content is None:
                content = Path(absolute).read_bytes()
            elif not isinstance(content, (bytes, bytearray, memoryview)):
                raise TypeError(f"content must be bytes, not {type(content).__name__}")
            snapshot_id, created = self.repository.record_snapshot(key, bytes(content), message)
        except (FileHistoryError, OSError, TypeError, ValueError) as e:
            logger.error("Backup of %s failed: %s", absolute, e)
            return SaveResult(path=absolute, status=SaveStatus.FAILED, key=key, error=str(e))

        status = SaveStatus.SAVED if created else SaveStatus.UNCHANGED
        return SaveResult(path=absolute, status=status, key=key, snapshot_id=snapshot_id)

    def describe_last_save(self, path: PathArg, message: str) -> str:
        """Replace the message of the file's newest snapshot; returns its new id."""
        return self.repository.amend_last_message(self.key_for(path), message)

    # === Selection UI ===

    def history(self, path: PathArg) -> CandidateList:
        """Snapshot candidates for a file, newest first."""
        return self.query.candidates(self.key_for(path))

    def open_snapshot(self, key: str, snapshot_id: str) -> bytes:
        return open_as_new_document(self.repository, key, snapshot_id)

    def show_diff(self, key: str, snapshot_id: str) -> str:
        return render_diff(self.repository, key, snapshot_id)

    def restore_snapshot(self, key: str, snapshot_id: str, destination: PathArg) -> Path:
        """Overwrite destination with the snapshot (no confirmation here)."""
        return restore(self.repository, key, snapshot_id, destination)

    # === Management UI ===

    def list_files(self) -> List[FileCandidate]:
        return self.query.file_candidates()

    def preview_file(self, key: str) -> bytes:
        """Head content shown before a file's history is deleted."""
        return self.repository.get_head_content(key)

    def delete_file_history(self, key: str) -> None:
        self.repository.delete_history(key)
