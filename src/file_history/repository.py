"""Backup store: one git repository holding a linear history per file.

Repository layout
-----------------
The backup repository is a bare git repository. Every storage key owns a
ref::

    refs/history/<ab>/<sha256 of key>

whose commits form the key's snapshot chain (newest at the ref tip). Each
commit's tree holds exactly one blob, at the storage key's path, so a
key can be recovered from any of its commits without re-deriving it.

Why one ref per key:
- Chains are independent; deleting one key's history is a single ref
  deletion and never rewrites (or re-ids) another key's snapshots.
- A snapshot is published by a compare-and-swap ``update-ref``. Until
  that succeeds nothing is visible, so a failed write leaves at most
  unreachable objects for the next ``compact()``.

Concurrency
-----------
Writes (create, amend, delete, compact) are serialized by a per-instance
re-entrant lock plus a portalocker file lock shared by every process using
the same repository. Reads take no lock: they only see fully published
refs.
"""

import contextlib
import hashlib
import logging
import re
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import portalocker

from .config import BackupConfig
from .constants import LOCK_FILE
from .core import RepositoryStats, Snapshot, SnapshotEntry
from .errors import (
    AmendError,
    BackendError,
    GitCommandError,
    InvalidMessageError,
    LockTimeoutError,
    NoHistoryError,
    NotFoundError,
    SnapshotNotFoundError,
)
from .git import GitBackend
from .pathcodec import decode_key
from .utils import directory_size, from_epoch, render_display_time

logger = logging.getLogger(__name__)

REF_NAMESPACE = "refs/history"

_HEX_ID = re.compile(r"^[0-9a-f]{4,64}$")

# git log output is NUL separated; git refuses NUL in commit messages
_LOG_FORMAT = "--format=%H%x00%P%x00%ct%x00%B"
_LOG_FIELDS = 4


def _check_message(message: str) -> None:
    if "\x00" in message:
        raise InvalidMessageError("Snapshot messages cannot contain NUL bytes")


def ref_for_key(key: str) -> str:
    """Ref holding the snapshot chain of a storage key.

    Refs are named by digest because keys may contain characters that
    are illegal in ref names (a trailing ``.lock``, ``..``).
    """
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{REF_NAMESPACE}/{digest[:2]}/{digest}"


class BackupRepository:
    """Content-versioned store of per-file snapshot chains.

    Attributes:
        config: Configuration this repository was built from
        root: Repository directory (bare git repository)
        git: Backend used for every git invocation
    """

    def __init__(self, config: BackupConfig, git: Optional[GitBackend] = None):
        """Bind to the repository described by config (call init() before use).

        Args:
            config: Explicit configuration; no global state is consulted
            git: Backend override (testing)
        """
        self.config = config
        self.root = Path(config.repository)
        self.git = git or GitBackend(
            self.root,
            binary=config.git_binary,
            author_name=config.author_name,
            author_email=config.author_email,
        )
        self._mutex = threading.RLock()
        self._lock_depth = 0

    # ============= Setup =============

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_FILE

    def is_initialized(self) -> bool:
        return (self.root / "HEAD").exists() and (self.root / "objects").is_dir()

    def init(self) -> "BackupRepository":
        """Create the repository root and git repository if absent.

        Returns:
            self, for chaining
        """
        self.root.mkdir(parents=True, exist_ok=True)
        if self.is_initialized():
            return self

        with self._write_lock():
            if self.is_initialized():
                return self
            logger.info("Initializing backup repository at %s", self.root)
            self.git.run("init", "--bare", "--quiet")
            for name, value in (
                ("gc.auto", "0"),  # compaction is explicit
                ("core.logAllRefUpdates", "false"),
                ("user.name", self.config.author_name),
                ("user.email", self.config.author_email),
            ):
                self.git.run("config", name, value)
        return self

    # ============= Locking =============

    @contextlib.contextmanager
    def _write_lock(self) -> Iterator[None]:
        """Serialize writers in this process and across processes.

        Re-entrant within a thread: nested calls reuse the held file lock.
        """
        with self._mutex:
            if self._lock_depth:
                self._lock_depth += 1
                try:
                    yield
                finally:
                    self._lock_depth -= 1
                return

            self.root.mkdir(parents=True, exist_ok=True)
            try:
                lock = portalocker.Lock(
                    str(self.lock_path), "w", timeout=self.config.lock_timeout
                )
                lock.acquire()
            except portalocker.exceptions.LockException as e:
                raise LockTimeoutError(str(self.lock_path), self.config.lock_timeout) from e

            self._lock_depth = 1
            try:
                yield
            finally:
                self._lock_depth = 0
                lock.release()

    # ============= Internal helpers =============

    def _ref_tip(self, key: str) -> Optional[str]:
        result = self.git.run_bytes(
            "rev-parse", "--verify", "--quiet", f"{ref_for_key(key)}^{{commit}}", check=False
        )
        if result.returncode != 0:
            return None
        return result.stdout.decode("ascii").strip()

    def _chain_ids(self, key: str) -> List[str]:
        tip = self._ref_tip(key)
        if tip is None:
            return []
        return self.git.run("rev-list", "--first-parent", tip).split()

    def _resolve_id(self, key: str, snapshot_id: str, chain: List[str]) -> str:
        if not chain:
            raise NotFoundError(key)
        candidate = snapshot_id.strip().lower()
        if not _HEX_ID.match(candidate):
            raise SnapshotNotFoundError(key, snapshot_id)
        matches = [c for c in chain if c.startswith(candidate)]
        if len(matches) != 1:
            raise SnapshotNotFoundError(key, snapshot_id)
        return matches[0]

    def _blob(self, commit: str, key: str) -> bytes:
        return self.git.run_bytes("cat-file", "blob", f"{commit}:{key}").stdout

    def _build_commit(self, key: str, blob: str, parent: Optional[str], message: str) -> str:
        """Write a tree containing only key -> blob and a commit on top of parent."""
        with tempfile.TemporaryDirectory(prefix="index-", dir=self.root) as tmp:
            index_env = {"GIT_INDEX_FILE": str(Path(tmp) / "index")}
            self.git.run(
                "update-index", "--add", "--cacheinfo", f"100644,{blob},{key}", env=index_env
            )
            tree = self.git.run("write-tree", env=index_env).strip()

        args = ["--no-gpg-sign", tree]
        if parent:
            args += ["-p", parent]
        # Message goes through stdin so no message text is parsed as an option.
        # The trailing newline is dropped again by snapshots().
        return self.git.run("commit-tree", *args, input=message + "\n").strip()

    def _publish(self, key: str, new: str, old: Optional[str], reason: str) -> None:
        """Compare-and-swap the key's ref from old to new."""
        self.git.run(
            "update-ref", "-m", reason, ref_for_key(key), new, old or ""
        )

    # ============= Writes =============

    def create_snapshot(self, key: str, content: bytes, message: str) -> str:
        """Append a snapshot of content to key's chain; see record_snapshot().

        Returns:
            Id of the new (or unchanged head) snapshot
        """
        snapshot_id, _ = self.record_snapshot(key, content, message)
        return snapshot_id

    def record_snapshot(self, key: str, content: bytes, message: str) -> Tuple[str, bool]:
        """Append a snapshot of content to key's chain.

        Identical content to the current head is a no-op: no commit is
        created and the head's id is returned.

        Args:
            key: Storage key (see pathcodec.encode_path)
            content: Bytes to record
            message: Snapshot message

        Returns:
            (snapshot id, created). created is False when content matched
            the head, which is decided under the write lock

        Raises:
            InvalidPathError: If key is not a storage key
            InvalidMessageError: If message contains a NUL byte
            BackendError: If git fails; the chain is left untouched
        """
        decode_key(key)
        _check_message(message)
        with self._write_lock():
            head = self._ref_tip(key)
            blob = self.git.run_bytes("hash-object", "-w", "--stdin", input=content).stdout
            blob = blob.decode("ascii").strip()

            if head is not None:
                head_blob = self.git.run("rev-parse", f"{head}:{key}").strip()
                if head_blob == blob:
                    logger.debug("Unchanged content for %s, keeping %s", key, head[:12])
                    return head, False

            commit = self._build_commit(key, blob, head, message)
            try:
                self._publish(key, commit, head, "snapshot")
            except GitCommandError as e:
                raise BackendError(f"Could not record snapshot of '{key}': {e}") from e
            logger.info("Snapshot %s of %s", commit[:12], key)
            return commit, True

    def amend_last_message(self, key: str, message: str) -> str:
        """Rewrite the message of key's newest snapshot.

        Content and parent are preserved. Because snapshot ids hash the
        message, the newest snapshot receives a new id, which is returned.

        Raises:
            NoHistoryError: If key has no snapshots
            AmendError: If the chain moved while amending
            InvalidMessageError: If message contains a NUL byte
        """
        _check_message(message)
        with self._write_lock():
            head = self._ref_tip(key)
            if head is None:
                raise NoHistoryError(key)
            parents = self.git.run("rev-list", "--parents", "-n", "1", head).split()[1:]
            blob = self.git.run("rev-parse", f"{head}:{key}").strip()
            commit = self._build_commit(key, blob, parents[0] if parents else None, message)
            try:
                self._publish(key, commit, head, "amend")
            except GitCommandError as e:
                raise AmendError(f"History of '{key}' changed while amending: {e}") from e
            logger.info("Amended %s of %s -> %s", head[:12], key, commit[:12])
            return commit

    def delete_history(self, key: str) -> None:
        """Irreversibly remove every snapshot of key.

        Objects become unreachable immediately and are reclaimed by the
        next compact(). Other keys are not touched.

        Raises:
            NotFoundError: If key has no history
        """
        with self._write_lock():
            head = self._ref_tip(key)
            if head is None:
                raise NotFoundError(key)
            self.git.run("update-ref", "-d", ref_for_key(key), head)
            logger.info("Deleted history of %s", key)

    def compact(self) -> None:
        """Reclaim storage held by unreachable objects.

        Snapshot ids and content are unchanged. Shares the write lock so it
        never overlaps a snapshot write from this process.
        """
        with self._write_lock():
            logger.debug("Compacting %s", self.root)
            self.git.run("gc", "--quiet", "--prune=now")

    # ============= Reads =============

    def snapshots(self, key: str) -> List[Snapshot]:
        """Structured chain for key, newest first.

        Raises:
            NotFoundError: If key has no history
        """
        tip = self._ref_tip(key)
        if tip is None:
            raise NotFoundError(key)

        output = self.git.run("log", "-z", "--first-parent", _LOG_FORMAT, tip)
        fields = output.split("\x00")
        # -z terminates the last record too
        if len(fields) % _LOG_FIELDS == 1 and fields[-1] == "":
            fields.pop()
        result = []
        for i in range(0, len(fields), _LOG_FIELDS):
            commit, parents, epoch, body = fields[i:i + _LOG_FIELDS]
            result.append(Snapshot(
                id=commit,
                key=key,
                timestamp=from_epoch(int(epoch)),
                message=body[:-1] if body.endswith("\n") else body,
                parent=parents.split()[0] if parents.strip() else None,
            ))
        return result

    def list_snapshots(
        self,
        key: str,
        date_template: Optional[str] = None,
        date_format: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[SnapshotEntry]:
        """Presentation-ready chain for key, newest first.

        Args:
            key: Storage key
            date_template: Overrides config.display_template ({date}, {age})
            date_format: Overrides config.date_format (strftime)
            now: Reference time for relative ages (testing)

        Raises:
            NotFoundError: If key has no history
        """
        template = date_template or self.config.display_template
        fmt = date_format or self.config.date_format
        return [
            SnapshotEntry(
                display_time=render_display_time(s.timestamp, fmt, template, now),
                id=s.id,
                message=s.message,
            )
            for s in self.snapshots(key)
        ]

    def has_snapshot(self, key: str, snapshot_id: str) -> bool:
        try:
            self._resolve_id(key, snapshot_id, self._chain_ids(key))
        except (NotFoundError, SnapshotNotFoundError):
            return False
        return True

    def get_snapshot(self, key: str, snapshot_id: str) -> Snapshot:
        """Structured snapshot by (possibly abbreviated) id.

        Raises:
            NotFoundError: If key has no history
            SnapshotNotFoundError: If the id is not in key's chain
        """
        full = self._resolve_id(key, snapshot_id, self._chain_ids(key))
        for snapshot in self.snapshots(key):
            if snapshot.id == full:
                return snapshot
        raise SnapshotNotFoundError(key, snapshot_id)

    def get_snapshot_content(self, key: str, snapshot_id: str) -> bytes:
        """Exact bytes recorded by a snapshot.

        Raises:
            NotFoundError: If key has no history
            SnapshotNotFoundError: If the id is not in key's chain
        """
        full = self._resolve_id(key, snapshot_id, self._chain_ids(key))
        return self._blob(full, key)

    def get_head_content(self, key: str) -> bytes:
        """Content of key's newest snapshot.

        Raises:
            NoHistoryError: If key has no snapshots
        """
        head = self._ref_tip(key)
        if head is None:
            raise NoHistoryError(key)
        return self._blob(head, key)

    def head_id(self, key: str) -> Optional[str]:
        """Id of key's newest snapshot, or None."""
        return self._ref_tip(key)

    def parent_of(self, key: str, snapshot_id: str) -> Optional[str]:
        """Id of the snapshot preceding snapshot_id in key's chain."""
        chain = self._chain_ids(key)
        full = self._resolve_id(key, snapshot_id, chain)
        position = chain.index(full)
        return chain[position + 1] if position + 1 < len(chain) else None

    def _history_refs(self) -> List[str]:
        output = self.git.run("for-each-ref", "--format=%(refname)", f"{REF_NAMESPACE}/")
        return [line for line in output.splitlines() if line]

    def list_all_storage_keys(self) -> List[str]:
        """Every storage key with history in the repository, sorted."""
        keys = []
        for ref in self._history_refs():
            names = self.git.run("ls-tree", "-r", "--name-only", "-z", ref).split("\0")
            keys.extend(name for name in names if name)
        return sorted(keys)

    def stats(self) -> RepositoryStats:
        """Count keys and snapshots and measure the repository on disk."""
        refs = self._history_refs()
        snapshots = sum(int(self.git.run("rev-list", "--count", ref).strip()) for ref in refs)
        return RepositoryStats(
            root=str(self.root),
            files=len(refs),
            snapshots=snapshots,
            disk_bytes=directory_size(self.root),
        )


__all__ = ["BackupRepository", "ref_for_key", "REF_NAMESPACE"]
