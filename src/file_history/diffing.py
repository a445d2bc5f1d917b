"""Diff rendering and restoration of snapshots."""

import contextlib
import difflib
import logging
from pathlib import Path
from typing import Iterator, Optional, Union

from .errors import (
    InvalidPathError,
    NoHistoryError,
    NotFoundError,
    SnapshotNotFoundError,
    StaleSelectionError,
)
from .pathcodec import decode_key
from .repository import BackupRepository
from .utils import atomic_write_bytes

logger = logging.getLogger(__name__)

BINARY_NOTICE = "Binary content differs"


@contextlib.contextmanager
def _selection(key: str, snapshot_id: str) -> Iterator[None]:
    """Report lookups of vanished keys/snapshots as stale selections."""
    try:
        yield
    except (NotFoundError, NoHistoryError) as e:
        raise StaleSelectionError(key) from e
    except SnapshotNotFoundError as e:
        raise StaleSelectionError(key, snapshot_id) from e


def _as_text(content: bytes) -> Optional[str]:
    if b"\x00" in content:
        return None
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _display_path(key: str) -> str:
    try:
        return decode_key(key)
    except InvalidPathError:
        return key


def diff_contents(
    old: bytes,
    new: bytes,
    old_label: str,
    new_label: str,
    context: int = 3,
) -> str:
    """Unified diff of two byte strings.

    Returns an empty string when contents are equal, and a single
    ``Binary content differs`` line when either side is not UTF-8 text.
    """
    if old == new:
        return ""
    old_text, new_text = _as_text(old), _as_text(new)
    if old_text is None or new_text is None:
        return f"--- {old_label}\n+++ {new_label}\n{BINARY_NOTICE}\n"

    lines = difflib.unified_diff(
        old_text.splitlines(keepends=True),
        new_text.splitlines(keepends=True),
        fromfile=old_label,
        tofile=new_label,
        n=context,
    )
    out = []
    for line in lines:
        out.append(line)
        if not line.endswith("\n"):
            out.append("\n\\ No newline at end of file\n")
    return "".join(out)


def render_diff(repo: BackupRepository, key: str, snapshot_id: str, context: int = 3) -> str:
    """Change introduced by a snapshot relative to its predecessor.

    The first snapshot of a chain is diffed against empty content.

    Raises:
        StaleSelectionError: If key or snapshot vanished
    """
    with _selection(key, snapshot_id):
        snapshot = repo.get_snapshot(key, snapshot_id)
        new = repo.get_snapshot_content(key, snapshot.id)
        if snapshot.parent:
            old = repo.get_snapshot_content(key, snapshot.parent)
            old_label = f"a{_display_path(key)}@{snapshot.parent[:12]}"
        else:
            old = b""
            old_label = "/dev/null"
    new_label = f"b{_display_path(key)}@{snapshot.id[:12]}"
    return diff_contents(old, new, old_label, new_label, context=context)


def open_as_new_document(repo: BackupRepository, key: str, snapshot_id: str) -> bytes:
    """Snapshot content for opening as a separate copy.

    Raises:
        StaleSelectionError: If key or snapshot vanished
    """
    with _selection(key, snapshot_id):
        return repo.get_snapshot_content(key, snapshot_id)


def restore(
    repo: BackupRepository,
    key: str,
    snapshot_id: str,
    destination: Union[str, Path],
) -> Path:
    """Overwrite the live file at destination with a snapshot's content.

    Destructive: callers are expected to confirm first. The write is
    atomic and does not itself create a snapshot.

    Returns:
        The destination path written

    Raises:
        StaleSelectionError: If key or snapshot vanished
    """
    with _selection(key, snapshot_id):
        content = repo.get_snapshot_content(key, snapshot_id)
    target = Path(destination)
    atomic_write_bytes(target, content)
    logger.info("Restored %s from %s", target, snapshot_id[:12])
    return target
