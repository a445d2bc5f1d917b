"""Utility functions for file-history."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import os
import tempfile


def utc_now() -> datetime:
    """Get current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def from_epoch(seconds: int) -> datetime:
    """Convert a Unix epoch (as reported by git %ct) to aware UTC."""
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def humanize_age(moment: datetime, now: Optional[datetime] = None) -> str:
    """Convert a timestamp to human-readable relative time.

    Naive datetimes are assumed to be UTC.

    Examples:
        30 seconds ago -> "just now"
        2 hours ago    -> "2 hours ago"
        5 days ago     -> "5 days ago"
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or utc_now()
    seconds = (now - moment).total_seconds()

    if seconds < 60:
        return "just now"
    elif seconds < 3600:  # Less than 1 hour
        minutes = int(seconds / 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    elif seconds < 86400:  # Less than 1 day
        hours = int(seconds / 3600)
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    elif seconds < 604800:  # Less than 1 week
        days = int(seconds / 86400)
        return f"{days} day{'s' if days != 1 else ''} ago"
    elif seconds < 2592000:  # Less than 30 days
        weeks = int(seconds / 604800)
        return f"{weeks} week{'s' if weeks != 1 else ''} ago"
    elif seconds < 31536000:  # Less than 1 year
        months = int(seconds / 2592000)
        return f"{months} month{'s' if months != 1 else ''} ago"
    else:
        years = int(seconds / 31536000)
        return f"{years} year{'s' if years != 1 else ''} ago"


def render_display_time(
    moment: datetime,
    date_format: str,
    template: str,
    now: Optional[datetime] = None,
) -> str:
    """Render a snapshot timestamp through the display template.

    The template recognizes two tokens: ``{date}`` (the timestamp in local
    time formatted with ``date_format``) and ``{age}`` (relative age).

    Examples:
        render_display_time(ts, "%Y-%m-%d", "{date}, {age}")
        -> "2025-08-26, 2 hours ago"
    """
    return template.format(
        date=moment.astimezone().strftime(date_format),
        age=humanize_age(moment, now),
    )


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def directory_size(path: Path) -> int:
    """Total size in bytes of regular files below path."""
    total = 0
    for p in path.rglob("*"):
        if p.is_file() and not p.is_symlink():
            total += p.stat().st_size
    return total


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so a rename inside it is durable.

    Best-effort: Windows and some filesystems don't support directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        dirfd = os.open(str(path), flags)
        try:
            os.fsync(dirfd)
        finally:
            os.close(dirfd)
    except OSError:
        pass


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Atomically write bytes to file with crash safety.

    1. Writes to temp file in the same directory with fsync
    2. Atomic rename to target path (appears all-at-once)
    3. Fsync parent directory to ensure rename is durable

    Permissions of an existing target are carried over to the new file.
    A symlinked path is written through: the file it points to is
    replaced and the link itself is kept.
    """
    if path.is_symlink():
        path = path.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    mode = None
    if path.exists():
        mode = path.stat().st_mode & 0o7777

    with tempfile.NamedTemporaryFile(
        mode="wb",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
        suffix=""
    ) as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
        _fsync_dir(path.parent)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write UTF-8 text to file."""
    atomic_write_bytes(path, text.encode("utf-8"))
