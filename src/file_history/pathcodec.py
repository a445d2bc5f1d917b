"""Bidirectional mapping between absolute paths and storage keys.

A storage key is the repository-relative path under which every snapshot
of one file is committed. Keys are built so that they:

- are deterministic and injective for distinct normalized paths
- contain only ASCII characters safe for git pathspecs and shell quoting
- never begin with ``-`` or contain ``.``/``..``/``.git`` segments

Layout::

    /home/ana/notes.txt        -> _root/home/ana/notes.txt
    C:\\Users\\ana\\notes.txt    -> _drive_c/Users/ana/notes.txt
    \\\\server\\share\\a.txt       -> _unc/server/share/a.txt

Every segment after the root marker is percent-escaped, so user segments
can never be confused with a root marker (markers only occupy position 0).
"""

import ntpath
import os
import posixpath
import re
from pathlib import PurePath
from typing import List, Union
from urllib.parse import quote, unquote

from .errors import InvalidPathError

POSIX_ROOT = "_root"
DRIVE_PREFIX = "_drive_"
UNC_ROOT = "_unc"

# Punctuation kept verbatim in addition to quote()'s always-safe "_.-" ("~" is escaped below)
_SAFE = "+,=@"

_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")
_KEY_SEGMENT = re.compile(r"^(?:[A-Za-z0-9_+,=@]|%[0-9A-F]{2})(?:[A-Za-z0-9_.+,=@-]|%[0-9A-F]{2})*$")

PathLike = Union[str, "os.PathLike[str]"]


def _escape_segment(segment: str) -> str:
    try:
        escaped = quote(segment, safe=_SAFE, errors="strict")
    except UnicodeEncodeError as e:
        raise InvalidPathError(segment, "segment is not valid unicode") from e
    # git rejects "git~1" path components (NTFS short name of .git)
    escaped = escaped.replace("~", "%7E")
    # Leading '.' would allow '.', '..', '.git'; leading '-' reads as an option
    if escaped.startswith("."):
        escaped = "%2E" + escaped[1:]
    elif escaped.startswith("-"):
        escaped = "%2D" + escaped[1:]
    return escaped


def _unescape_segment(segment: str, key: str) -> str:
    if not _KEY_SEGMENT.match(segment):
        raise InvalidPathError(key, f"malformed key segment {segment!r}")
    try:
        return unquote(segment, errors="strict")
    except UnicodeDecodeError as e:
        raise InvalidPathError(key, f"key segment {segment!r} is not UTF-8") from e


def _is_windows_path(text: str) -> bool:
    return bool(_DRIVE.match(text)) or text.startswith("\\\\")


def _split_windows(text: str, original: object) -> List[str]:
    normalized = ntpath.normpath(text)
    drive, rest = ntpath.splitdrive(normalized)
    if not drive:
        raise InvalidPathError(original, "path has no drive or share")
    segments = [s for s in re.split(r"[\\/]", rest) if s]
    if drive.startswith("\\\\"):
        unc = [s for s in drive.split("\\") if s]
        if len(unc) != 2:
            raise InvalidPathError(original, "UNC path needs both host and share")
        if not segments:
            raise InvalidPathError(original, "path names a share, not a file")
        return [UNC_ROOT, _escape_segment(unc[0].lower()), _escape_segment(unc[1])] + [
            _escape_segment(s) for s in segments
        ]
    return [DRIVE_PREFIX + drive[0].lower()] + [_escape_segment(s) for s in segments]


def _split_posix(text: str) -> List[str]:
    normalized = posixpath.normpath(text)
    segments = [s for s in normalized.split("/") if s]
    return [POSIX_ROOT] + [_escape_segment(s) for s in segments]


def encode_path(path: PathLike) -> str:
    """Encode an absolute filesystem path into a storage key.

    Args:
        path: Absolute POSIX or Windows path (str or PathLike)

    Returns:
        Storage key using '/' separators

    Raises:
        InvalidPathError: If the path is empty, relative, or contains NUL
    """
    text = os.fspath(path) if not isinstance(path, str) else path
    if isinstance(text, bytes):
        raise InvalidPathError(path, "byte paths are not supported")
    if not text:
        raise InvalidPathError(path, "path is empty")
    if "\x00" in text:
        raise InvalidPathError(path, "path contains a NUL byte")

    if _is_windows_path(text):
        segments = _split_windows(text, path)
    elif text.startswith("/"):
        segments = _split_posix(text)
    else:
        raise InvalidPathError(path, "path is not absolute")

    if len(segments) == 1:
        raise InvalidPathError(path, "path names a filesystem root, not a file")
    return "/".join(segments)


def decode_key(key: str) -> str:
    """Recover the absolute path a storage key was derived from.

    Windows drive letters come back upper-cased (``C:\\...``).

    Raises:
        InvalidPathError: If key was not produced by encode_path
    """
    if not key:
        raise InvalidPathError(key, "key is empty")
    marker, *rest = key.split("/")
    if not rest:
        raise InvalidPathError(key, "key has no path segments")
    segments = [_unescape_segment(s, key) for s in rest]

    if marker == POSIX_ROOT:
        return "/" + "/".join(segments)
    if marker == UNC_ROOT:
        if len(segments) < 3:
            raise InvalidPathError(key, "UNC key needs host, share and a file")
        return "\\\\" + "\\".join(segments)
    if marker.startswith(DRIVE_PREFIX) and len(marker) == len(DRIVE_PREFIX) + 1:
        letter = marker[-1]
        if letter.isalpha() and letter.isascii():
            return f"{letter.upper()}:\\" + "\\".join(segments)
    raise InvalidPathError(key, f"unknown root marker {marker!r}")


def is_storage_key(key: str) -> bool:
    """Check whether a string is a well-formed storage key."""
    try:
        decode_key(key)
    except InvalidPathError:
        return False
    return True


def resolve_for_key(path: PathLike) -> str:
    """Make a user-supplied path absolute (without following symlinks) and encode it."""
    p = PurePath(path)
    text = str(p)
    if not (_is_windows_path(text) or text.startswith("/")):
        text = os.path.abspath(text)
    return encode_path(text)


__all__ = [
    "encode_path",
    "decode_key",
    "is_storage_key",
    "resolve_for_key",
]
