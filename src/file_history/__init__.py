"""Per-file save history backed by a hidden git repository."""

from .config import BackupConfig, load_config, save_config
from .constants import VERSION
from .core import SaveResult, SaveStatus, Snapshot, SnapshotEntry
from .errors import FileHistoryError
from .pathcodec import decode_key, encode_path
from .repository import BackupRepository
from .service import FileHistoryService

__version__ = VERSION

__all__ = [
    "BackupConfig",
    "BackupRepository",
    "FileHistoryError",
    "FileHistoryService",
    "SaveResult",
    "SaveStatus",
    "Snapshot",
    "SnapshotEntry",
    "decode_key",
    "encode_path",
    "load_config",
    "save_config",
]
