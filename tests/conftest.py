"""Shared test fixtures and utilities."""

from pathlib import Path

import pytest

from file_history.config import BackupConfig
from file_history.repository import BackupRepository
from file_history.service import FileHistoryService

from tests.git_utils import skip_if_no_git


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the user's config and repository."""
    monkeypatch.delenv("FILE_HISTORY_CONFIG", raising=False)
    monkeypatch.delenv("FILE_HISTORY_REPOSITORY", raising=False)
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def config(tmp_path):
    """Config with the repository under tmp_path."""
    return BackupConfig(
        repository=tmp_path / "backups",
        compact_on_start=False,
        lock_timeout=10,
    )


@pytest.fixture
def repo(config):
    """Initialized backup repository (requires git)."""
    skip_if_no_git()
    return BackupRepository(config).init()


@pytest.fixture
def service(config):
    """Service over a fresh repository (requires git)."""
    skip_if_no_git()
    return FileHistoryService(config)


@pytest.fixture
def workdir(tmp_path):
    """Directory holding the 'live' files being edited."""
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def write_file(workdir):
    """Factory fixture to write files relative to workdir."""
    def _write(path: str, content="test content") -> Path:
        file_path = workdir / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            file_path.write_bytes(content)
        else:
            file_path.write_text(content)
        return file_path
    return _write
