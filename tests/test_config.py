"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from file_history.config import (
    BackupConfig,
    default_repository_dir,
    load_config,
    resolve_config_path,
    save_config,
)
from file_history.constants import DEFAULT_COMMIT_MESSAGE, DEFAULT_DISPLAY_TEMPLATE
from file_history.errors import ConfigError


class TestBackupConfig:
    """Model defaults and validators."""

    def test_defaults(self):
        config = BackupConfig()
        assert config.repository == default_repository_dir()
        assert config.git_binary == "git"
        assert config.display_template == DEFAULT_DISPLAY_TEMPLATE
        assert config.commit_message == DEFAULT_COMMIT_MESSAGE
        assert config.exclude == []
        assert config.compact_on_start is True

    def test_repository_expands_user(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = BackupConfig(repository="~/backups")
        assert config.repository == tmp_path / "backups"

    def test_repository_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BACKUP_ROOT", str(tmp_path))
        config = BackupConfig(repository="$BACKUP_ROOT/repo")
        assert config.repository == tmp_path / "repo"

    def test_invalid_exclusion_rule(self):
        with pytest.raises(ValueError, match="invalid exclusion rule"):
            BackupConfig(exclude=["[unterminated"])

    def test_unknown_template_token(self):
        with pytest.raises(ValueError, match="display_template"):
            BackupConfig(display_template="{date} by {author}")

    def test_template_tokens_are_optional(self):
        assert BackupConfig(display_template="{age}").display_template == "{age}"

    def test_commit_message_token(self):
        assert BackupConfig(commit_message="saved {path}").commit_message == "saved {path}"
        with pytest.raises(ValueError, match="commit_message"):
            BackupConfig(commit_message="saved {file}")

    def test_lock_timeout_must_be_positive(self):
        with pytest.raises(ValueError, match="lock_timeout"):
            BackupConfig(lock_timeout=0)


class TestLoadSave:
    """Config file round trip and resolution order."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config == BackupConfig()

    def test_load_from_yaml(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text(yaml.safe_dump({
            "repository": str(tmp_path / "repo"),
            "exclude": [r"\.secret$"],
            "display_template": "{age}",
        }))

        config = load_config(cfg)
        assert config.repository == tmp_path / "repo"
        assert config.exclude == [r"\.secret$"]
        assert config.display_template == "{age}"

    def test_save_then_load(self, tmp_path):
        cfg = tmp_path / "nested" / "config.yaml"
        original = BackupConfig(
            repository=tmp_path / "repo",
            exclude_globs=["*.swp"],
            lock_timeout=5,
        )

        written = save_config(original, cfg)
        assert written == cfg
        assert load_config(cfg) == original

    def test_invalid_yaml(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text("exclude: [unclosed\n")
        with pytest.raises(ConfigError, match="Cannot read configuration"):
            load_config(cfg)

    def test_non_mapping(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(cfg)

    def test_invalid_values(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text("lock_timeout: -1\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(cfg)

    def test_env_var_selects_config_file(self, tmp_path, monkeypatch):
        cfg = tmp_path / "from-env.yaml"
        cfg.write_text("git_binary: /opt/git/bin/git\n")
        monkeypatch.setenv("FILE_HISTORY_CONFIG", str(cfg))

        assert resolve_config_path() == cfg
        assert load_config().git_binary == "/opt/git/bin/git"

    def test_explicit_path_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FILE_HISTORY_CONFIG", str(tmp_path / "env.yaml"))
        assert resolve_config_path(tmp_path / "explicit.yaml") == tmp_path / "explicit.yaml"

    def test_repository_env_override(self, tmp_path, monkeypatch):
        cfg = tmp_path / "config.yaml"
        cfg.write_text(f"repository: {tmp_path / 'configured'}\n")
        monkeypatch.setenv("FILE_HISTORY_REPOSITORY", str(tmp_path / "override"))

        assert load_config(cfg).repository == Path(tmp_path / "override")
