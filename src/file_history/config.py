"""Configuration for file-history.

Configuration is an explicit object handed to the repository and service;
there is no process-wide default instance.  A YAML file provides the
values::

    repository: ~/.local/share/file-history/repository
    git_binary: git
    date_format: "%Y-%m-%d %H:%M:%S"
    display_template: "{date}, {age}"
    exclude:
      - '.*\\.secret$'
      - '^/tmp/'
    exclude_globs:
      - "*.swp"
"""

import os
import re
from pathlib import Path
from typing import List, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    APP_AUTHOR,
    APP_NAME,
    CONFIG_ENV_VAR,
    CONFIG_FILE,
    DEFAULT_AUTHOR_EMAIL,
    DEFAULT_AUTHOR_NAME,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_DATE_FORMAT,
    DEFAULT_DISPLAY_TEMPLATE,
    REPOSITORY_ENV_VAR,
)
from .errors import ConfigError
from .utils import atomic_write_text


def default_repository_dir() -> Path:
    """Platform-appropriate location of the backup repository."""
    return Path(platformdirs.user_data_dir(APP_NAME, APP_AUTHOR)) / "repository"


def default_config_path() -> Path:
    """Platform-appropriate location of config.yaml."""
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)) / CONFIG_FILE


class BackupConfig(BaseModel):
    """Backup repository configuration (stored in config.yaml)."""

    repository: Path = Field(default_factory=default_repository_dir)
    git_binary: str = "git"
    date_format: str = DEFAULT_DATE_FORMAT
    display_template: str = DEFAULT_DISPLAY_TEMPLATE
    exclude: List[str] = Field(default_factory=list)
    exclude_globs: List[str] = Field(default_factory=list)
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    lock_timeout: float = 30.0
    compact_on_start: bool = True
    author_name: str = DEFAULT_AUTHOR_NAME
    author_email: str = DEFAULT_AUTHOR_EMAIL

    @field_validator("repository", mode="before")
    @classmethod
    def _expand_repository(cls, value):
        if isinstance(value, (str, Path)):
            return Path(os.path.expandvars(str(value))).expanduser()
        return value

    @field_validator("exclude")
    @classmethod
    def _check_rules(cls, rules: List[str]) -> List[str]:
        for rule in rules:
            try:
                re.compile(rule)
            except re.error as e:
                raise ValueError(f"invalid exclusion rule {rule!r}: {e}")
        return rules

    @field_validator("display_template")
    @classmethod
    def _check_template(cls, template: str) -> str:
        try:
            template.format(date="", age="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(
                f"display_template only accepts {{date}} and {{age}} tokens: {e}"
            )
        return template

    @field_validator("commit_message")
    @classmethod
    def _check_message(cls, template: str) -> str:
        try:
            template.format(path="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"commit_message only accepts the {{path}} token: {e}")
        return template

    @field_validator("lock_timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("lock_timeout must be positive")
        return value


def resolve_config_path(path: Optional[Path] = None) -> Path:
    """Resolution order: explicit path > $FILE_HISTORY_CONFIG > user config dir."""
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return default_config_path()


def load_config(path: Optional[Path] = None) -> BackupConfig:
    """Load configuration, falling back to defaults when the file is absent.

    ``$FILE_HISTORY_REPOSITORY`` overrides the configured repository path.

    Raises:
        ConfigError: If the file is unreadable, not YAML, or has invalid values
    """
    cfg_path = resolve_config_path(path)
    data = {}
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read configuration {cfg_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration {cfg_path} must be a mapping")

    repo_override = os.environ.get(REPOSITORY_ENV_VAR)
    if repo_override:
        data["repository"] = repo_override

    try:
        return BackupConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}:\n{e}") from e


def save_config(config: BackupConfig, path: Optional[Path] = None) -> Path:
    """Save configuration atomically and return the file written."""
    cfg_path = resolve_config_path(path)
    data = config.model_dump(mode="json")
    atomic_write_text(cfg_path, yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
    return cfg_path
