"""Constants for file-history."""

APP_NAME = "file-history"
APP_AUTHOR = "file-history"

# Configuration
CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "FILE_HISTORY_CONFIG"
REPOSITORY_ENV_VAR = "FILE_HISTORY_REPOSITORY"

# Repository layout (inside the backup repository root)
LOCK_FILE = "file-history.lock"

# Display defaults
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_DISPLAY_TEMPLATE = "{date}, {age}"
DEFAULT_COMMIT_MESSAGE = "backup {path}"

# Committer identity used when none is configured
DEFAULT_AUTHOR_NAME = "file-history"
DEFAULT_AUTHOR_EMAIL = "file-history@localhost"

# Version
VERSION = "0.1.0"
