"""Command-style interface to the git binary backing the repository."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence

from .errors import BackendUnavailableError, GitCommandError

logger = logging.getLogger(__name__)


class GitBackend:
    """Runs git commands against one repository.

    Every call is an argument vector (never a shell string), executed as::

        git --literal-pathspecs -C <root> <operation> <args...>

    ``--literal-pathspecs`` disables glob and magic interpretation of paths,
    so storage keys are always matched byte for byte.
    """

    def __init__(
        self,
        root: Path,
        binary: str = "git",
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
    ):
        """Initialize backend.

        Args:
            root: Directory of the (bare) backup repository
            binary: git executable name or path
            author_name: Identity recorded on snapshots
            author_email: Identity recorded on snapshots
        """
        self.root = Path(root)
        self.binary = binary
        self._env = self._build_env(author_name, author_email)

    @staticmethod
    def _build_env(name: Optional[str], email: Optional[str]) -> Dict[str, str]:
        env = dict(os.environ)
        env.update({
            "GIT_TERMINAL_PROMPT": "0",
            "LC_ALL": "C",
            "LANG": "C",
            # Snapshots must not depend on system-wide git configuration
            "GIT_CONFIG_NOSYSTEM": "1",
        })
        for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_LITERAL_PATHSPECS"):
            env.pop(var, None)
        if name:
            env["GIT_AUTHOR_NAME"] = env["GIT_COMMITTER_NAME"] = name
        if email:
            env["GIT_AUTHOR_EMAIL"] = env["GIT_COMMITTER_EMAIL"] = email
        return env

    def _argv(self, operation: str, args: Sequence[str]) -> list:
        return [self.binary, "--literal-pathspecs", "-C", str(self.root), operation, *args]

    def run_bytes(
        self,
        operation: str,
        *args: str,
        input: Optional[bytes] = None,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """Run a git operation and return the completed process (bytes output).

        Raises:
            BackendUnavailableError: If the git binary cannot be executed
            GitCommandError: If check is True and git exits non-zero
        """
        argv = self._argv(operation, args)
        logger.debug("git %s %s", operation, " ".join(args))
        run_env = self._env if env is None else {**self._env, **env}
        try:
            result = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                env=run_env,
                check=False,  # Handle errors manually for better diagnostics
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise BackendUnavailableError(self.binary, str(e)) from e

        if check and result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            raise GitCommandError([operation, *args], result.returncode, stderr)
        return result

    def run(
        self,
        operation: str,
        *args: str,
        input: Optional[str] = None,
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        """Run a git operation and return captured stdout as text."""
        result = self.run_bytes(
            operation,
            *args,
            input=input.encode("utf-8") if input is not None else None,
            check=check,
            env=env,
        )
        return result.stdout.decode("utf-8", errors="replace")

    def available(self) -> bool:
        """Probe whether the configured binary runs at all."""
        try:
            subprocess.run(
                [self.binary, "--version"],
                capture_output=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError):
            return False
        return True
