"""Exclusion rules deciding which saved files reach the backup repository."""

import re
from typing import Iterable, List, Optional, Pattern

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .errors import ConfigError


_WINDOWS_PATH = re.compile(r"^(?:[A-Za-z]:[\\/]|\\\\)")


def _normalize(path: str) -> str:
    # Rules are written against '/' separated paths; a POSIX name may hold a literal backslash
    if _WINDOWS_PATH.match(path):
        return path.replace("\\", "/")
    return path


class ExclusionFilter:
    """Ordered regular-expression (and optional gitignore-style) exclusion rules."""

    def __init__(self, rules: Iterable[str] = (), globs: Iterable[str] = ()):
        """Compile rules once for efficiency.

        Args:
            rules: Regular expressions searched anywhere in the absolute path
            globs: Gitignore-style patterns matched against the absolute path

        Raises:
            ConfigError: If a rule is not a valid regular expression
        """
        self.rules: List[str] = list(rules)
        self.globs: List[str] = list(globs)
        self._compiled: List[Pattern[str]] = []
        for rule in self.rules:
            try:
                self._compiled.append(re.compile(rule))
            except re.error as e:
                raise ConfigError(f"Invalid exclusion rule {rule!r}: {e}") from e
        self._spec = PathSpec.from_lines(GitWildMatchPattern, self.globs) if self.globs else None

    def matching_rule(self, path: str) -> Optional[str]:
        """Return the first regex rule excluding path ("exclude_globs" for a glob hit), or None."""
        target = _normalize(str(path))
        for rule, pattern in zip(self.rules, self._compiled):
            if pattern.search(target):
                return rule
        # Globs are evaluated as one gitignore file so '!' negations apply
        if self._spec is not None and self._spec.match_file(target.lstrip("/")):
            return "exclude_globs"
        return None

    def is_excluded(self, path: str) -> bool:
        """Check if an absolute path should never be backed up.

        Args:
            path: Absolute path of the saved file

        Returns:
            True if any rule matches
        """
        return self.matching_rule(path) is not None


def is_excluded(path: str, rules: Iterable[str]) -> bool:
    """One-shot form of ExclusionFilter(rules).is_excluded(path)."""
    return ExclusionFilter(rules).is_excluded(path)
