"""Path filtering for files that should never reach the reviewer.

Patterns are a small subset of .gitignore syntax: ``**`` crosses directory
boundaries, ``*`` and ``?`` stay inside one path segment, and a trailing
slash matches a directory and everything beneath it. There is no negation and
no basename-only matching; a pattern always matches against the whole path.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

IGNORE_FILE = ".bugmentignore"

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    # Lock files
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "composer.lock",
    "Pipfile.lock",
    "poetry.lock",
    "Cargo.lock",
    # Dependencies
    "node_modules/**",
    "vendor/**",
    ".pnp/**",
    # Build output
    "dist/**",
    "build/**",
    "out/**",
    "target/**",
    ".next/**",
    ".nuxt/**",
    ".output/**",
    # OS files
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    # Logs
    "*.log",
    "logs/**",
    "npm-debug.log*",
    "yarn-debug.log*",
    "yarn-error.log*",
    # Local environment files
    ".env.local",
    ".env.development.local",
    ".env.test.local",
    ".env.production.local",
    # Caches and scratch space
    ".cache/**",
    ".tmp/**",
    ".temp/**",
    "tmp/**",
    "temp/**",
    # Editors
    ".vscode/**",
    ".idea/**",
    "*.swp",
    "*.swo",
    "*~",
    # Coverage
    "coverage/**",
    ".nyc_output/**",
    "*.lcov",
    # Tool caches
    "*.tsbuildinfo",
    ".eslintcache",
    ".stylelintcache",
)


def _normalize(path: str) -> str:
    path = path.strip()
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compile one glob pattern into an anchored regular expression."""
    pattern = _normalize(pattern)
    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern.rstrip("/")

    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1

    regex = "".join(parts)
    if directory_only:
        regex += "/.*"
    return re.compile(regex)


def read_ignore_file(path: Path) -> list[str]:
    """Return the patterns of an ignore file, skipping blank and comment lines."""
    patterns = []
    for raw in path.read_text(encoding="utf-8").split("\n"):
        line = raw.rstrip("\r").strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


class IgnoreMatcher:
    """Ordered glob patterns; the first matching pattern wins."""

    def __init__(self, patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS):
        self._patterns: list[str] = []
        self._compiled: list[re.Pattern] = []
        for pattern in patterns:
            self.add(pattern)

    @classmethod
    def from_project(
        cls,
        project_root: str | Path,
        extra_patterns: Iterable[str] = (),
        use_defaults: bool = True,
    ) -> IgnoreMatcher:
        """Build a matcher from the defaults, ``.bugmentignore`` and config patterns."""
        matcher = cls(DEFAULT_IGNORE_PATTERNS if use_defaults else ())
        ignore_file = Path(project_root) / IGNORE_FILE
        if ignore_file.is_file():
            try:
                custom = read_ignore_file(ignore_file)
            except OSError as e:
                logger.warning("Could not read %s: %s", ignore_file, e)
            else:
                logger.info("Loaded %d pattern(s) from %s", len(custom), ignore_file)
                for pattern in custom:
                    matcher.add(pattern)
        for pattern in extra_patterns:
            matcher.add(pattern)
        return matcher

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def add(self, pattern: str) -> None:
        self._patterns.append(pattern)
        self._compiled.append(glob_to_regex(pattern))

    def should_ignore(self, path: str) -> bool:
        normalized = _normalize(path)
        for pattern, regex in zip(self._patterns, self._compiled):
            if regex.fullmatch(normalized):
                logger.debug("Ignoring %s (matched %r)", path, pattern)
                return True
        return False

    def filter_files(self, paths: Iterable[str]) -> list[str]:
        return [p for p in paths if not self.should_ignore(p)]
