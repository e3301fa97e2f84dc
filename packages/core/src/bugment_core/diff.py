"""Unified diff parsing and line-coordinate validation.

GitHub only accepts an inline review comment on a line that appears on the
RIGHT side of the PR diff. ``parse_diff`` turns raw ``git diff`` output into
a per-file list of hunks, and ``ParsedDiff.is_line_in_diff`` answers whether a
(file, new-side line) pair can carry a comment.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bugment_core.ignore import IgnoreMatcher

logger = logging.getLogger(__name__)

_FILE_HEADER_RE = re.compile(r"^diff --git a/(.+) b/(.+)$")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass(frozen=True)
class Hunk:
    file_path: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: tuple[str, ...] = ()

    @property
    def new_end(self) -> int:
        return self.new_start + self.new_lines - 1

    def contains_new_line(self, line: int) -> bool:
        """Walk the hunk body and report whether ``line`` exists on the new side.

        Added and context lines advance the new-side counter; removed lines
        have no new-side coordinate and are skipped.
        """
        if not self.new_start <= line <= self.new_end:
            return False
        current = self.new_start
        for text in self.lines:
            if text.startswith("-"):
                continue
            if text.startswith("+") or text.startswith(" "):
                if current == line:
                    return True
                current += 1
        return False


def _strip_slashes(path: str) -> str:
    return path.lstrip("/")


@dataclass
class ParsedDiff:
    """File path (new side) → hunks, in diff order. Missing keys mean untouched or ignored."""

    files: dict[str, list[Hunk]] = field(default_factory=dict)

    def __contains__(self, path: str) -> bool:
        return self.resolve_path(path) is not None

    def __len__(self) -> int:
        return len(self.files)

    @property
    def hunk_count(self) -> int:
        return sum(len(hunks) for hunks in self.files.values())

    def resolve_path(self, path: str | None) -> str | None:
        """Return the diff key ``path`` refers to, or None.

        The AI may report paths with a leading slash, relative to a
        subdirectory, or with an extra prefix; the first key that equals the
        path or shares a ``/``-bounded suffix with it wins.
        """
        if not path:
            return None
        if path in self.files:
            return path
        wanted = _strip_slashes(path)
        for key in self.files:
            candidate = _strip_slashes(key)
            if (
                candidate == wanted
                or candidate.endswith("/" + wanted)
                or wanted.endswith("/" + candidate)
            ):
                return key
        return None

    def is_line_in_diff(self, path: str | None, line: int | None) -> bool:
        if line is None or line <= 0:
            return False
        key = self.resolve_path(path)
        if key is None:
            return False
        return any(hunk.contains_new_line(line) for hunk in self.files[key])


def is_line_in_diff(parsed: ParsedDiff, path: str | None, line: int | None) -> bool:
    return parsed.is_line_in_diff(path, line)


def filter_diff(text: str, ignore: IgnoreMatcher) -> str:
    """Return ``text`` without the file sections whose new-side path is ignored.

    Used to keep ignored files out of the prompt; sections with an
    unparseable header are kept.
    """
    kept: list[str] = []
    skipping = False
    for line in text.split("\n"):
        if line.startswith("diff --git"):
            match = _FILE_HEADER_RE.match(line)
            skipping = bool(match) and ignore.should_ignore(match.group(2))
        if not skipping:
            kept.append(line)
    return "\n".join(kept)


def parse_diff(text: str, ignore: IgnoreMatcher | None = None) -> ParsedDiff:
    """Parse unified diff text into a ParsedDiff, dropping ignored files inline.

    Malformed headers are logged and skipped; they never abort the parse.
    """
    files: dict[str, list[Hunk]] = {}
    current_file: str | None = None
    ignoring = False

    # Hunks are frozen; collect the header and body, then build on flush.
    header: tuple[int, int, int, int] | None = None
    body: list[str] = []

    def flush() -> None:
        nonlocal header, body
        if current_file is not None and header is not None:
            old_start, old_lines, new_start, new_lines = header
            files[current_file].append(
                Hunk(current_file, old_start, old_lines, new_start, new_lines, tuple(body))
            )
        header = None
        body = []

    for line in text.split("\n"):
        if line.startswith("diff --git"):
            flush()
            match = _FILE_HEADER_RE.match(line)
            if not match:
                logger.warning("Could not parse diff file header: %s", line)
                current_file = None
                ignoring = False
                continue
            path = match.group(2)
            if ignore is not None and ignore.should_ignore(path):
                logger.debug("Skipping ignored file in diff: %s", path)
                current_file = None
                ignoring = True
                continue
            ignoring = False
            current_file = path
            files.setdefault(path, [])
            logger.debug("Diff file: %s", path)
            continue

        if ignoring:
            continue

        if line.startswith("@@"):
            flush()
            match = _HUNK_HEADER_RE.match(line)
            if not match:
                logger.warning("Could not parse hunk header: %s", line)
                continue
            if current_file is None:
                continue
            old_start, old_lines, new_start, new_lines = match.groups()
            header = (
                int(old_start),
                int(old_lines) if old_lines is not None else 1,
                int(new_start),
                int(new_lines) if new_lines is not None else 1,
            )
            logger.debug("  hunk %s (%s)", line.split(" @@")[0] + " @@", current_file)
            continue

        if header is not None and line[:1] in ("+", "-", " "):
            body.append(line)

    flush()

    parsed = ParsedDiff(files)
    logger.info("Parsed diff: %d file(s), %d hunk(s)", len(parsed), parsed.hunk_count)
    return parsed
