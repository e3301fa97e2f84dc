"""Parse the AI reviewer's markdown answer into typed issues.

The expected shape is a three-level grammar:

    # Bugs                         ← section, one per issue type
    ## 1. Title                    ← issue block
    **Severity**: high             ← labelled fields, value runs to the next label
    **Location**: src/app.py:42

Every level degrades independently: an unknown section is ignored, a block
missing its description or location is dropped with a warning, and a field
that is absent simply stays unset. Headers and labels inside fenced code
blocks are treated as plain text.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from bugment_core.models import Issue, ReviewResult

logger = logging.getLogger(__name__)

_SECTION_TYPES = {
    "bugs": "bug",
    "code smells": "code_smell",
    "security issues": "security",
    "performance issues": "performance",
}
_SUMMARY_SECTION = "overall comments"
_NONE_MARKERS = {"无", "none", "n/a", "no issues", "no issues found"}

# Normalized label → Issue field. English and the original Chinese labels.
_FIELD_LABELS = {
    "severity": "severity",
    "严重程度": "severity",
    "description": "description",
    "描述": "description",
    "location": "location",
    "位置": "location",
    "suggestion": "suggestion",
    "suggested fix": "suggestion",
    "建议修改": "suggestion",
    "rule reference": "rule_reference",
    "规则引用": "rule_reference",
    "ai fix prompt": "fix_prompt",
    "ai修复prompt": "fix_prompt",
}

# Checked in order, first hit wins.
_SEVERITY_KEYWORDS = (
    ("critical", ("critical", "严重", "🔴")),
    ("high", ("high", "major", "高", "🟠")),
    ("medium", ("medium", "moderate", "中", "🟡")),
    ("low", ("low", "minor", "轻微", "低", "🟢")),
)

_FIELD_RE = re.compile(r"^\s*(?:[-*]\s+)?\*\*(?P<label>[^*]+?)\s*[:：]?\s*\*\*\s*[:：]?\s*(?P<value>.*)$")
_BLOCK_TITLE_RE = re.compile(r"^(\d+)[.)、]\s*(.*)$")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+\.)\s+(.*)$")
_FENCED_RE = re.compile(r"```[^\n]*\n(.*?)\n?\s*```", re.DOTALL)

_LOCATION_COLON_RE = re.compile(r"^([^:]+):(\d+)(?:-(\d+))?")
_LOCATION_ANCHOR_RE = re.compile(r"^([^#]+)#L(\d+)(?:-L?(\d+))?")


def _split_headers(text: str, level: int) -> list[tuple[str, list[str]]]:
    """Split lines at markdown headers of exactly ``level`` hashes, outside code fences.

    Text before the first header is discarded.
    """
    prefix = "#" * level + " "
    sections: list[tuple[str, list[str]]] = []
    title: str | None = None
    lines: list[str] = []
    in_fence = False

    for line in text.split("\n"):
        if line.strip().startswith("```"):
            in_fence = not in_fence
        elif not in_fence and line.startswith(prefix):
            if title is not None:
                sections.append((title, lines))
            title = line[len(prefix) :].strip()
            lines = []
            continue
        if title is not None:
            lines.append(line)

    if title is not None:
        sections.append((title, lines))
    return sections


def _split_issue_blocks(lines: list[str]) -> list[tuple[str, str, list[str]]]:
    """Split a section into (number, title, lines) at ``## N. Title`` headers.

    Any other ``##`` heading belongs to the block it appears in.
    """
    blocks: list[tuple[str, str, list[str]]] = []
    current: list[str] | None = None
    in_fence = False

    for line in lines:
        if line.strip().startswith("```"):
            in_fence = not in_fence
        elif not in_fence and line.startswith("## "):
            match = _BLOCK_TITLE_RE.match(line[3:].strip())
            if match:
                current = []
                blocks.append((match.group(1), match.group(2).strip(), current))
                continue
        if current is not None:
            current.append(line)
    return blocks


def _is_empty_section(lines: list[str]) -> bool:
    body = "\n".join(lines).strip().strip("。.").strip().lower()
    return not body or body in _NONE_MARKERS


def _split_fields(lines: list[str]) -> dict[str, str]:
    fields: dict[str, list[str]] = {}
    current: str | None = None
    in_fence = False

    for line in lines:
        if not in_fence:
            match = _FIELD_RE.match(line)
            if match:
                label = match.group("label").strip().rstrip(":：").strip().lower()
                name = _FIELD_LABELS.get(label)
                if name is not None:
                    current = name
                    value = match.group("value")
                    fields[current] = [value]
                    if value.count("```") % 2:
                        in_fence = True
                    continue
        if line.strip().startswith("```"):
            in_fence = not in_fence
        if current is not None:
            fields[current].append(line)

    return {name: "\n".join(value).strip() for name, value in fields.items()}


def normalize_severity(text: str | None) -> str:
    """Map free-form severity text onto critical/high/medium/low; unknown → medium."""
    if not text:
        return "medium"
    lowered = text.lower()
    for severity, keywords in _SEVERITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return severity
    return "medium"


def parse_location(location: str) -> tuple[str | None, int | None, int | None]:
    """Return (file_path, start_line, end_line) from ``path:10-12`` or ``path#L10-L12``.

    All three are None when the text matches neither form.
    """
    text = location.strip().split("\n", 1)[0].strip()
    text = text.strip("`").lstrip("[").strip("`").strip()
    for regex in (_LOCATION_COLON_RE, _LOCATION_ANCHOR_RE):
        match = regex.match(text)
        if match:
            path = match.group(1).strip().strip("`")
            start = int(match.group(2))
            end = int(match.group(3)) if match.group(3) else start
            return path, start, end
    return None, None, None


def _extract_fix_prompt(value: str) -> str:
    match = _FENCED_RE.search(value)
    return match.group(1).strip() if match else value.strip()


def _parse_block(issue_type: str, number: str, title: str, lines: list[str]) -> Issue | None:
    fields = _split_fields(lines)
    issue_id = f"{issue_type}_{number}"

    description = fields.get("description")
    location = fields.get("location")
    if not description or not location:
        logger.warning("Dropping issue %s (%s): missing description or location", issue_id, title)
        return None

    file_path, start_line, end_line = parse_location(location)
    fix_prompt = fields.get("fix_prompt")

    return Issue(
        id=issue_id,
        type=issue_type,
        severity=normalize_severity(fields.get("severity")),
        title=title,
        description=description,
        location=location.split("\n", 1)[0].strip(),
        file_path=file_path,
        # Single-line comment placement anchors to the end of a range.
        line_number=end_line,
        start_line=start_line,
        end_line=end_line,
        suggestion=fields.get("suggestion") or None,
        fix_prompt=_extract_fix_prompt(fix_prompt) if fix_prompt else None,
        rule_reference=fields.get("rule_reference") or None,
    )


def _parse_section(issue_type: str, lines: list[str]) -> list[Issue]:
    if _is_empty_section(lines):
        return []

    issues = []
    for number, title, block_lines in _split_issue_blocks(lines):
        issue = _parse_block(issue_type, number, title, block_lines)
        if issue is not None:
            issues.append(issue)
    return issues


def _parse_summary(lines: list[str]) -> list[str]:
    bullets = [m.group(1).strip() for m in (_BULLET_RE.match(line) for line in lines) if m]
    bullets = [b for b in bullets if b]
    if bullets:
        return bullets
    paragraph = "\n".join(lines).strip()
    return [paragraph] if paragraph else []


def parse_ai_output(text: str) -> tuple[list[str], list[Issue]]:
    """Parse the AI review into (summary items, issues)."""
    summary: list[str] = []
    issues: list[Issue] = []

    for title, lines in _split_headers(text or "", 1):
        key = title.lower().rstrip(":：").strip()
        if key == _SUMMARY_SECTION:
            summary = _parse_summary(lines)
            continue
        issue_type = _SECTION_TYPES.get(key)
        if issue_type is None:
            continue
        issues.extend(_parse_section(issue_type, lines))

    logger.info("Parsed AI output: %d issue(s), %d summary item(s)", len(issues), len(summary))
    return summary, issues


def make_review_id(pr_number: int, commit_sha: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"pr{pr_number}_{commit_sha[:8]}_{str(millis)[-6:]}"


def build_review_result(text: str, pr_number: int, commit_sha: str, now: datetime | None = None) -> ReviewResult:
    """Parse the AI review and stamp it with a review id, timestamp and commit."""
    now = now or datetime.now(timezone.utc)
    summary, issues = parse_ai_output(text)
    return ReviewResult(
        review_id=make_review_id(pr_number, commit_sha, now),
        timestamp=now.isoformat(),
        commit_sha=commit_sha,
        summary=summary,
        issues=issues,
    )
