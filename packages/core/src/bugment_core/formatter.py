"""Render review results into GitHub review bodies and inline comments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bugment_core.models import LineComment

if TYPE_CHECKING:
    from bugment_core.diff import ParsedDiff
    from bugment_core.models import Issue, ReviewComparison, ReviewResult

logger = logging.getLogger(__name__)

SIGNATURE = "🤖 Powered by [Bugment AI Code Review](https://github.com/imhuso/Bugment)"
REVIEW_TITLE = "## Bugment Code Review"
ISSUE_MARKER = "<!-- bugment:issue -->"

_SEVERITY_ORDER = ("critical", "high", "medium", "low")
_SEVERITY_EMOJI = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}
_TYPE_LABEL = {
    "bug": "Bug",
    "code_smell": "Code Smell",
    "security": "Security",
    "performance": "Performance",
}


def determine_event(result: ReviewResult) -> str:
    """Choose the GitHub review event from the most severe issue present."""
    if not result.issues:
        return "APPROVE"
    if any(issue.severity in ("critical", "high") for issue in result.issues):
        return "REQUEST_CHANGES"
    return "COMMENT"


def _severity_counts(issues: list[Issue]) -> dict[str, int]:
    counts = {s: 0 for s in _SEVERITY_ORDER}
    for issue in issues:
        counts[issue.severity] = counts.get(issue.severity, 0) + 1
    return counts


def _file_table(issues: list[Issue]) -> list[str]:
    by_file: dict[str, list[Issue]] = {}
    for issue in issues:
        by_file.setdefault(issue.file_path or issue.location or "(unknown)", []).append(issue)

    lines = [
        "| File | Critical | High | Medium | Low | Total |",
        "|------|:--------:|:----:|:------:|:---:|:-----:|",
    ]
    for path in sorted(by_file, key=lambda p: len(by_file[p]), reverse=True):
        counts = _severity_counts(by_file[path])
        lines.append(
            f"| `{path}` "
            + "".join(f"| {counts[s] or '—'} " for s in _SEVERITY_ORDER)
            + f"| {len(by_file[path])} |"
        )
    return lines


def _change_summary(comparison: ReviewComparison) -> list[str]:
    parts = []
    if comparison.fixed_count:
        parts.append(f"✅ {comparison.fixed_count} fixed")
    if comparison.new_count:
        parts.append(f"🆕 {comparison.new_count} new")
    if comparison.persistent_count:
        parts.append(f"⏳ {comparison.persistent_count} still open")
    if comparison.modified_issues:
        parts.append(f"✏️ {len(comparison.modified_issues)} updated")
    if not parts:
        return []
    return ["### Changes since last review", "", " · ".join(parts), ""]


def build_review_body(
    result: ReviewResult,
    comparison: ReviewComparison | None = None,
    review_data: str = "",
    unplaced: list[Issue] | None = None,
) -> str:
    """Build the top-level review body.

    ``review_data`` is the hidden block the history store reads back on the
    next run; it is appended verbatim just before the signature.
    ``unplaced`` issues have no diff line to anchor to and are listed inline.
    """
    lines = [REVIEW_TITLE, ""]

    if result.summary:
        lines.append("### Summary")
        lines.append("")
        lines.extend(f"- {item}" for item in result.summary)
        lines.append("")

    if comparison is not None:
        lines.extend(_change_summary(comparison))

    if not result.issues:
        lines.append("> 🎉 No issues found. The changes look good.")
        lines.append("")
    else:
        counts = _severity_counts(result.issues)
        verdict = ", ".join(f"{counts[s]} {s}" for s in _SEVERITY_ORDER if counts[s])
        lines.append(f"> Found **{result.total_issues}** issue(s): {verdict}.")
        lines.append("")
        lines.extend(_file_table(result.issues))
        lines.append("")

        minor = [i for i in result.issues if i.severity == "low"]
        if minor:
            lines.append("<details>")
            lines.append(f"<summary>Low-severity issues ({len(minor)})</summary>")
            lines.append("")
            for issue in minor:
                lines.append(f"- **{issue.title}** ({issue.location}): {issue.description.splitlines()[0]}")
            lines.append("")
            lines.append("</details>")
            lines.append("")

    if unplaced:
        lines.append("### Outside the diff")
        lines.append("")
        for issue in unplaced:
            emoji = _SEVERITY_EMOJI.get(issue.severity, "🟡")
            lines.append(f"- {emoji} **{issue.title}** (`{issue.location}`): {issue.description.splitlines()[0]}")
        lines.append("")

    if review_data:
        lines.append(review_data)
        lines.append("")
    lines.append(SIGNATURE)
    return "\n".join(lines)


def format_line_comment(issue: Issue) -> str:
    """Render the inline comment body for one issue."""
    emoji = _SEVERITY_EMOJI.get(issue.severity, "🟡")
    label = _TYPE_LABEL.get(issue.type, issue.type)
    lines = [
        f"**{emoji} {label} · {issue.severity.upper()}**: {issue.title}",
        "",
        issue.description,
        "",
    ]
    if issue.rule_reference:
        lines.extend([f"**Rule**: {issue.rule_reference}", ""])
    if issue.suggestion:
        lines.extend(["**Suggested fix**:", "", issue.suggestion, ""])
    if issue.fix_prompt:
        lines.extend(
            [
                "<details>",
                "<summary>AI fix prompt</summary>",
                "",
                "```",
                issue.fix_prompt,
                "```",
                "",
                "</details>",
                "",
            ]
        )
    lines.append(ISSUE_MARKER)
    return "\n".join(lines)


def build_line_comments(issues: list[Issue], parsed_diff: ParsedDiff) -> tuple[list[LineComment], list[Issue]]:
    """Turn placeable issues into single-line RIGHT-side comments.

    Returns (comments, skipped). An issue is placeable only when its file and
    line are present on the new side of the diff; comments use the diff's own
    path so GitHub recognises the file.
    """
    comments: list[LineComment] = []
    skipped: list[Issue] = []

    for issue in issues:
        if not issue.file_path or not issue.line_number:
            skipped.append(issue)
            continue
        if not parsed_diff.is_line_in_diff(issue.file_path, issue.line_number):
            logger.debug("Skipping %s: %s:%d is not in the diff", issue.id, issue.file_path, issue.line_number)
            skipped.append(issue)
            continue
        if issue.start_line is not None and issue.start_line != issue.line_number:
            logger.debug(
                "%s spans lines %d-%d; commenting on line %d only",
                issue.id,
                issue.start_line,
                issue.line_number,
                issue.line_number,
            )
        path = parsed_diff.resolve_path(issue.file_path)
        comments.append(LineComment(path=path, line=issue.line_number, body=format_line_comment(issue)))

    if skipped:
        logger.info("%d issue(s) could not be placed on the diff", len(skipped))
    return comments, skipped
