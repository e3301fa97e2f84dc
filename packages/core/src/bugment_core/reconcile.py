"""Compare the current review against the newest prior Bugment run.

Issue ids are positional and change between runs, so identity across runs is
a content signature built from the issue type, where it points, and the start
of its description. Severity is not part of the signature: a re-graded
finding keeps its identity.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from bugment_core.models import Issue, ModifiedIssue, ReviewComparison, ReviewResult

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_SIGNATURE_DESCRIPTION_CHARS = 100


def issue_signature(issue: Issue) -> str:
    anchor = issue.location or issue.file_path or ""
    raw = f"{issue.type}_{anchor}_{issue.description[:_SIGNATURE_DESCRIPTION_CHARS]}"
    return _WHITESPACE_RE.sub("_", raw)


def issues_are_similar(a: Issue, b: Issue) -> bool:
    """Two issues are similar when type, location, file and line all agree."""
    return (
        a.type == b.type
        and a.location == b.location
        and a.file_path == b.file_path
        and a.line_number == b.line_number
    )


def compare_reviews(current: ReviewResult, prior_runs: Sequence[ReviewResult]) -> ReviewComparison:
    """Classify every current issue as new, persistent or modified, and every vanished one as fixed.

    ``prior_runs`` must be ordered newest first; only the newest run is
    consulted. A signature match whose placement differs is still the same
    finding, so it is reported as persistent rather than new.
    """
    if not prior_runs:
        return ReviewComparison(new_issues=list(current.issues))

    previous = prior_runs[0]
    previous_by_signature: dict[str, Issue] = {}
    for issue in previous.issues:
        previous_by_signature.setdefault(issue_signature(issue), issue)

    comparison = ReviewComparison()
    current_signatures = set()

    for issue in current.issues:
        signature = issue_signature(issue)
        current_signatures.add(signature)
        prior = previous_by_signature.get(signature)
        if prior is None:
            comparison.new_issues.append(issue)
        elif issues_are_similar(prior, issue) and prior.description != issue.description:
            comparison.modified_issues.append(ModifiedIssue(previous=prior, current=issue))
        else:
            comparison.persistent_issues.append(issue)

    comparison.fixed_issues = [
        issue for issue in previous.issues if issue_signature(issue) not in current_signatures
    ]

    logger.info(
        "Compared with run %s: %d new, %d fixed, %d persistent, %d modified",
        previous.review_id,
        comparison.new_count,
        comparison.fixed_count,
        comparison.persistent_count,
        len(comparison.modified_issues),
    )
    return comparison
