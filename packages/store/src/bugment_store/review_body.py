"""ReviewBodyStore: review history kept inside the PR's own reviews.

Each Bugment review body carries its ReviewResult in a hidden block (see
bugment_store.codec), so the PR itself is the database: no extra storage,
and the history is exactly as visible as the reviews are.

Cleanup before a new run:
- previous APPROVED / CHANGES_REQUESTED Bugment reviews are dismissed, so a
  stale verdict no longer gates the merge;
- previous COMMENTED Bugment reviews are minimized as OUTDATED;
- unresolved Bugment comment threads whose line no longer carries an issue
  are resolved.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from github import GithubException

from bugment_core.formatter import ISSUE_MARKER
from bugment_core.gh.pull_request import graphql
from bugment_store.base import BaseStore, CleanupResult
from bugment_store.codec import extract_review_data, is_bugment_review

if TYPE_CHECKING:
    from bugment_core.models import ReviewResult

logger = logging.getLogger(__name__)

_DISMISS_MESSAGE = "Superseded by a newer Bugment review."

_MINIMIZE_MUTATION = """
mutation($id: ID!) {
  minimizeComment(input: {subjectId: $id, classifier: OUTDATED}) {
    minimizedComment { isMinimized }
  }
}
"""

_THREADS_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      reviewThreads(first: 100) {
        nodes {
          id
          isResolved
          path
          line
          comments(first: 1) { nodes { body } }
        }
      }
    }
  }
}
"""

_RESOLVE_MUTATION = """
mutation($id: ID!) {
  resolveReviewThread(input: {threadId: $id}) {
    thread { isResolved }
  }
}
"""


def _same_path(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    a, b = a.lstrip("/"), b.lstrip("/")
    return a == b or a.endswith("/" + b) or b.endswith("/" + a)


class ReviewBodyStore(BaseStore):
    """Reads and retires Bugment reviews on a PyGithub PullRequest."""

    def list_runs(self, pr) -> list[ReviewResult]:
        try:
            reviews = list(pr.get_reviews())
        except GithubException as e:
            logger.warning("Could not list reviews on PR #%s: %s", pr.number, e)
            return []

        runs = []
        for review in self._bugment_reviews(reviews):
            result = extract_review_data(review.body)
            if result is not None:
                runs.append(result)

        runs.sort(key=lambda r: r.timestamp, reverse=True)
        logger.info("Found %d prior Bugment run(s) on PR #%s", len(runs), pr.number)
        return runs

    def cleanup(self, pr, current: ReviewResult) -> CleanupResult:
        outcome = CleanupResult()
        try:
            reviews = list(pr.get_reviews())
        except GithubException as e:
            logger.warning("Could not list reviews for cleanup on PR #%s: %s", pr.number, e)
            outcome.failed += 1
            return outcome

        for review in self._bugment_reviews(reviews):
            try:
                if review.state in ("APPROVED", "CHANGES_REQUESTED"):
                    review.dismiss(_DISMISS_MESSAGE)
                    outcome.dismissed += 1
                else:
                    node_id = review.raw_data.get("node_id")
                    if not node_id:
                        continue
                    graphql(pr._requester, _MINIMIZE_MUTATION, {"id": node_id})
                    outcome.minimized += 1
            except GithubException as e:
                logger.warning("Could not retire review %s: %s", review.id, e)
                outcome.failed += 1

        self._resolve_stale_threads(pr, current, outcome)

        logger.info(
            "History cleanup: %d dismissed, %d minimized, %d thread(s) resolved, %d failure(s)",
            outcome.dismissed,
            outcome.minimized,
            outcome.resolved,
            outcome.failed,
        )
        return outcome

    @staticmethod
    def _bugment_reviews(reviews: list) -> list:
        return [r for r in reviews if r.state != "DISMISSED" and is_bugment_review(r.body)]

    def _resolve_stale_threads(self, pr, current: ReviewResult, outcome: CleanupResult) -> None:
        repo = pr.base.repo
        variables = {"owner": repo.owner.login, "repo": repo.name, "number": pr.number}
        try:
            data = graphql(pr._requester, _THREADS_QUERY, variables)
            threads = data["repository"]["pullRequest"]["reviewThreads"]["nodes"]
        except (GithubException, KeyError, TypeError) as e:
            logger.warning("Could not list review threads on PR #%s: %s", pr.number, e)
            outcome.failed += 1
            return

        for thread in threads:
            if thread.get("isResolved"):
                continue
            comments = (thread.get("comments") or {}).get("nodes") or []
            if not comments or ISSUE_MARKER not in (comments[0].get("body") or ""):
                continue
            if self._still_flagged(current, thread.get("path"), thread.get("line")):
                continue
            try:
                graphql(pr._requester, _RESOLVE_MUTATION, {"id": thread["id"]})
                outcome.resolved += 1
            except GithubException as e:
                logger.warning("Could not resolve thread %s: %s", thread.get("id"), e)
                outcome.failed += 1

    @staticmethod
    def _still_flagged(current: ReviewResult, path: str | None, line: int | None) -> bool:
        # An outdated thread has no line on the current diff.
        if line is None:
            return False
        return any(i.line_number == line and _same_path(i.file_path, path) for i in current.issues)
