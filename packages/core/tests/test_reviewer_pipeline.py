"""Tests for the core review pipeline: generate_diff and run_review."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from bugment_core.exceptions import BugmentError, DiffError
from bugment_core.models import Issue, ReviewResult
from bugment_core.reviewer import generate_diff, run_review

BASE = "b" * 40
HEAD = "h" * 40

DIFF = """\
diff --git a/src/app.py b/src/app.py
--- a/src/app.py
+++ b/src/app.py
@@ -1,2 +1,3 @@
 a
+b
 c
diff --git a/yarn.lock b/yarn.lock
--- a/yarn.lock
+++ b/yarn.lock
@@ -1 +1 @@
-old
+new
"""

LOCKFILE_ONLY_DIFF = "diff --git a/yarn.lock b/yarn.lock\n@@ -1 +1 @@\n-old\n+new\n"

AI_ANSWER = """\
# Overall Comments
- Small change.

# Bugs
## 1. Wrong value
**Severity**: high
**Description**: b is wrong.
**Location**: src/app.py:2

## 2. Elsewhere
**Severity**: low
**Description**: Unrelated.
**Location**: src/other.py:9
"""


class StubReviewer:
    def __init__(self, answer=AI_ANSWER):
        self.answer = answer
        self.calls = []

    def review(self, pr, diff, rules):
        self.calls.append({"pr": pr, "diff": diff, "rules": rules})
        return self.answer


def _pr():
    pr = MagicMock()
    pr.number = 5
    pr.title = "Fix value"
    pr.body = ""
    pr.base.sha = BASE
    pr.head.sha = HEAD
    pr.base.repo.full_name = "acme/widgets"
    return pr


@pytest.fixture
def config(tmp_path):
    return {
        "github_token": "t",
        "workspace": str(tmp_path),
        "checkout_sha": None,
        "ignore": [],
        "use_default_ignores": True,
        "rules_dir": ".augment/rules",
        "cleanup_history": True,
    }


@pytest.fixture
def github(mocker):
    """Patch every GitHub and git touchpoint of the pipeline."""
    pr = _pr()
    mocks = MagicMock()
    mocks.pr = pr
    mocks.get_pull = mocker.patch("bugment_core.reviewer.get_pull", return_value=pr)
    mocks.resolve_base_sha = mocker.patch("bugment_core.reviewer.resolve_base_sha", return_value=BASE)
    mocks.local_diff = mocker.patch("bugment_core.reviewer.local_diff", return_value=DIFF)
    mocks.get_compare_diff = mocker.patch("bugment_core.reviewer.get_compare_diff", return_value=DIFF)
    mocks.create_review = mocker.patch("bugment_core.reviewer.create_review")
    return mocks


@pytest.fixture
def store():
    store = MagicMock()
    store.list_runs.return_value = []
    store.embed.return_value = "<!-- REVIEW_DATA: {} -->"
    return store


def _run(config, reviewer=None, store=None, shadow=False):
    return run_review(
        "acme/widgets",
        5,
        config,
        reviewer=reviewer or StubReviewer(),
        store=store,
        shadow=shadow,
        repo_obj=MagicMock(),
    )


class TestGenerateDiff:
    def test_prefers_git(self, mocker):
        mocker.patch("bugment_core.reviewer.local_diff", return_value=DIFF)
        api = mocker.patch("bugment_core.reviewer.get_compare_diff")
        assert generate_diff(MagicMock(), BASE, HEAD, "/ws") == (DIFF, "git")
        api.assert_not_called()

    def test_git_failure_falls_back_to_api(self, mocker):
        mocker.patch("bugment_core.reviewer.local_diff", side_effect=DiffError("shallow clone"))
        mocker.patch("bugment_core.reviewer.get_compare_diff", return_value=DIFF)
        assert generate_diff(MagicMock(), BASE, HEAD, "/ws") == (DIFF, "api")

    def test_empty_git_diff_falls_back_to_api(self, mocker):
        mocker.patch("bugment_core.reviewer.local_diff", return_value="")
        api = mocker.patch("bugment_core.reviewer.get_compare_diff", return_value=DIFF)
        assert generate_diff(MagicMock(), BASE, HEAD, "/ws")[1] == "api"
        api.assert_called_once()

    def test_both_sources_failing_raises(self, mocker):
        mocker.patch("bugment_core.reviewer.local_diff", side_effect=DiffError("no git"))
        mocker.patch(
            "bugment_core.reviewer.get_compare_diff", side_effect=GithubException(404, {"message": "x"}, None)
        )
        with pytest.raises(DiffError, match="from git or the API"):
            generate_diff(MagicMock(), BASE, HEAD, "/ws")

    def test_compare_api_error_status_raises(self, mocker):
        mocker.patch("bugment_core.reviewer.local_diff", side_effect=DiffError("shallow clone"))
        repo = MagicMock()
        repo._requester.requestJson.return_value = (404, {}, '{"message": "Not Found"}')
        with pytest.raises(DiffError, match="from git or the API"):
            generate_diff(repo, BASE, HEAD, "/ws")

    def test_run_fails_instead_of_approving_on_api_error(self, config, github, store):
        github.local_diff.side_effect = DiffError("shallow clone")
        github.get_compare_diff.side_effect = GithubException(500, {"message": "boom"}, None)
        with pytest.raises(DiffError):
            _run(config, store=store)
        github.create_review.assert_not_called()


class TestRunReview:
    def test_posts_review_with_inline_comments(self, config, github, store):
        outcome = _run(config, store=store)

        assert outcome.posted
        assert outcome.event == "REQUEST_CHANGES"
        assert outcome.issues_found == 2
        assert [(c.path, c.line) for c in outcome.comments] == [("src/app.py", 2)]
        assert [i.id for i in outcome.skipped] == ["bug_2"]

        args = github.create_review.call_args[0]
        body, event, comments, commit_sha = args[2], args[3], args[4], args[5]
        assert event == "REQUEST_CHANGES"
        assert comments == outcome.comments
        assert commit_sha == HEAD
        assert "<!-- REVIEW_DATA: {} -->" in body
        assert "Outside the diff" in body

    def test_review_id_tied_to_head(self, config, github, store):
        outcome = _run(config, store=store)
        assert outcome.result.commit_sha == HEAD
        assert outcome.result.review_id.startswith("pr5_hhhhhhhh_")

    def test_reviewer_gets_filtered_diff_and_rules(self, config, github, store):
        reviewer = StubReviewer()
        _run(config, reviewer=reviewer, store=store)
        call = reviewer.calls[0]
        assert "src/app.py" in call["diff"]
        assert "yarn.lock" not in call["diff"]
        assert call["rules"] == "No project-specific rules configured."
        assert call["pr"].title == "Fix value"

    def test_cleanup_runs_before_posting(self, config, github, store):
        order = []
        store.cleanup.side_effect = lambda *a: order.append("cleanup")
        github.create_review.side_effect = lambda *a: order.append("post")
        _run(config, store=store)
        assert order == ["cleanup", "post"]

    def test_cleanup_can_be_disabled(self, config, github, store):
        config["cleanup_history"] = False
        _run(config, store=store)
        store.cleanup.assert_not_called()
        github.create_review.assert_called_once()

    def test_shadow_mode_does_not_post(self, config, github, store):
        outcome = _run(config, store=store, shadow=True)
        assert not outcome.posted
        github.create_review.assert_not_called()
        store.cleanup.assert_not_called()

    def test_compares_against_prior_run(self, config, github, store):
        previous = Issue(
            id="bug_1",
            type="bug",
            severity="high",
            title="Wrong value",
            description="b is wrong.",
            location="src/app.py:2",
            file_path="src/app.py",
            line_number=2,
            start_line=2,
            end_line=2,
        )
        stale = Issue(id="bug_2", type="bug", severity="medium", title="Gone", description="fixed", location="x.py:1")
        store.list_runs.return_value = [
            ReviewResult(review_id="old", timestamp="2024-01-01T00:00:00+00:00", commit_sha=BASE, issues=[previous, stale])
        ]
        outcome = _run(config, store=store)
        assert outcome.comparison.persistent_count == 1
        assert outcome.comparison.fixed_issues == [stale]
        assert outcome.comparison.new_count == 1
        store.list_runs.assert_called_once_with(github.pr)

    def test_only_ignored_files_skips_ai(self, config, github, store):
        github.local_diff.return_value = LOCKFILE_ONLY_DIFF
        reviewer = StubReviewer()
        outcome = _run(config, reviewer=reviewer, store=store)
        assert reviewer.calls == []
        assert outcome.event == "APPROVE"
        assert outcome.result.issues == []
        assert outcome.result.summary == ["No reviewable changes after applying ignore patterns."]
        github.create_review.assert_called_once()

    def test_api_diff_source_recorded(self, config, github, store):
        github.local_diff.side_effect = DiffError("shallow")
        outcome = _run(config, store=store)
        assert outcome.diff_source == "api"

    def test_pr_not_found(self, config, github, store):
        github.get_pull.side_effect = GithubException(404, {"message": "Not Found"}, None)
        with pytest.raises(BugmentError, match="PR #5 not found"):
            _run(config, store=store)

    def test_without_store(self, config, github):
        outcome = _run(config, store=None)
        assert outcome.posted
        body = github.create_review.call_args[0][2]
        assert "REVIEW_DATA" not in body
        assert outcome.comparison.new_count == 2

    def test_merge_base_passed_through(self, config, github, store):
        config["checkout_sha"] = "m" * 40
        github.resolve_base_sha.return_value = "p" * 40
        outcome = _run(config, store=store)
        github.resolve_base_sha.assert_called_once_with(BASE, config["workspace"], "m" * 40)
        github.local_diff.assert_called_once_with("p" * 40, HEAD, config["workspace"])
        assert outcome.base_sha == "p" * 40
