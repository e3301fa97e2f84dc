"""Tests for GitHub pull request helper functions."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from bugment_core.gh.pull_request import create_review, get_compare_diff, graphql, pull_request_info
from bugment_core.models import LineComment

SHA = "a" * 40
SHA2 = "b" * 40


def _pr(title="Add loader", body="Adds a loader."):
    pr = MagicMock()
    pr.number = 7
    pr.title = title
    pr.body = body
    pr.base.sha = SHA
    pr.head.sha = SHA2
    pr.base.repo.full_name = "acme/widgets"
    return pr


class TestPullRequestInfo:
    def test_snapshot_fields(self):
        info = pull_request_info(_pr())
        assert info.number == 7
        assert (info.owner, info.repo) == ("acme", "widgets")
        assert info.full_name == "acme/widgets"
        assert (info.base_sha, info.head_sha) == (SHA, SHA2)

    def test_none_title_and_body_become_empty(self):
        info = pull_request_info(_pr(title=None, body=None))
        assert info.title == ""
        assert info.body == ""


class TestGetCompareDiff:
    def test_requests_diff_media_type(self):
        repo = MagicMock()
        repo.url = "https://api.github.com/repos/acme/widgets"
        repo._requester.requestJson.return_value = (200, {}, "diff --git a/x b/x\n")

        assert get_compare_diff(repo, SHA, SHA2) == "diff --git a/x b/x\n"

        verb, url = repo._requester.requestJson.call_args[0]
        assert verb == "GET"
        assert url == f"https://api.github.com/repos/acme/widgets/compare/{SHA}...{SHA2}"
        assert repo._requester.requestJson.call_args[1]["headers"] == {"Accept": "application/vnd.github.v3.diff"}

    def test_empty_body_is_empty_string(self):
        repo = MagicMock()
        repo._requester.requestJson.return_value = (200, {}, None)
        assert get_compare_diff(repo, SHA, SHA2) == ""

    @pytest.mark.parametrize("status", [404, 422, 500])
    def test_error_status_raises(self, status):
        repo = MagicMock()
        repo._requester.requestJson.return_value = (status, {}, '{"message": "Not Found"}')
        with pytest.raises(GithubException) as exc_info:
            get_compare_diff(repo, SHA, SHA2)
        assert exc_info.value.status == status


class TestGraphql:
    def test_returns_data(self):
        requester = MagicMock()
        requester.requestJsonAndCheck.return_value = ({}, {"data": {"ok": True}})
        assert graphql(requester, "query { ok }", {"a": 1}) == {"ok": True}
        requester.requestJsonAndCheck.assert_called_once_with(
            "POST", "/graphql", input={"query": "query { ok }", "variables": {"a": 1}}
        )

    def test_errors_raise(self):
        requester = MagicMock()
        requester.requestJsonAndCheck.return_value = ({}, {"errors": [{"message": "nope"}]})
        with pytest.raises(GithubException):
            graphql(requester, "mutation { x }", {})


class TestCreateReview:
    def test_posts_review_pinned_to_commit(self):
        repo = MagicMock()
        pr = MagicMock()
        comment = LineComment(path="src/a.py", line=3, body="b")

        create_review(repo, pr, "body", "COMMENT", [comment], SHA2)

        repo.get_commit.assert_called_once_with(SHA2)
        pr.create_review.assert_called_once_with(
            commit=repo.get_commit.return_value,
            body="body",
            event="COMMENT",
            comments=[{"path": "src/a.py", "line": 3, "body": "b", "side": "RIGHT"}],
        )
