from __future__ import annotations

import logging

from github import Github, GithubException

from bugment_core.models import LineComment, PullRequestInfo

logger = logging.getLogger(__name__)

_DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def pull_request_info(pr) -> PullRequestInfo:
    """Snapshot the PR fields the pipeline needs."""
    owner, _, name = pr.base.repo.full_name.partition("/")
    return PullRequestInfo(
        number=pr.number,
        title=pr.title or "",
        body=pr.body or "",
        base_sha=pr.base.sha,
        head_sha=pr.head.sha,
        owner=owner,
        repo=name,
    )


def get_compare_diff(repo, base_sha: str, head_sha: str) -> str:
    """Return the unified diff between two commits from the compare API."""
    status, headers, data = repo._requester.requestJson(
        "GET",
        f"{repo.url}/compare/{base_sha}...{head_sha}",
        headers={"Accept": _DIFF_MEDIA_TYPE},
    )
    # requestJson hands back error responses instead of raising.
    if status >= 400:
        raise GithubException(status, data, headers)
    return data or ""


def graphql(requester, query: str, variables: dict) -> dict:
    """Run a GraphQL query through PyGithub's requester; raise on GraphQL errors."""
    _, data = requester.requestJsonAndCheck("POST", "/graphql", input={"query": query, "variables": variables})
    if data.get("errors"):
        raise GithubException(422, data, None)
    return data.get("data") or {}


def create_review(repo, pr, body: str, event: str, comments: list[LineComment], commit_sha: str):
    """Post one review pinned to ``commit_sha``."""
    logger.info("Posting %s review with %d inline comment(s) on %s", event, len(comments), commit_sha[:8])
    return pr.create_review(
        commit=repo.get_commit(commit_sha),
        body=body,
        event=event,
        comments=[c.to_api() for c in comments],
    )
