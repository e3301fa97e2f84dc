"""Core PR review orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from github import GithubException
from rich.console import Console
from rich.markup import escape

from bugment_core.config import load_prompt_template
from bugment_core.diff import filter_diff, parse_diff
from bugment_core.exceptions import BugmentError, DiffError
from bugment_core.formatter import build_line_comments, build_review_body, determine_event
from bugment_core.gh.pull_request import create_review, get_compare_diff, get_pull, get_repo, pull_request_info
from bugment_core.ignore import IgnoreMatcher
from bugment_core.models import Issue, LineComment, ReviewComparison, ReviewResult
from bugment_core.parser import build_review_result
from bugment_core.providers.augment import AugmentReviewer
from bugment_core.reconcile import compare_reviews
from bugment_core.utils.git import local_diff, resolve_base_sha
from bugment_core.utils.rules import load_project_rules

console = Console()
logger = logging.getLogger(__name__)

_NOTHING_TO_REVIEW = "No reviewable changes after applying ignore patterns."


@dataclass
class ReviewOutcome:
    """Result returned by run_review: everything the CLI needs for outputs and display.

    Decoupled from bugment_store: the store is handed in as a collaborator and
    nothing here depends on its types.
    """

    repo: str
    pr_number: int
    head_sha: str
    base_sha: str
    event: str  # "APPROVE" | "COMMENT" | "REQUEST_CHANGES"
    result: ReviewResult
    comparison: ReviewComparison
    comments: list[LineComment] = field(default_factory=list)
    skipped: list[Issue] = field(default_factory=list)
    diff_source: str = "git"  # "git" | "api"
    posted: bool = False

    @property
    def issues_found(self) -> int:
        return self.result.total_issues


def generate_diff(repo_obj, base_sha: str, head_sha: str, workspace: str) -> tuple[str, str]:
    """Return (diff text, source), preferring the local checkout over the compare API."""
    try:
        text = local_diff(base_sha, head_sha, workspace)
        if text.strip():
            return text, "git"
        logger.warning("git diff %s...%s is empty; trying the compare API", base_sha[:8], head_sha[:8])
    except DiffError as e:
        logger.warning("%s; falling back to the compare API", e)

    try:
        return get_compare_diff(repo_obj, base_sha, head_sha), "api"
    except GithubException as e:
        raise DiffError(f"Could not get a diff for {base_sha[:8]}...{head_sha[:8]} from git or the API: {e}") from e


def print_shadow_review(outcome: ReviewOutcome, body: str) -> None:
    """Print the review to the terminal without posting to GitHub."""
    _severity_color = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}
    console.print(f"\n[bold]Shadow review: {outcome.event} (not posted)[/bold]\n")
    console.print(body, markup=False, highlight=False)
    placed = [i for i in outcome.result.issues if i not in outcome.skipped]
    if not placed:
        console.print("[yellow]No inline comments.[/yellow]")
        return
    console.print(f"\n[bold]{len(placed)} inline comment(s)[/bold]\n")
    for issue in placed:
        color = _severity_color.get(issue.severity, "white")
        console.print(
            f"[bold cyan]{escape(issue.file_path or '')}[/bold cyan]  line [bold]{issue.line_number}[/bold]  "
            f"[{color}]{issue.severity.upper()}[/{color}]"
        )
        console.print(f"  {escape(issue.title)}")
        console.print()


def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    reviewer=None,
    store=None,
    shadow: bool = False,
    repo_obj=None,
) -> ReviewOutcome:
    """Run the full PR review pipeline and return a ReviewOutcome.

    ``reviewer`` defaults to an AugmentReviewer built from config. ``store``
    provides prior runs, the embedded review-data block and history cleanup;
    without one the review is posted with no history comparison.
    """
    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])

    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException as e:
        raise BugmentError(f"PR #{pr_number} not found in {repo}.") from e

    pr = pull_request_info(this_pr)
    workspace = config["workspace"]
    console.print(f"[bold]Reviewing {repo}#{pr.number}[/bold]: {pr.title}")

    ignore = IgnoreMatcher.from_project(
        workspace,
        extra_patterns=config.get("ignore") or [],
        use_defaults=config.get("use_default_ignores", True),
    )
    base_sha = resolve_base_sha(pr.base_sha, workspace, config.get("checkout_sha"))
    diff_text, diff_source = generate_diff(this_repo, base_sha, pr.head_sha, workspace)
    parsed = parse_diff(diff_text, ignore)
    console.print(
        f"[dim]Diff {base_sha[:7]}...{pr.head_sha[:7]} via {diff_source}: "
        f"{len(parsed)} file(s), {parsed.hunk_count} hunk(s)[/dim]"
    )

    if parsed.files:
        rules = load_project_rules(workspace, config.get("rules_dir", ".augment/rules"))
        if reviewer is None:
            reviewer = AugmentReviewer.from_config(config, load_prompt_template(config))
        raw = reviewer.review(pr, filter_diff(diff_text, ignore), rules)
        result = build_review_result(raw, pr.number, pr.head_sha)
    else:
        console.print(f"[yellow]{_NOTHING_TO_REVIEW}[/yellow]")
        result = build_review_result("", pr.number, pr.head_sha)
        result.summary = [_NOTHING_TO_REVIEW]

    prior_runs = store.list_runs(this_pr) if store is not None else []
    comparison = compare_reviews(result, prior_runs)
    comments, skipped = build_line_comments(result.issues, parsed)
    event = determine_event(result)

    review_data = store.embed(result) if store is not None else ""
    body = build_review_body(result, comparison, review_data, unplaced=skipped)

    outcome = ReviewOutcome(
        repo=repo,
        pr_number=pr.number,
        head_sha=pr.head_sha,
        base_sha=base_sha,
        event=event,
        result=result,
        comparison=comparison,
        comments=comments,
        skipped=skipped,
        diff_source=diff_source,
    )

    if shadow:
        print_shadow_review(outcome, body)
        console.print(f"[bold]Shadow review complete. {result.total_issues} issue(s) found.[/bold]")
        return outcome

    if store is not None and config.get("cleanup_history", True):
        store.cleanup(this_pr, result)

    create_review(this_repo, this_pr, body, event, comments, pr.head_sha)
    outcome.posted = True
    console.print(
        f"\n[green]Review posted: {event}. {result.total_issues} issue(s), "
        f"{len(comments)} inline comment(s).[/green]"
    )
    return outcome
