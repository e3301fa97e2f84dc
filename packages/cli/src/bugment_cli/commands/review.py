"""review command: review a pull request and publish the result."""

from __future__ import annotations

import os

import click
from rich.console import Console

from bugment_core.exceptions import BugmentError
from bugment_core.gh import actions
from bugment_core.reviewer import run_review

console = Console()


def _write_outputs(status: str, issues_found: int = 0, event: str = "") -> None:
    actions.set_output("review_status", status)
    actions.set_output("issues_found", issues_found)
    actions.set_output("review_event", event)


@click.command("review")
@click.option(
    "--repo",
    default=lambda: os.environ.get("GITHUB_REPOSITORY"),
    help="GitHub repository in owner/name format. Defaults to $GITHUB_REPOSITORY.",
)
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Defaults to the PR in the triggering event.",
)
@click.option(
    "--workspace",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Repository checkout to diff in. Defaults to $GITHUB_WORKSPACE or the current directory.",
)
@click.option(
    "--server-path",
    default=None,
    help="Path to the Augment server.js. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review without posting to GitHub.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str | None,
    pr_number: int | None,
    workspace: str | None,
    server_path: str | None,
    shadow: bool,
):
    """Review a pull request with Augment and post one GitHub review.

    \b
    Required environment variables (or action inputs):
      GITHUB_TOKEN           GitHub token (or use gh CLI)
      AUGMENT_ACCESS_TOKEN   Augment session access token
      AUGMENT_TENANT_URL     Augment tenant URL
    """
    from bugment_store.noop import NoOpStore

    config = dict(ctx.obj["config"])
    for key, value in (("workspace", workspace), ("server_path", server_path)):
        if value is not None:
            config[key] = value

    if not repo:
        raise click.UsageError("No repository given. Pass --repo owner/name or set GITHUB_REPOSITORY.")
    if pr_number is None:
        pr_number = actions.pr_number_from_event(actions.read_event())
    if pr_number is None:
        raise click.UsageError("No pull request number given and the triggering event is not a pull request.")

    if not config.get("github_token"):
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN, pass the github_token input, or run `gh auth login` first."
        )
    if not config.get("augment_access_token") or not config.get("augment_tenant_url"):
        raise click.UsageError("AUGMENT_ACCESS_TOKEN and AUGMENT_TENANT_URL must both be set.")
    if not config.get("server_path"):
        raise click.UsageError("No Augment server path. Set server_path in .bugment.yml or pass --server-path.")

    store = NoOpStore() if shadow else ctx.obj["store"]

    try:
        outcome = run_review(
            repo=repo,
            pr_number=pr_number,
            config=config,
            store=store,
            shadow=shadow,
        )
    except BugmentError as e:
        _write_outputs("failed")
        if actions.in_actions():
            actions.error(str(e))
        raise click.ClickException(str(e)) from e

    _write_outputs("success", outcome.issues_found, outcome.event)
    if outcome.skipped:
        console.print(f"[dim]{len(outcome.skipped)} issue(s) were outside the diff and listed in the review body.[/dim]")
