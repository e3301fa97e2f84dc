"""history command: display prior Bugment runs recorded on a pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from bugment_core.formatter import determine_event
from bugment_core.gh.pull_request import get_pull, get_repo

console = Console()

_EVENT_STYLE = {
    "APPROVE": "green",
    "COMMENT": "yellow",
    "REQUEST_CHANGES": "red",
}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of runs to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int, limit: int):
    """Show the Bugment runs recorded in a pull request's reviews, newest first."""
    from bugment_store.noop import NoOpStore

    config = ctx.obj["config"]
    store = ctx.obj.get("store")
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("Review history is disabled. Remove 'history: false' from .bugment.yml.")
    if not config.get("github_token"):
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    pr = get_pull(get_repo(repo, token=config["github_token"]), pr_number)
    runs = store.list_runs(pr)[:limit]
    if not runs:
        console.print("[yellow]No Bugment runs found on this pull request.[/yellow]")
        return

    table = Table(title=f"Bugment history for {repo}#{pr_number}", show_header=True, header_style="bold cyan")
    table.add_column("Review", style="bold")
    table.add_column("SHA", width=8)
    table.add_column("Event", width=16)
    table.add_column("Critical", justify="right")
    table.add_column("High", justify="right")
    table.add_column("Medium", justify="right")
    table.add_column("Low", justify="right")
    table.add_column("Reviewed At", width=20)

    for run in runs:
        event = determine_event(run)
        style = _EVENT_STYLE.get(event, "white")
        counts = {s: 0 for s in ("critical", "high", "medium", "low")}
        for issue in run.issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
        table.add_row(
            run.review_id,
            run.commit_sha[:7],
            f"[{style}]{event}[/{style}]",
            str(counts["critical"]),
            str(counts["high"]),
            str(counts["medium"]),
            str(counts["low"]),
            run.timestamp[:19].replace("T", " "),
        )

    console.print(table)
