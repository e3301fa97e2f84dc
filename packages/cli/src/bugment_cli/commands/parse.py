"""parse command: inspect a saved AI answer without GitHub or Augment."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bugment_core.diff import parse_diff
from bugment_core.ignore import IgnoreMatcher
from bugment_core.parser import parse_ai_output

console = Console()

_SEVERITY_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}


@click.command("parse")
@click.argument("output_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--diff",
    "diff_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Unified diff to check issue locations against.",
)
def parse_cmd(output_file: str, diff_file: str | None):
    """Parse an AI review answer and show the issues it contains.

    With --diff, also show which issues could be placed as inline comments.
    """
    summary, issues = parse_ai_output(Path(output_file).read_text(encoding="utf-8"))

    parsed = None
    if diff_file:
        parsed = parse_diff(Path(diff_file).read_text(encoding="utf-8"), IgnoreMatcher())

    for item in summary:
        console.print(f"• {escape(item)}")
    if summary:
        console.print()

    if not issues:
        console.print("[green]No issues found.[/green]")
        return

    table = Table(title=f"{len(issues)} issue(s)", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Severity")
    table.add_column("Title", max_width=50)
    table.add_column("Location", max_width=40)
    if parsed is not None:
        table.add_column("In diff", justify="center")

    for issue in issues:
        style = _SEVERITY_STYLE.get(issue.severity, "white")
        row = [
            issue.id,
            f"[{style}]{issue.severity}[/{style}]",
            escape(issue.title),
            escape(issue.location),
        ]
        if parsed is not None:
            row.append("✓" if parsed.is_line_in_diff(issue.file_path, issue.line_number) else "✗")
        table.add_row(*row)

    console.print(table)
