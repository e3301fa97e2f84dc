"""CLI entry point for bugment.

Commands:
  review    review a pull request and post the result (the action entry point)
  history   show prior Bugment runs recorded on a pull request
  parse     parse a saved AI answer offline and show where its issues land
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from bugment_cli.commands.history import history_cmd
from bugment_cli.commands.parse import parse_cmd
from bugment_cli.commands.review import review_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # PyGithub and urllib3 are chatty at DEBUG.
    for name in ("github", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_store(config: dict):
    """Instantiate the history store.

    History lives in the PR's own review bodies, so the only choice is
    whether to read it at all (``history: false`` in .bugment.yml).
    """
    from bugment_store.noop import NoOpStore
    from bugment_store.review_body import ReviewBodyStore

    if not config.get("history", True):
        return NoOpStore()
    return ReviewBodyStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("bugment"),
    prog_name="bugment",
)
@click.option(
    "--config",
    "config_path",
    default=".bugment.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="BUGMENT_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI code review for GitHub pull requests, powered by Augment."""
    from bugment_core.config import load_config
    from bugment_cli.auth import resolve_github_token

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(history_cmd)
main.add_command(parse_cmd)
