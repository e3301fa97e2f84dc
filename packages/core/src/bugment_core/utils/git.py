"""Local git helpers: base SHA resolution and diff generation.

On ``pull_request`` events actions/checkout leaves HEAD on GitHub's synthetic
merge commit, not on the PR head. Diffing the PR's recorded base against that
commit pulls in everything that landed on the base branch since the PR was
opened, so the comparison base has to be the merge commit's first parent.
"""

from __future__ import annotations

import logging
import subprocess

from bugment_core.exceptions import DiffError

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 60


def _run_git(args: list[str], cwd: str) -> str:
    """Run ``git <args>`` in ``cwd`` and return stdout; raise CalledProcessError on failure."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=_GIT_TIMEOUT,
        check=True,
    )
    return result.stdout


def is_merge_commit(sha: str, cwd: str) -> bool:
    """True when the commit has more than one parent."""
    raw = _run_git(["cat-file", "-p", sha], cwd)
    parents = [line for line in raw.splitlines() if line.startswith("parent ")]
    return len(parents) > 1


def first_parent(sha: str, cwd: str) -> str:
    return _run_git(["rev-parse", f"{sha}^1"], cwd).strip()


def resolve_base_sha(pr_base_sha: str, workspace: str, checkout_sha: str | None) -> str:
    """Return the SHA the PR diff should be computed against.

    The checked-out SHA itself is never returned: it is either a merge commit
    (whose first parent is the real base) or the PR head.
    """
    if not checkout_sha:
        return pr_base_sha

    try:
        merge = is_merge_commit(checkout_sha, workspace)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        logger.warning("Could not inspect checkout commit %s: %s. Using PR base.", checkout_sha[:8], e)
        return pr_base_sha

    if not merge:
        logger.debug("Checkout %s is not a merge commit; using PR base %s", checkout_sha[:8], pr_base_sha[:8])
        return pr_base_sha

    try:
        base = first_parent(checkout_sha, workspace)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        logger.warning("Could not resolve first parent of %s: %s. Using PR base.", checkout_sha[:8], e)
        return pr_base_sha

    if not base:
        return pr_base_sha
    logger.info("Checkout %s is a merge commit; diffing against first parent %s", checkout_sha[:8], base[:8])
    return base


def local_diff(base_sha: str, head_sha: str, workspace: str) -> str:
    """Return ``git diff base...head`` from the workspace checkout.

    Raises DiffError when git is unavailable or either commit is missing
    (e.g. a shallow checkout).
    """
    try:
        return _run_git(
            ["diff", "--no-color", "--no-ext-diff", "--unified=3", f"{base_sha}...{head_sha}"],
            workspace,
        )
    except subprocess.CalledProcessError as e:
        raise DiffError(f"git diff {base_sha[:8]}...{head_sha[:8]} failed: {(e.stderr or '').strip()}") from e
    except (subprocess.TimeoutExpired, OSError) as e:
        raise DiffError(f"git diff {base_sha[:8]}...{head_sha[:8]} failed: {e}") from e
