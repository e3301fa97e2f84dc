"""Base reviewer implementing the Template Method pattern.

Every backend shares the same review algorithm:
    review() → build_prompt() → _call_api()   ← only this differs per backend

Subclasses implement _call_api: take the fully rendered prompt, return the
model's raw markdown answer. Parsing that answer lives in bugment_core.parser.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from bugment_core.exceptions import BugmentError, ReviewError

if TYPE_CHECKING:
    from bugment_core.models import PullRequestInfo

logger = logging.getLogger(__name__)

_NO_TITLE = "No title provided"
_NO_DESCRIPTION = "No description provided"
_NO_DIFF = "No diff content available"
_PLACEHOLDER_RE = re.compile(r"\{(PR_TITLE|PR_DESCRIPTION|PROJECT_RULES|DIFF_CONTENT)\}")


class BaseReviewer(ABC):
    def __init__(self, prompt_template: str):
        self.prompt_template = prompt_template

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review(self, pr: PullRequestInfo, diff: str, rules: str) -> str:
        """Render the prompt for this PR and return the model's raw answer.

        Raises ReviewError when the backend fails or answers with nothing.
        """
        prompt = self.build_prompt(pr, diff, rules)
        logger.info("%s: sending review prompt (%d chars)", self.__class__.__name__, len(prompt))
        try:
            raw = self._call_api(prompt)
        except BugmentError as e:
            raise ReviewError(f"{self.__class__.__name__} review failed: {e}") from e
        if not raw or not raw.strip():
            raise ReviewError(f"{self.__class__.__name__} returned an empty review")
        logger.debug("%s: received %d chars", self.__class__.__name__, len(raw))
        return raw

    # ------------------------------------------------------------------ #
    # Abstract: implement in each backend                                 #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, prompt: str) -> str:
        """Make a single call and return the raw text response."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def build_prompt(self, pr: PullRequestInfo, diff: str, rules: str) -> str:
        # One pass over the template only: substituted values are never rescanned,
        # and other braces in the markdown are left alone.
        values = {
            "PR_TITLE": pr.title or _NO_TITLE,
            "PR_DESCRIPTION": pr.body or _NO_DESCRIPTION,
            "PROJECT_RULES": rules,
            "DIFF_CONTENT": diff or _NO_DIFF,
        }
        prompt = _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], self.prompt_template)
        if pr.owner and pr.repo and pr.head_sha:
            prompt += (
                "\n\n## GitHub Repository\n"
                f"- Repository: {pr.owner}/{pr.repo}\n"
                f"- Commit: {pr.head_sha}\n"
                f"- Base URL: https://github.com/{pr.owner}/{pr.repo}/blob/{pr.head_sha}/"
            )
        return prompt
