"""Embed review results in, and recover them from, GitHub review bodies.

The result is stored as a JSON block inside an HTML comment, so it is
invisible in the rendered review:

    <!-- REVIEW_DATA:
    ```json
    {...}
    ```
    -->

``-->`` would end the HTML comment and a backtick run could end the code
fence, so both are written as JSON ``\\u`` escapes. JSON structure itself never
contains either, and the escapes decode back to the original text.
"""

from __future__ import annotations

import json
import logging
import re

from bugment_core.models import ReviewResult

logger = logging.getLogger(__name__)

REVIEW_DATA_MARKER = "REVIEW_DATA:"

BUGMENT_SIGNATURES = (
    "🤖 Powered by [Bugment AI Code Review]",
    "Bugment Code Review",
    "Bugment AI Code Review",
    "🤖 Powered by Bugment",
    REVIEW_DATA_MARKER,
)

_REVIEW_DATA_RE = re.compile(r"REVIEW_DATA:\s*```json\s*([\s\S]*?)\s*```")


def embed_review_data(result: ReviewResult) -> str:
    payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    payload = payload.replace("-->", "--\\u003e").replace("`", "\\u0060")
    return f"<!-- {REVIEW_DATA_MARKER}\n```json\n{payload}\n```\n-->"


def extract_review_data(body: str | None) -> ReviewResult | None:
    """Return the embedded ReviewResult, or None if the body carries none or it is malformed."""
    match = _REVIEW_DATA_RE.search(body or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning("Ignoring malformed review data block: %s", e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring review data block that is not a JSON object")
        return None
    return ReviewResult.from_dict(data)


def is_bugment_review(body: str | None) -> bool:
    text = body or ""
    return any(signature in text for signature in BUGMENT_SIGNATURES)
