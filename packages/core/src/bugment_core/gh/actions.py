"""GitHub Actions runtime helpers: event payload, step outputs, workflow commands."""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


def in_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def read_event() -> dict:
    """Return the triggering event payload, or {} outside Actions."""
    path = os.environ.get("GITHUB_EVENT_PATH")
    if not path or not Path(path).is_file():
        return {}
    try:
        return json.loads(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read event payload %s: %s", path, e)
        return {}


def pr_number_from_event(event: dict) -> int | None:
    pull_request = event.get("pull_request") or {}
    number = pull_request.get("number") or event.get("number")
    return int(number) if number else None


def set_output(name: str, value) -> None:
    """Write a step output; logged only when not running under Actions."""
    path = os.environ.get("GITHUB_OUTPUT")
    text = str(value)
    if not path:
        logger.debug("output %s=%s", name, text)
        return
    with open(path, "a", encoding="utf-8") as f:
        if "\n" in text:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            f.write(f"{name}<<{delimiter}\n{text}\n{delimiter}\n")
        else:
            f.write(f"{name}={text}\n")


def error(message: str) -> None:
    """Emit an ::error:: workflow command so the failure shows as an annotation."""
    print(f"::error::{message}")
