"""Project rule loading.

Teams describe their review rules as markdown files under ``.augment/rules``.
All of them are concatenated, in path order, into one prompt section.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

NO_RULES = "No project-specific rules configured."


def find_rule_files(rules_dir: Path) -> list[Path]:
    if not rules_dir.is_dir():
        return []
    return sorted(p for p in rules_dir.rglob("*.md") if p.is_file())


def load_project_rules(project_root: str | Path, rules_dir: str = ".augment/rules") -> str:
    """Return the project's rules as a markdown section, or NO_RULES when there are none."""
    root = Path(project_root) / rules_dir
    sections = []
    for path in find_rule_files(root):
        try:
            content = path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable rule file %s: %s", path, e)
            continue
        if not content:
            continue
        sections.append(f"### {path.relative_to(root).as_posix()}\n\n{content}")

    if not sections:
        return NO_RULES
    logger.info("Loaded %d rule file(s) from %s", len(sections), root)
    return "\n\n".join(sections)
