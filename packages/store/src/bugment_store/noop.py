"""No-op store: used for shadow runs and local experiments.

Reviews still carry their embedded data block (so a later real run can read
them) but no history is read and nothing on the PR is touched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bugment_store.base import BaseStore, CleanupResult

if TYPE_CHECKING:
    from bugment_core.models import ReviewResult


class NoOpStore(BaseStore):
    def list_runs(self, pr) -> list[ReviewResult]:
        return []

    def cleanup(self, pr, current: ReviewResult) -> CleanupResult:
        return CleanupResult()
