"""Abstract store interface.

Bugment keeps its review history in the PR itself, but the pipeline only
depends on this interface, so a local or offline run can swap in a store
that does nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bugment_store.codec import embed_review_data

if TYPE_CHECKING:
    from bugment_core.models import ReviewResult


@dataclass
class CleanupResult:
    dismissed: int = 0
    minimized: int = 0
    resolved: int = 0
    failed: int = 0


class BaseStore(ABC):
    """Pluggable persistence layer for review history."""

    @abstractmethod
    def list_runs(self, pr) -> list[ReviewResult]:
        """Return prior Bugment runs on ``pr``, newest first.

        Returns an empty list if there are none; never raises.
        """

    @abstractmethod
    def cleanup(self, pr, current: ReviewResult) -> CleanupResult:
        """Retire earlier Bugment output on ``pr`` before ``current`` is posted.

        Best effort: failures are logged and counted, never raised.
        """

    def embed(self, result: ReviewResult) -> str:
        """Return the block that lets a later list_runs() recover ``result``."""
        return embed_review_data(result)

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
