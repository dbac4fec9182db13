"""Read-only aggregates over review history and learner state."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .models import LearnerItemState, Outcome, ReviewEvent
from .policy import Stage


@dataclass(frozen=True)
class ReviewSummary:
    total: int = 0
    correct: int = 0
    incorrect: int = 0
    graduations: int = 0
    lapses: int = 0
    first_review_at: datetime | None = None
    last_review_at: datetime | None = None

    @property
    def accuracy(self) -> float:
        """Share of correct answers (0.0 with no reviews)."""
        return self.correct / self.total if self.total else 0.0


def summarize_history(events: Iterable[ReviewEvent]) -> ReviewSummary:
    """
    Fold review events into a summary.

    Events redelivered more than once are counted once.
    """
    unique = {e.dedup_key: e for e in events}
    if not unique:
        return ReviewSummary()

    ordered = sorted(unique.values(), key=lambda e: e.reviewed_at)
    correct = sum(1 for e in ordered if e.outcome is Outcome.CORRECT)
    return ReviewSummary(
        total=len(ordered),
        correct=correct,
        incorrect=len(ordered) - correct,
        graduations=sum(1 for e in ordered if e.is_graduation),
        lapses=sum(1 for e in ordered if e.is_lapse),
        first_review_at=ordered[0].reviewed_at,
        last_review_at=ordered[-1].reviewed_at,
    )


def stage_distribution(states: Iterable[LearnerItemState]) -> dict[Stage, int]:
    """Tracked items per stage, every stage present (zero-filled)."""
    counts = Counter(Stage(s.stage) for s in states)
    return {stage: counts.get(stage, 0) for stage in Stage}
