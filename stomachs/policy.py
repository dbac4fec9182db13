"""
5 Cow Stomachs Stage Policy.

An extended Leitner scheme. Every item sits in one stage:

0 - New, never reviewed
1 - First stomach (1 day)
2 - Second stomach (2 days)
3 - Third stomach (4 days)
4 - Fourth stomach (7 days)
5 - Graduated, periodic refresher (21 days)

Correct answers promote one stage (capped at 5). Incorrect answers demote
one stage, but never back to 0 once an item has been reviewed. The first
review always lands in stage 1.

Everything here is pure: no clock, no storage, no shared state.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

from .models import Outcome

if TYPE_CHECKING:
    from .config import Settings


class Stage(IntEnum):
    """Retention stages ("stomachs")."""

    NEW = 0
    STOMACH_1 = 1
    STOMACH_2 = 2
    STOMACH_3 = 3
    STOMACH_4 = 4
    GRADUATED = 5


REVIEWED_STAGES = tuple(s for s in Stage if s is not Stage.NEW)

DEFAULT_INTERVALS: Mapping[Stage, timedelta] = MappingProxyType(
    {
        Stage.STOMACH_1: timedelta(days=1),
        Stage.STOMACH_2: timedelta(days=2),
        Stage.STOMACH_3: timedelta(days=4),
        Stage.STOMACH_4: timedelta(days=7),
        Stage.GRADUATED: timedelta(days=21),
    }
)


@dataclass(frozen=True)
class Transition:
    """Outcome of applying one review to a stage."""

    stage_before: Stage
    stage_after: Stage
    interval: timedelta
    due_at: datetime
    consecutive_correct: int

    @property
    def promoted(self) -> bool:
        return self.stage_after > self.stage_before

    @property
    def demoted(self) -> bool:
        return self.stage_after < self.stage_before


@dataclass(frozen=True)
class StagePolicy:
    """
    Interval table plus promotion/demotion rules.

    The table is fixed per instance; build a new policy to tune intervals.
    """

    intervals: Mapping[Stage, timedelta] = field(default_factory=lambda: DEFAULT_INTERVALS)

    def __post_init__(self) -> None:
        table = {Stage(stage): delta for stage, delta in self.intervals.items()}
        if set(table) != set(REVIEWED_STAGES):
            raise ValueError("interval table must cover exactly stages 1-5")

        ordered = [table[stage] for stage in REVIEWED_STAGES]
        if any(delta <= timedelta(0) for delta in ordered):
            raise ValueError("stage intervals must be positive")
        if any(later < earlier for earlier, later in zip(ordered, ordered[1:])):
            raise ValueError("stage intervals must not decrease with stage")

        object.__setattr__(self, "intervals", MappingProxyType(table))

    @classmethod
    def from_days(cls, days: Sequence[float]) -> "StagePolicy":
        """Build a policy from five day counts for stages 1-5."""
        if len(days) != len(REVIEWED_STAGES):
            raise ValueError("interval table must cover exactly stages 1-5")
        return cls({stage: timedelta(days=d) for stage, d in zip(REVIEWED_STAGES, days)})

    @classmethod
    def from_settings(cls, settings: Settings) -> "StagePolicy":
        return cls.from_days(settings.stage_intervals_days)

    def interval(self, stage: int) -> timedelta:
        """Review interval applied after landing in ``stage``."""
        stage = Stage(stage)
        if stage is Stage.NEW:
            raise ValueError("new items have no interval; they are due on attachment")
        return self.intervals[stage]

    @staticmethod
    def next_stage(stage_before: int, outcome: Outcome | str | bool) -> Stage:
        """
        Stage after a review.

        First review always lands in stage 1. Afterwards correct promotes
        (capped at GRADUATED) and incorrect demotes (floored at STOMACH_1).
        """
        outcome = Outcome.parse(outcome)
        before = Stage(stage_before)
        if before is Stage.NEW:
            return Stage.STOMACH_1
        if outcome is Outcome.CORRECT:
            return Stage(min(before + 1, Stage.GRADUATED))
        return Stage(max(before - 1, Stage.STOMACH_1))

    def apply(
        self,
        stage_before: int,
        consecutive_correct: int,
        outcome: Outcome | str | bool,
        reviewed_at: datetime,
    ) -> Transition:
        """Compute the full transition for a review at ``reviewed_at``."""
        outcome = Outcome.parse(outcome)
        after = self.next_stage(stage_before, outcome)
        interval = self.intervals[after]
        return Transition(
            stage_before=Stage(stage_before),
            stage_after=after,
            interval=interval,
            due_at=reviewed_at + interval,
            consecutive_correct=consecutive_correct + 1 if outcome.is_correct else 0,
        )


DEFAULT_POLICY = StagePolicy()
