"""
Domain records shared by the scheduler, stores and session engine.

- VocabularyItem: immutable content reference
- LearnerItemState: per (user, item) retention state, versioned for CAS
- ReviewEvent: append-only history record
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ValidationError

MIN_STAGE = 0
MAX_STAGE = 5


def utcnow() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def require_aware(value: datetime, name: str = "timestamp") -> datetime:
    """Reject naive datetimes so comparisons never mix local and UTC time."""
    if not isinstance(value, datetime):
        raise ValidationError(f"{name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{name} must be timezone-aware")
    return value


class Outcome(str, Enum):
    """Result of a single review."""

    CORRECT = "correct"
    INCORRECT = "incorrect"

    @property
    def is_correct(self) -> bool:
        return self is Outcome.CORRECT

    @classmethod
    def parse(cls, value: Any) -> "Outcome":
        """
        Coerce caller input into an Outcome.

        Accepts Outcome members, booleans and case-insensitive strings.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.CORRECT if value else cls.INCORRECT
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"Outcome must be 'correct' or 'incorrect', got {value!r}")


@dataclass(frozen=True)
class VocabularyItem:
    """A reviewable item. Word and translation live outside the engine."""

    item_id: str
    package_id: str


@dataclass(frozen=True)
class LearnerItemState:
    """Retention state of one item for one learner."""

    user_id: str
    item_id: str
    stage: int = MIN_STAGE
    due_at: datetime = field(default_factory=utcnow)
    last_reviewed_at: datetime | None = None
    consecutive_correct: int = 0
    version: int = 0

    def __post_init__(self) -> None:
        if not MIN_STAGE <= self.stage <= MAX_STAGE:
            raise ValueError(f"stage must be in {MIN_STAGE}..{MAX_STAGE}, got {self.stage}")
        if self.consecutive_correct < 0:
            raise ValueError("consecutive_correct cannot be negative")
        if self.version < 0:
            raise ValueError("version cannot be negative")

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.item_id)

    @property
    def is_new(self) -> bool:
        return self.stage == MIN_STAGE

    def is_due(self, as_of: datetime) -> bool:
        return self.due_at <= as_of

    def evolve(self, **changes: Any) -> "LearnerItemState":
        return replace(self, **changes)


@dataclass(frozen=True)
class ReviewEvent:
    """Immutable history record of one applied review."""

    user_id: str
    item_id: str
    reviewed_at: datetime
    outcome: Outcome
    stage_before: int
    stage_after: int
    state_version: int

    @property
    def dedup_key(self) -> tuple[str, str, datetime, int]:
        """
        Consumers deduplicate redelivered events on this key.

        The state version separates two reviews that share a timestamp.
        """
        return (self.user_id, self.item_id, self.reviewed_at, self.state_version)

    @property
    def is_lapse(self) -> bool:
        return self.stage_after < self.stage_before

    @property
    def is_graduation(self) -> bool:
        return self.stage_after == MAX_STAGE and self.stage_before < MAX_STAGE
