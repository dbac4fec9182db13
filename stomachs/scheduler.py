"""
5 Cow Stomachs Scheduler.

Implements:
- Due-item selection (oldest overdue first, ties by item id)
- Review recording as an optimistic read-compute-CAS cycle
- Item attachment (stage 0, due immediately)

Review recording must behave as if every (user, item) review were
serialized. It never takes a lock: it reads the record and its version,
applies the Stage Policy, and writes conditioned on that version. A lost
race re-runs the whole cycle against fresh state, up to ``max_attempts``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from .errors import ConcurrentUpdateError, NotFoundError, UnknownItemError, ValidationError
from .history import HistoryRecorder, InMemoryHistorySink
from .models import (
    LearnerItemState,
    Outcome,
    ReviewEvent,
    VocabularyItem,
    require_aware,
    utcnow,
)
from .policy import DEFAULT_POLICY, Stage, StagePolicy
from .stats import ReviewSummary, stage_distribution, summarize_history
from .store.base import StateStore

if TYPE_CHECKING:
    from .config import Settings

DEFAULT_MAX_ATTEMPTS = 3


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


class Scheduler:
    """
    Owns every LearnerItemState mutation.

    Args:
        store: StateStore with atomic per-record compare-and-swap
        recorder: HistoryRecorder (in-memory sink if None)
        policy: StagePolicy (default interval table if None)
        max_attempts: read-compute-write attempts per review
        clock: returns the current aware datetime
    """

    def __init__(
        self,
        store: StateStore,
        recorder: HistoryRecorder | None = None,
        policy: StagePolicy | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.recorder = recorder or HistoryRecorder(InMemoryHistorySink())
        self.policy = policy or DEFAULT_POLICY
        self.max_attempts = max_attempts
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: StateStore,
        recorder: HistoryRecorder | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "Scheduler":
        return cls(
            store,
            recorder=recorder,
            policy=StagePolicy.from_settings(settings),
            max_attempts=settings.max_cas_attempts,
            clock=clock,
        )

    # =========================================================================
    # Attachment
    # =========================================================================

    def initialize_state(
        self, user_id: str, item_id: str, now: datetime | None = None
    ) -> LearnerItemState:
        """
        Start tracking an item for a learner: stage 0, due immediately.

        Re-attaching an already tracked item returns the stored state unchanged.
        """
        _require_id(user_id, "user_id")
        _require_id(item_id, "item_id")
        now = require_aware(self.clock() if now is None else now, "now")

        state, created = self.store.insert_if_absent(
            LearnerItemState(user_id=user_id, item_id=item_id, stage=int(Stage.NEW), due_at=now)
        )
        if created:
            logger.debug(f"Attached {item_id} to {user_id}, due {now.isoformat()}")
        return state

    def attach_items(
        self,
        user_id: str,
        items: Iterable[VocabularyItem | str],
        now: datetime | None = None,
    ) -> list[LearnerItemState]:
        """Attach every item of an acquired package."""
        now = require_aware(self.clock() if now is None else now, "now")
        states = []
        for item in items:
            item_id = item.item_id if isinstance(item, VocabularyItem) else item
            states.append(self.initialize_state(user_id, item_id, now))
        logger.info(f"Attached {len(states)} items to {user_id}")
        return states

    # =========================================================================
    # Reads
    # =========================================================================

    def get_state(self, user_id: str, item_id: str) -> LearnerItemState:
        state = self.store.read(user_id, item_id)
        if state is None:
            raise UnknownItemError(user_id, item_id)
        return state

    def get_due_items(
        self,
        user_id: str,
        as_of: datetime | None = None,
        limit: int = 20,
    ) -> list[str]:
        """
        Item ids due at ``as_of``, oldest due first, ties broken by item id.

        Read-only. An empty list is a normal answer.

        Raises:
            NotFoundError: the user has no tracked items at all
            ValidationError: bad limit or naive timestamp
        """
        _require_id(user_id, "user_id")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}")
        as_of = require_aware(self.clock() if as_of is None else as_of, "as_of")

        due = self.store.query_due(user_id, as_of, limit)
        if not due and self.store.count_for_user(user_id) == 0:
            raise NotFoundError(user_id)

        due.sort(key=lambda s: (s.due_at, s.item_id))
        return [s.item_id for s in due[:limit]]

    def next_due_at(self, user_id: str) -> datetime:
        """Earliest upcoming due time across the user's items."""
        states = self.store.list_for_user(user_id)
        if not states:
            raise NotFoundError(user_id)
        return min(s.due_at for s in states)

    def stage_distribution(self, user_id: str) -> dict[Stage, int]:
        states = self.store.list_for_user(user_id)
        if not states:
            raise NotFoundError(user_id)
        return stage_distribution(states)

    def review_summary(self, user_id: str) -> ReviewSummary:
        return summarize_history(self.recorder.sink.events_for(user_id))

    # =========================================================================
    # Review recording
    # =========================================================================

    def record_outcome(
        self,
        user_id: str,
        item_id: str,
        outcome: Outcome | str | bool,
        at: datetime | None = None,
    ) -> LearnerItemState:
        """
        Apply a review outcome and append its history event.

        Args:
            user_id: Learner id
            item_id: Reviewed item id
            outcome: correct/incorrect
            at: Review time (defaults to the clock)

        Returns:
            The stored state after the review

        Raises:
            ValidationError: bad outcome, or ``at`` earlier than the last review
            UnknownItemError: item not attached to the user
            ConcurrentUpdateError: every CAS attempt lost (retryable)
            StoreUnavailableError: storage failure (nothing written)
        """
        _require_id(user_id, "user_id")
        _require_id(item_id, "item_id")
        outcome = Outcome.parse(outcome)
        at = require_aware(self.clock() if at is None else at, "at")

        for attempt in range(1, self.max_attempts + 1):
            current = self.store.read(user_id, item_id)
            if current is None:
                raise UnknownItemError(user_id, item_id)
            if current.last_reviewed_at is not None and at < current.last_reviewed_at:
                raise ValidationError(
                    f"review at {at.isoformat()} precedes last review "
                    f"{current.last_reviewed_at.isoformat()} of {item_id}"
                )

            transition = self.policy.apply(
                current.stage, current.consecutive_correct, outcome, at
            )
            updated = current.evolve(
                stage=int(transition.stage_after),
                due_at=transition.due_at,
                last_reviewed_at=at,
                consecutive_correct=transition.consecutive_correct,
                version=current.version + 1,
            )

            if self.store.compare_and_swap(user_id, item_id, current.version, updated):
                break

            logger.debug(
                f"Version conflict on ({user_id}, {item_id}) at v{current.version}, "
                f"attempt {attempt}/{self.max_attempts}"
            )
        else:
            logger.warning(
                f"Giving up on ({user_id}, {item_id}) after {self.max_attempts} conflicting writes"
            )
            raise ConcurrentUpdateError(user_id, item_id, self.max_attempts)

        logger.debug(
            f"Recorded {outcome.value} for {item_id} ({user_id}): "
            f"stage {current.stage}->{updated.stage}, due={updated.due_at.isoformat()}"
        )

        self.recorder.record(
            ReviewEvent(
                user_id=user_id,
                item_id=item_id,
                reviewed_at=at,
                outcome=outcome,
                stage_before=current.stage,
                stage_after=updated.stage,
                state_version=updated.version,
            )
        )
        return updated
