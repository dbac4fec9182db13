"""
Learning sessions: bounded review runs for one learner.

State machine per session:

    CREATED -> IN_PROGRESS -> COMPLETED
        |            |
        |            +------> EXPIRED   (idle timeout or abandoned)
        +-> COMPLETED (nothing due)

A session only lives in memory and only for its own lifetime. Outcomes are
committed through the scheduler the moment they are answered, so ending a
session early never rolls anything back.

Missed items are shown once more at the end of the queue (at most one
extra repetition per item per session); correct answers are not repeated.
"""

from __future__ import annotations

import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from .errors import SessionExpiredError, SessionNotFoundError, SessionStateError
from .models import LearnerItemState, Outcome
from .scheduler import Scheduler

if TYPE_CHECKING:
    from .config import Settings


class SessionStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.EXPIRED)


_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset(
        {SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED, SessionStatus.EXPIRED}
    ),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.EXPIRED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}


@dataclass(frozen=True)
class SessionSummary:
    """What is left of a session once it ends."""

    session_id: str
    user_id: str
    status: SessionStatus
    started_at: datetime
    ended_at: datetime
    answered: int
    correct: int
    incorrect: int
    repeated_items: tuple[str, ...] = ()
    skipped_items: tuple[str, ...] = ()

    @property
    def accuracy(self) -> float:
        return self.correct / self.answered if self.answered else 0.0


@dataclass
class LearningSession:
    """Queue, cursor and counters of one session."""

    session_id: str
    user_id: str
    queue: list[str]
    started_at: datetime
    last_activity_at: datetime
    requeue_incorrect: bool = True
    cursor: int = 0
    correct: int = 0
    incorrect: int = 0
    status: SessionStatus = SessionStatus.CREATED
    repeated: set[str] = field(default_factory=set)
    skipped: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def current_item(self) -> str | None:
        if self.cursor < len(self.queue):
            return self.queue[self.cursor]
        return None

    @property
    def answered(self) -> int:
        return self.correct + self.incorrect

    def transition(self, new_status: SessionStatus) -> None:
        if new_status not in _TRANSITIONS[self.status]:
            raise SessionStateError(
                f"Session {self.session_id} cannot go from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def is_idle(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.last_activity_at > timeout

    def advance(self, item_id: str, outcome: Outcome, now: datetime) -> bool:
        """
        Move past the current item after its outcome was committed.

        Returns:
            True if the item was appended for one more attempt
        """
        self.cursor += 1
        self.last_activity_at = now
        if outcome.is_correct:
            self.correct += 1
            return False

        self.incorrect += 1
        if self.requeue_incorrect and item_id not in self.repeated:
            self.repeated.add(item_id)
            self.queue.append(item_id)
            return True
        return False

    def skip(self, now: datetime) -> str:
        """Move past the current item without an outcome."""
        item_id = self.queue[self.cursor]
        self.cursor += 1
        self.last_activity_at = now
        self.skipped.append(item_id)
        return item_id

    def summarize(self, ended_at: datetime) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            user_id=self.user_id,
            status=self.status,
            started_at=self.started_at,
            ended_at=ended_at,
            answered=self.answered,
            correct=self.correct,
            incorrect=self.incorrect,
            repeated_items=tuple(sorted(self.repeated)),
            skipped_items=tuple(self.skipped),
        )


@dataclass(frozen=True)
class AnswerResult:
    """Returned by ``SessionEngine.submit_answer``."""

    item_id: str
    outcome: Outcome
    state: LearnerItemState
    requeued: bool
    next_item_id: str | None
    status: SessionStatus
    summary: SessionSummary | None = None

    @property
    def finished(self) -> bool:
        return self.status.is_terminal


class SessionEngine:
    """
    Creates and drives sessions on top of a Scheduler.

    The registry of live sessions is shared; each session itself belongs to
    the caller that started it. Ended sessions are dropped from the registry;
    the ids of the last ``max_expired_ids`` expired ones are remembered so a
    late answer gets SessionExpiredError rather than SessionNotFoundError.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        idle_timeout: timedelta = timedelta(minutes=30),
        default_batch_size: int = 20,
        requeue_incorrect: bool = True,
        clock: Callable[[], datetime] | None = None,
        max_expired_ids: int = 1024,
    ):
        if idle_timeout <= timedelta(0):
            raise ValueError("idle_timeout must be positive")
        self.scheduler = scheduler
        self.idle_timeout = idle_timeout
        self.default_batch_size = default_batch_size
        self.requeue_incorrect = requeue_incorrect
        self.clock = clock or scheduler.clock
        self._sessions: dict[str, LearningSession] = {}
        self._expired: OrderedDict[str, None] = OrderedDict()
        self._max_expired_ids = max_expired_ids
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        scheduler: Scheduler,
        clock: Callable[[], datetime] | None = None,
    ) -> "SessionEngine":
        return cls(
            scheduler,
            idle_timeout=timedelta(minutes=settings.session_idle_timeout_minutes),
            default_batch_size=settings.default_batch_size,
            requeue_incorrect=settings.requeue_incorrect,
            clock=clock,
        )

    @property
    def active_sessions(self) -> int:
        with self._registry_lock:
            return len(self._sessions)

    def start_session(self, user_id: str, batch_size: int | None = None) -> LearningSession:
        """
        Pull the due batch and open a session.

        With nothing due the session is returned already COMPLETED.

        Raises:
            NotFoundError: the user has no tracked items
            ValidationError: bad batch size
        """
        now = self.clock()
        limit = self.default_batch_size if batch_size is None else batch_size
        due = self.scheduler.get_due_items(user_id, as_of=now, limit=limit)

        session = LearningSession(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            queue=list(due),
            started_at=now,
            last_activity_at=now,
            requeue_incorrect=self.requeue_incorrect,
        )

        if not due:
            session.transition(SessionStatus.COMPLETED)
            logger.info(f"Session {session.session_id[:8]} for {user_id}: nothing due")
            return session

        session.transition(SessionStatus.IN_PROGRESS)
        with self._registry_lock:
            self._sessions[session.session_id] = session
        logger.info(f"Session {session.session_id[:8]} started for {user_id} with {len(due)} items")
        return session

    def get_session(self, session_id: str) -> LearningSession:
        with self._registry_lock:
            session = self._sessions.get(session_id)
            expired = session is None and session_id in self._expired
        if expired:
            raise SessionExpiredError(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def submit_answer(self, session_id: str, outcome: Outcome | str | bool) -> AnswerResult:
        """
        Record the outcome for the session's current item and move on.

        If the scheduler rejects the review, the session is left untouched and
        stays on the same item. Retryable errors can simply be resubmitted;
        after a non-retryable one (item detached, review older than the last
        one recorded on another device) call ``skip_item`` to move on.

        Raises:
            ValidationError: bad outcome
            SessionNotFoundError: unknown or completed session
            SessionExpiredError: idle timeout passed or session abandoned
            SessionStateError: session not in progress
            UnknownItemError, ConcurrentUpdateError, StoreUnavailableError: from the scheduler
        """
        outcome = Outcome.parse(outcome)
        session = self.get_session(session_id)

        with session._lock:
            now = self.clock()
            self._require_live(session, now)

            item_id = session.current_item
            state = self.scheduler.record_outcome(session.user_id, item_id, outcome, at=now)
            requeued = session.advance(item_id, outcome, now)

            summary = None
            if session.current_item is None:
                summary = self._finish(session, SessionStatus.COMPLETED, now)

            return AnswerResult(
                item_id=item_id,
                outcome=outcome,
                state=state,
                requeued=requeued,
                next_item_id=session.current_item,
                status=session.status,
                summary=summary,
            )

    def skip_item(self, session_id: str) -> LearningSession:
        """
        Move past the current item without recording an outcome.

        The item keeps its stored state and stays due. Skipping the last
        item completes the session.

        Raises:
            SessionNotFoundError, SessionExpiredError, SessionStateError: as for submit_answer
        """
        session = self.get_session(session_id)

        with session._lock:
            now = self.clock()
            self._require_live(session, now)

            item_id = session.skip(now)
            logger.info(f"Session {session_id[:8]} skipped {item_id}")
            if session.current_item is None:
                self._finish(session, SessionStatus.COMPLETED, now)
            return session

    def abandon(self, session_id: str) -> SessionSummary:
        """Caller walked away. Already committed outcomes stay."""
        session = self.get_session(session_id)
        with session._lock:
            if session.status.is_terminal:
                raise SessionStateError(f"Session {session_id} already {session.status.value}")
            return self._finish(session, SessionStatus.EXPIRED, self.clock())

    def expire_idle(self, now: datetime | None = None) -> list[SessionSummary]:
        """Expire every session idle longer than the timeout."""
        now = now or self.clock()
        with self._registry_lock:
            candidates = list(self._sessions.values())

        expired = []
        for session in candidates:
            with session._lock:
                if session.status.is_terminal or not session.is_idle(now, self.idle_timeout):
                    continue
                expired.append(self._finish(session, SessionStatus.EXPIRED, now))
        return expired

    def _require_live(self, session: LearningSession, now: datetime) -> None:
        """Caller holds the session lock. Expires the session lazily."""
        if session.status is not SessionStatus.IN_PROGRESS:
            raise SessionStateError(
                f"Session {session.session_id} is {session.status.value}, not in progress"
            )
        if session.is_idle(now, self.idle_timeout):
            self._finish(session, SessionStatus.EXPIRED, now)
            raise SessionExpiredError(session.session_id)

    def _finish(
        self, session: LearningSession, status: SessionStatus, now: datetime
    ) -> SessionSummary:
        session.transition(status)
        with self._registry_lock:
            self._sessions.pop(session.session_id, None)
            if status is SessionStatus.EXPIRED:
                self._expired[session.session_id] = None
                while len(self._expired) > self._max_expired_ids:
                    self._expired.popitem(last=False)

        summary = session.summarize(now)
        log = logger.info if status is SessionStatus.COMPLETED else logger.warning
        log(
            f"Session {session.session_id[:8]} {status.value}: "
            f"{summary.correct}/{summary.answered} correct, "
            f"{len(summary.repeated_items)} repeated, {len(summary.skipped_items)} skipped"
        )
        return summary
