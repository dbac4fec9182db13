"""
Review history: append-only sinks plus a best-effort recorder.

History is auxiliary to scheduling. A failed append never undoes the
state change that produced the event; the recorder keeps the event and
redelivers it later (at-least-once). Consumers deduplicate on
``ReviewEvent.dedup_key``.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db.database import session_scope
from .db.models import ReviewEventRow
from .errors import HistoryAppendError, StoreUnavailableError
from .models import Outcome, ReviewEvent


class HistorySink(ABC):
    """Append-only destination for review events."""

    @abstractmethod
    def append(self, event: ReviewEvent) -> None:
        """Persist the event or raise HistoryAppendError."""

    @abstractmethod
    def events_for(self, user_id: str) -> list[ReviewEvent]:
        """Events for a user in review order."""


class InMemoryHistorySink(HistorySink):
    """List-backed sink. Redelivered duplicates are dropped."""

    def __init__(self) -> None:
        self._events: list[ReviewEvent] = []
        self._seen: set[tuple] = set()
        self._lock = threading.Lock()

    def append(self, event: ReviewEvent) -> None:
        with self._lock:
            if event.dedup_key in self._seen:
                return
            self._seen.add(event.dedup_key)
            self._events.append(event)

    def events_for(self, user_id: str) -> list[ReviewEvent]:
        with self._lock:
            events = [e for e in self._events if e.user_id == user_id]
        return sorted(events, key=lambda e: (e.reviewed_at, e.item_id))

    @property
    def events(self) -> list[ReviewEvent]:
        with self._lock:
            return list(self._events)


class SqlHistorySink(HistorySink):
    """Writes events to the ``review_event`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._factory = session_factory

    def append(self, event: ReviewEvent) -> None:
        row = ReviewEventRow(
            user_id=event.user_id,
            item_id=event.item_id,
            reviewed_at=event.reviewed_at,
            outcome=event.outcome.value,
            stage_before=event.stage_before,
            stage_after=event.stage_after,
            state_version=event.state_version,
        )
        try:
            with session_scope(self._factory) as session:
                session.add(row)
        except IntegrityError:
            logger.debug(f"Review event {event.dedup_key} already recorded")
        except SQLAlchemyError as e:
            raise HistoryAppendError(f"could not append review event: {e}") from e

    def events_for(self, user_id: str) -> list[ReviewEvent]:
        stmt = (
            select(ReviewEventRow)
            .where(ReviewEventRow.user_id == user_id)
            .order_by(ReviewEventRow.reviewed_at, ReviewEventRow.item_id)
        )
        try:
            with session_scope(self._factory) as session:
                return [
                    ReviewEvent(
                        user_id=row.user_id,
                        item_id=row.item_id,
                        reviewed_at=row.reviewed_at,
                        outcome=Outcome(row.outcome),
                        stage_before=row.stage_before,
                        stage_after=row.stage_after,
                        state_version=row.state_version,
                    )
                    for row in session.scalars(stmt)
                ]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"could not read review history: {e}") from e


class HistoryRecorder:
    """
    Front door the scheduler uses to emit events.

    Failed appends are logged and parked in a bounded buffer. When the
    buffer is full the oldest parked event is dropped with an error log.
    """

    def __init__(self, sink: HistorySink, max_pending: int = 10_000):
        self.sink = sink
        self._pending: deque[ReviewEvent] = deque()
        self._max_pending = max_pending
        self._lock = threading.Lock()

    def record(self, event: ReviewEvent) -> bool:
        """
        Append an event. Returns False if it was parked for redelivery.

        Never raises: the review that produced the event is already stored.
        """
        try:
            self.sink.append(event)
            return True
        except HistoryAppendError as e:
            logger.warning(f"History append failed for {event.dedup_key}, parked: {e}")
        except Exception:
            logger.exception(f"History sink crashed on {event.dedup_key}, parked")
        self._park(event)
        return False

    def _park(self, event: ReviewEvent) -> None:
        with self._lock:
            if len(self._pending) >= self._max_pending:
                dropped = self._pending.popleft()
                logger.error(f"History buffer full, dropping {dropped.dedup_key}")
            self._pending.append(event)

    @property
    def pending(self) -> list[ReviewEvent]:
        with self._lock:
            return list(self._pending)

    def redeliver_pending(self) -> int:
        """
        Retry parked events in order; stop at the first failure.

        Returns:
            Number of events delivered
        """
        delivered = 0
        while True:
            with self._lock:
                if not self._pending:
                    break
                event = self._pending[0]
            try:
                self.sink.append(event)
            except Exception as e:
                logger.warning(f"Redelivery of {event.dedup_key} failed: {e}")
                break
            with self._lock:
                if self._pending and self._pending[0] is event:
                    self._pending.popleft()
            delivered += 1

        if delivered:
            logger.info(f"Redelivered {delivered} parked review events")
        return delivered
