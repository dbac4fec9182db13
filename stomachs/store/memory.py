"""In-memory reference StateStore. Safe to share between threads."""

from __future__ import annotations

import threading
from datetime import datetime

from ..errors import UnknownItemError
from ..models import LearnerItemState
from .base import StateStore, check_successor


class InMemoryStateStore(StateStore):
    """
    Dict-backed store.

    A single lock makes each operation atomic; CAS never holds more than
    one record's version at a time.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], LearnerItemState] = {}
        self._lock = threading.Lock()

    def read(self, user_id: str, item_id: str) -> LearnerItemState | None:
        with self._lock:
            return self._records.get((user_id, item_id))

    def compare_and_swap(
        self,
        user_id: str,
        item_id: str,
        expected_version: int,
        new_state: LearnerItemState,
    ) -> bool:
        check_successor(expected_version, new_state)
        key = (user_id, item_id)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise UnknownItemError(user_id, item_id)
            if current.version != expected_version:
                return False
            self._records[key] = new_state
            return True

    def insert_if_absent(self, state: LearnerItemState) -> tuple[LearnerItemState, bool]:
        with self._lock:
            existing = self._records.get(state.key)
            if existing is not None:
                return existing, False
            self._records[state.key] = state
            return state, True

    def query_due(self, user_id: str, as_of: datetime, limit: int) -> list[LearnerItemState]:
        with self._lock:
            due = [
                s for (uid, _), s in self._records.items() if uid == user_id and s.is_due(as_of)
            ]
        due.sort(key=lambda s: (s.due_at, s.item_id))
        return due[:limit]

    def count_for_user(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for uid, _ in self._records if uid == user_id)

    def list_for_user(self, user_id: str) -> list[LearnerItemState]:
        with self._lock:
            states = [s for (uid, _), s in self._records.items() if uid == user_id]
        return sorted(states, key=lambda s: s.item_id)
