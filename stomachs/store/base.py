"""
Learner-Item State Store contract.

One record per (user_id, item_id). Writers never overwrite blindly: every
mutation goes through ``compare_and_swap`` conditioned on the version the
writer last read, and a successful swap bumps the version by exactly one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import LearnerItemState


class StateStore(ABC):
    """Storage capability the scheduler depends on."""

    @abstractmethod
    def read(self, user_id: str, item_id: str) -> LearnerItemState | None:
        """Return the stored state (with its version) or None."""

    @abstractmethod
    def compare_and_swap(
        self,
        user_id: str,
        item_id: str,
        expected_version: int,
        new_state: LearnerItemState,
    ) -> bool:
        """
        Atomically replace the record if its version equals ``expected_version``.

        ``new_state.version`` must be ``expected_version + 1``.

        Returns:
            True on success, False on a version conflict.

        Raises:
            UnknownItemError: the record does not exist.
            StoreUnavailableError: storage failure; nothing was written.
        """

    @abstractmethod
    def insert_if_absent(self, state: LearnerItemState) -> tuple[LearnerItemState, bool]:
        """
        Create the record unless one exists.

        Returns:
            (stored state, created flag)
        """

    @abstractmethod
    def query_due(self, user_id: str, as_of: datetime, limit: int) -> list[LearnerItemState]:
        """States with ``due_at <= as_of``, oldest due first, ties by item_id."""

    @abstractmethod
    def count_for_user(self, user_id: str) -> int:
        """Number of tracked items for the user."""

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[LearnerItemState]:
        """All tracked states for the user, ordered by item_id."""


def check_successor(expected_version: int, new_state: LearnerItemState) -> None:
    """Guard shared by implementations: a write must advance the version by one."""
    if new_state.version != expected_version + 1:
        raise ValueError(
            f"new version must be {expected_version + 1}, got {new_state.version}"
        )
