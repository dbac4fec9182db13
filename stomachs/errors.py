"""
Error taxonomy for the scheduling engine.

Callers can branch on ``err.retryable`` instead of concrete classes:
only ``ConcurrentUpdateError`` and ``StoreUnavailableError`` are worth
retrying with fresh state.
"""

from __future__ import annotations


class StomachsError(Exception):
    """Base class for every error raised by the engine."""

    retryable = False


class ValidationError(StomachsError):
    """Bad input: unknown outcome, naive or out-of-order timestamp, bad limit."""


class NotFoundError(StomachsError):
    """The user has no tracked items at all."""

    def __init__(self, user_id: str):
        super().__init__(f"No tracked items for user {user_id!r}")
        self.user_id = user_id


class UnknownItemError(StomachsError):
    """No learner state exists for the (user, item) pair."""

    def __init__(self, user_id: str, item_id: str):
        super().__init__(f"Item {item_id!r} is not attached to user {user_id!r}")
        self.user_id = user_id
        self.item_id = item_id


class ConcurrentUpdateError(StomachsError):
    """Every compare-and-swap attempt lost to a concurrent writer."""

    retryable = True

    def __init__(self, user_id: str, item_id: str, attempts: int):
        super().__init__(
            f"Concurrent update on ({user_id!r}, {item_id!r}) after {attempts} attempts"
        )
        self.user_id = user_id
        self.item_id = item_id
        self.attempts = attempts


class StoreUnavailableError(StomachsError):
    """The state store could not be reached. No partial write happened."""

    retryable = True


class HistoryAppendError(StomachsError):
    """A history sink failed to persist a review event."""

    retryable = True


class SessionError(StomachsError):
    """Base class for session engine errors."""


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} does not exist or has ended")
        self.session_id = session_id


class SessionStateError(SessionError):
    """Operation is not valid in the session's current status."""


class SessionExpiredError(SessionError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} expired after inactivity")
        self.session_id = session_id
