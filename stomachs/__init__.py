"""
Stomachs: the 5 Cow Stomachs spaced repetition engine.

Components:
- StagePolicy: interval table and promotion/demotion rules
- StateStore: per (user, item) state with compare-and-swap
- Scheduler: due items and race-free review recording
- SessionEngine: bounded review sessions
- HistoryRecorder: append-only review events
"""

from .errors import (
    ConcurrentUpdateError,
    HistoryAppendError,
    NotFoundError,
    SessionError,
    SessionExpiredError,
    SessionNotFoundError,
    SessionStateError,
    StomachsError,
    StoreUnavailableError,
    UnknownItemError,
    ValidationError,
)
from .history import HistoryRecorder, HistorySink, InMemoryHistorySink, SqlHistorySink
from .models import LearnerItemState, Outcome, ReviewEvent, VocabularyItem
from .policy import DEFAULT_POLICY, Stage, StagePolicy, Transition
from .scheduler import Scheduler
from .session import AnswerResult, LearningSession, SessionEngine, SessionStatus, SessionSummary
from .stats import ReviewSummary, stage_distribution, summarize_history
from .store import InMemoryStateStore, SqlStateStore, StateStore

__version__ = "1.0.0"

__all__ = [
    # Models
    "LearnerItemState",
    "Outcome",
    "ReviewEvent",
    "VocabularyItem",
    # Policy
    "DEFAULT_POLICY",
    "Stage",
    "StagePolicy",
    "Transition",
    # Persistence
    "StateStore",
    "InMemoryStateStore",
    "SqlStateStore",
    # History
    "HistoryRecorder",
    "HistorySink",
    "InMemoryHistorySink",
    "SqlHistorySink",
    # Scheduling
    "Scheduler",
    "SessionEngine",
    "LearningSession",
    "SessionStatus",
    "SessionSummary",
    "AnswerResult",
    # Statistics
    "ReviewSummary",
    "stage_distribution",
    "summarize_history",
    # Errors
    "StomachsError",
    "ValidationError",
    "NotFoundError",
    "UnknownItemError",
    "ConcurrentUpdateError",
    "StoreUnavailableError",
    "HistoryAppendError",
    "SessionError",
    "SessionNotFoundError",
    "SessionStateError",
    "SessionExpiredError",
]
