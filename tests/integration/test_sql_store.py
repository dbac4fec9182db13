"""
Integration tests for the SQLAlchemy StateStore and history sink.

Runs against a temporary SQLite file.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from stomachs.errors import StoreUnavailableError, UnknownItemError
from stomachs.history import HistoryRecorder, SqlHistorySink
from stomachs.models import LearnerItemState, Outcome, ReviewEvent
from stomachs.scheduler import Scheduler
from stomachs.session import SessionEngine, SessionStatus
from stomachs.store.sql import SqlStateStore

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def sql_store(session_factory):
    return SqlStateStore(session_factory)


@pytest.fixture
def sql_sink(session_factory):
    return SqlHistorySink(session_factory)


def _state(item_id="hund", **kwargs):
    kwargs.setdefault("due_at", T0)
    return LearnerItemState(user_id="alice", item_id=item_id, **kwargs)


class TestSqlStateStore:
    def test_round_trip_keeps_aware_timestamps(self, sql_store):
        state = _state(stage=2, last_reviewed_at=T0 - timedelta(days=2), consecutive_correct=1)
        sql_store.insert_if_absent(state)

        stored = sql_store.read("alice", "hund")
        assert stored == state
        assert stored.due_at.tzinfo is not None

    def test_non_utc_input_is_normalized(self, sql_store):
        cet = timezone(timedelta(hours=1))
        sql_store.insert_if_absent(_state(due_at=T0.astimezone(cet)))
        assert sql_store.read("alice", "hund").due_at == T0

    def test_insert_if_absent_is_idempotent(self, sql_store):
        sql_store.insert_if_absent(_state())
        stored, created = sql_store.insert_if_absent(_state(stage=4))
        assert created is False
        assert stored.stage == 0

    def test_cas_conditioned_on_version(self, sql_store):
        sql_store.insert_if_absent(_state())

        assert sql_store.compare_and_swap("alice", "hund", 0, _state(stage=1, version=1))
        assert not sql_store.compare_and_swap("alice", "hund", 0, _state(stage=3, version=1))

        stored = sql_store.read("alice", "hund")
        assert stored.stage == 1
        assert stored.version == 1

    def test_cas_on_missing_row(self, sql_store):
        with pytest.raises(UnknownItemError):
            sql_store.compare_and_swap("alice", "ghost", 0, _state("ghost", version=1))

    def test_query_due_order_and_limit(self, sql_store):
        sql_store.insert_if_absent(_state("b"))
        sql_store.insert_if_absent(_state("a"))
        sql_store.insert_if_absent(_state("c", due_at=T0 - timedelta(days=1)))
        sql_store.insert_if_absent(_state("d", due_at=T0 + timedelta(seconds=1)))

        assert [s.item_id for s in sql_store.query_due("alice", T0, 10)] == ["c", "a", "b"]
        assert [s.item_id for s in sql_store.query_due("alice", T0, 2)] == ["c", "a"]

    def test_count_and_list(self, sql_store):
        sql_store.insert_if_absent(_state("b"))
        sql_store.insert_if_absent(_state("a"))
        assert sql_store.count_for_user("alice") == 2
        assert sql_store.count_for_user("bob") == 0
        assert [s.item_id for s in sql_store.list_for_user("alice")] == ["a", "b"]

    def test_database_errors_become_store_unavailable(self, session_factory, monkeypatch):
        store = SqlStateStore(session_factory)

        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr("sqlalchemy.orm.Session.get", boom)
        with pytest.raises(StoreUnavailableError):
            store.read("alice", "hund")


class TestSqlHistorySink:
    def test_append_and_read_back(self, sql_sink):
        event = ReviewEvent(
            user_id="alice",
            item_id="hund",
            reviewed_at=T0,
            outcome=Outcome.INCORRECT,
            stage_before=3,
            stage_after=2,
            state_version=7,
        )
        sql_sink.append(event)
        sql_sink.append(event)  # redelivery is a no-op

        assert sql_sink.events_for("alice") == [event]
        assert sql_sink.events_for("bob") == []

    def test_read_errors_become_store_unavailable(self, sql_sink, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr("sqlalchemy.orm.Session.scalars", boom)
        with pytest.raises(StoreUnavailableError):
            sql_sink.events_for("alice")


class TestSqlBackedEngine:
    def test_review_flow_end_to_end(self, session_factory):
        clock_now = [T0]
        scheduler = Scheduler(
            SqlStateStore(session_factory),
            recorder=HistoryRecorder(SqlHistorySink(session_factory)),
            clock=lambda: clock_now[0],
        )
        engine = SessionEngine(scheduler)
        scheduler.attach_items("alice", ["a", "b", "c"])

        session = engine.start_session("alice", batch_size=10)
        outcomes = [Outcome.CORRECT, Outcome.INCORRECT, Outcome.CORRECT, Outcome.CORRECT]
        for outcome in outcomes:
            clock_now[0] += timedelta(seconds=30)
            result = engine.submit_answer(session.session_id, outcome)

        assert result.status is SessionStatus.COMPLETED
        assert result.summary.answered == 4

        assert scheduler.get_state("alice", "a").stage == 1
        assert scheduler.get_state("alice", "b").stage == 2
        assert scheduler.get_state("alice", "b").version == 2
        assert scheduler.review_summary("alice").total == 4
        assert scheduler.get_due_items("alice", as_of=clock_now[0]) == []
