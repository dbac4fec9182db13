"""Unit tests for the in-memory StateStore contract."""

from datetime import datetime, timedelta, timezone

import pytest

from stomachs.errors import UnknownItemError
from stomachs.models import LearnerItemState
from stomachs.store.memory import InMemoryStateStore

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _state(item_id="i1", user_id="alice", **kwargs):
    kwargs.setdefault("due_at", T0)
    return LearnerItemState(user_id=user_id, item_id=item_id, **kwargs)


@pytest.fixture
def store():
    return InMemoryStateStore()


class TestInsertAndRead:
    def test_read_missing_returns_none(self, store):
        assert store.read("alice", "nope") is None

    def test_insert_if_absent_creates_once(self, store):
        first, created = store.insert_if_absent(_state())
        again, created_again = store.insert_if_absent(_state(stage=3))

        assert created is True
        assert created_again is False
        assert again == first
        assert store.read("alice", "i1").stage == 0


class TestCompareAndSwap:
    def test_matching_version_swaps(self, store):
        store.insert_if_absent(_state())
        assert store.compare_and_swap("alice", "i1", 0, _state(stage=1, version=1)) is True
        assert store.read("alice", "i1").version == 1

    def test_stale_version_is_rejected(self, store):
        store.insert_if_absent(_state())
        store.compare_and_swap("alice", "i1", 0, _state(stage=1, version=1))

        assert store.compare_and_swap("alice", "i1", 0, _state(stage=2, version=1)) is False
        assert store.read("alice", "i1").stage == 1

    def test_version_must_advance_by_one(self, store):
        store.insert_if_absent(_state())
        with pytest.raises(ValueError):
            store.compare_and_swap("alice", "i1", 0, _state(stage=1, version=2))

    def test_missing_record_raises(self, store):
        with pytest.raises(UnknownItemError):
            store.compare_and_swap("alice", "i1", 0, _state(version=1))


class TestQueries:
    def test_query_due_orders_by_due_then_item(self, store):
        store.insert_if_absent(_state("b", due_at=T0))
        store.insert_if_absent(_state("a", due_at=T0))
        store.insert_if_absent(_state("c", due_at=T0 - timedelta(hours=1)))
        store.insert_if_absent(_state("future", due_at=T0 + timedelta(days=1)))
        store.insert_if_absent(_state("x", user_id="bob"))

        due = store.query_due("alice", T0, limit=10)
        assert [s.item_id for s in due] == ["c", "a", "b"]

    def test_query_due_respects_limit(self, store):
        for name in "abcd":
            store.insert_if_absent(_state(name))
        assert len(store.query_due("alice", T0, limit=2)) == 2

    def test_counts_and_lists_per_user(self, store):
        store.insert_if_absent(_state("b"))
        store.insert_if_absent(_state("a"))
        store.insert_if_absent(_state("z", user_id="bob"))

        assert store.count_for_user("alice") == 2
        assert store.count_for_user("carol") == 0
        assert [s.item_id for s in store.list_for_user("alice")] == ["a", "b"]
        assert store.count_for_user("bob") == 1
