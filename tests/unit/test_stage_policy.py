"""
Unit tests for the Stage Policy.

Tests:
- (stage_before, outcome) -> (stage_after, interval) table
- Floor at stage 1 once reviewed, cap at graduation
- consecutive_correct bookkeeping
- Interval table validation
"""

from datetime import datetime, timedelta, timezone

import pytest

from stomachs.errors import ValidationError
from stomachs.models import Outcome
from stomachs.policy import DEFAULT_POLICY, Stage, StagePolicy

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)

C = Outcome.CORRECT
I = Outcome.INCORRECT  # noqa: E741


TRANSITION_TABLE = [
    # stage_before, outcome, stage_after, interval
    (0, C, 1, 1 * DAY),
    (0, I, 1, 1 * DAY),
    (1, C, 2, 2 * DAY),
    (1, I, 1, 1 * DAY),
    (2, C, 3, 4 * DAY),
    (2, I, 1, 1 * DAY),
    (3, C, 4, 7 * DAY),
    (3, I, 2, 2 * DAY),
    (4, C, 5, 21 * DAY),
    (4, I, 3, 4 * DAY),
    (5, C, 5, 21 * DAY),
    (5, I, 4, 7 * DAY),
]


class TestTransitionTable:
    """Every (stage, outcome) pair of the default policy."""

    @pytest.mark.parametrize("before,outcome,after,interval", TRANSITION_TABLE)
    def test_transition(self, before, outcome, after, interval):
        result = DEFAULT_POLICY.apply(before, 0, outcome, T0)

        assert result.stage_before == before
        assert result.stage_after == after
        assert result.interval == interval
        assert result.due_at == T0 + interval

    @pytest.mark.parametrize(
        "before,outcome,after,streak",
        [
            (3, "correct", 4, 2),
            (3, "INCORRECT", 2, 0),
            (5, "correct", 5, 2),
            (2, True, 3, 2),
            (2, False, 1, 0),
        ],
    )
    def test_raw_outcomes_are_coerced(self, before, outcome, after, streak):
        assert StagePolicy.next_stage(before, outcome) == after
        result = DEFAULT_POLICY.apply(before, 1, outcome, T0)
        assert result.stage_after == after
        assert result.consecutive_correct == streak

    def test_unknown_outcome_rejected(self):
        with pytest.raises(ValidationError):
            DEFAULT_POLICY.apply(3, 0, "maybe", T0)

    @pytest.mark.parametrize("stage", [1, 2, 3, 4])
    def test_correct_promotes_one_stage(self, stage):
        result = DEFAULT_POLICY.apply(stage, 2, C, T0)
        assert result.stage_after == stage + 1
        assert result.due_at == T0 + DEFAULT_POLICY.interval(stage + 1)
        assert result.promoted

    @pytest.mark.parametrize("stage", [2, 3, 4, 5])
    def test_incorrect_demotes_one_stage(self, stage):
        result = DEFAULT_POLICY.apply(stage, 4, I, T0)
        assert result.stage_after == stage - 1
        assert result.consecutive_correct == 0
        assert result.demoted


class TestFloorsAndCaps:
    def test_reviewed_item_never_returns_to_new(self):
        """Repeated misses bottom out at stage 1."""
        stage = Stage.NEW
        for _ in range(6):
            stage = StagePolicy.next_stage(stage, I)
            assert stage >= Stage.STOMACH_1
        assert stage is Stage.STOMACH_1

    def test_graduated_item_drops_only_to_stage_four(self):
        assert StagePolicy.next_stage(Stage.GRADUATED, I) is Stage.STOMACH_4

    def test_graduated_item_stays_graduated_and_is_refreshed(self):
        result = DEFAULT_POLICY.apply(Stage.GRADUATED, 7, C, T0)
        assert result.stage_after is Stage.GRADUATED
        assert result.due_at == T0 + timedelta(days=21)
        assert not result.promoted

    def test_first_review_leaves_new_either_way(self):
        assert StagePolicy.next_stage(Stage.NEW, C) is Stage.STOMACH_1
        assert StagePolicy.next_stage(Stage.NEW, I) is Stage.STOMACH_1


class TestConsecutiveCorrect:
    def test_correct_increments(self):
        assert DEFAULT_POLICY.apply(2, 3, C, T0).consecutive_correct == 4

    def test_incorrect_resets(self):
        assert DEFAULT_POLICY.apply(2, 3, I, T0).consecutive_correct == 0

    def test_first_review_incorrect_starts_at_zero(self):
        assert DEFAULT_POLICY.apply(0, 0, I, T0).consecutive_correct == 0

    def test_first_review_correct_starts_at_one(self):
        assert DEFAULT_POLICY.apply(0, 0, C, T0).consecutive_correct == 1


class TestIntervalTable:
    def test_new_stage_has_no_interval(self):
        with pytest.raises(ValueError):
            DEFAULT_POLICY.interval(Stage.NEW)

    def test_from_days_builds_custom_table(self):
        policy = StagePolicy.from_days([0.5, 1, 3, 10, 30])
        assert policy.interval(1) == timedelta(hours=12)
        assert policy.interval(5) == timedelta(days=30)
        assert policy.apply(4, 0, C, T0).due_at == T0 + timedelta(days=30)

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            StagePolicy.from_days([1, 2, 4])

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            StagePolicy.from_days([0, 2, 4, 7, 21])

    def test_rejects_decreasing_intervals(self):
        with pytest.raises(ValueError):
            StagePolicy.from_days([1, 4, 2, 7, 21])

    def test_rejects_missing_stage(self):
        with pytest.raises(ValueError):
            StagePolicy({Stage.STOMACH_1: DAY})

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_POLICY.intervals[Stage.STOMACH_1] = DAY * 3

    def test_policy_is_pure(self):
        """Same inputs, same transition; nothing carried between calls."""
        first = DEFAULT_POLICY.apply(3, 1, C, T0)
        DEFAULT_POLICY.apply(1, 0, I, T0)
        assert DEFAULT_POLICY.apply(3, 1, C, T0) == first
