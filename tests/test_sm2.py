"""Tests for sm2.py -- the pure review scheduler."""

import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from spaced_review.errors import ValidationError
from spaced_review.sm2 import (
    DEFAULT_PARAMS,
    ReviewState,
    SchedulerParams,
    SM2Algorithm,
    round_half_up,
    schedule_review,
)

REF = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

PRIOR_STATES = [
    ReviewState(0, 2.5, 0),
    ReviewState(1, 2.6, 1),
    ReviewState(2, 2.7, 6),
    ReviewState(7, 1.3, 120),
    ReviewState(3, 3.4, 40),
]


def test_first_perfect_review():
    result = schedule_review(ReviewState(repetitions=0, ease_factor=2.5, interval_days=0), 5, reference_time=REF)
    assert result.repetitions == 1
    assert result.interval_days == 1
    assert result.ease_factor == pytest.approx(2.6)
    assert result.next_review_at == REF + timedelta(days=1)


def test_second_perfect_review():
    result = schedule_review(ReviewState(repetitions=1, ease_factor=2.6, interval_days=1), 5, reference_time=REF)
    assert result.repetitions == 2
    assert result.interval_days == 6
    assert result.ease_factor == pytest.approx(2.7)
    assert result.next_review_at == REF + timedelta(days=6)


def test_failed_review_after_two_successes():
    result = schedule_review(ReviewState(repetitions=2, ease_factor=2.7, interval_days=6), 2, reference_time=REF)
    assert result.repetitions == 0
    assert result.interval_days == 1
    assert result.next_review_at == REF + timedelta(days=1)


def test_third_review_grows_by_updated_ease():
    result = schedule_review(ReviewState(repetitions=2, ease_factor=2.7, interval_days=6), 5, reference_time=REF)
    assert result.repetitions == 3
    assert result.ease_factor == pytest.approx(2.8)
    # 6 * 2.8 = 16.8
    assert result.interval_days == 17


@pytest.mark.parametrize("quality,expected", [
    (5, 2.6),
    (4, 2.5),
    (3, 2.36),
    (2, 2.18),
    (1, 1.96),
    (0, 1.7),
])
def test_ease_adjustment_per_quality(quality, expected):
    assert SM2Algorithm.update_ease_factor(2.5, quality) == pytest.approx(expected)


@pytest.mark.parametrize("state", PRIOR_STATES)
@pytest.mark.parametrize("quality", range(6))
def test_ease_never_below_floor(state, quality):
    result = schedule_review(state, quality, reference_time=REF)
    assert result.ease_factor >= 1.3


@pytest.mark.parametrize("state", PRIOR_STATES)
@pytest.mark.parametrize("quality", [0, 1, 2])
def test_failed_recall_always_resets(state, quality):
    result = schedule_review(state, quality, reference_time=REF)
    assert result.repetitions == 0
    assert result.interval_days == 1


@pytest.mark.parametrize("state", PRIOR_STATES)
@pytest.mark.parametrize("quality", [3, 4, 5])
def test_passed_recall_increments_repetitions(state, quality):
    result = schedule_review(state, quality, reference_time=REF)
    assert result.repetitions == state.repetitions + 1


@pytest.mark.parametrize("state", PRIOR_STATES)
@pytest.mark.parametrize("quality", range(6))
def test_next_review_strictly_after_reference(state, quality):
    result = schedule_review(state, quality, reference_time=REF)
    assert result.next_review_at > REF
    assert result.interval_days >= 1


def test_repeated_perfect_reviews_never_shrink_interval():
    state = SM2Algorithm.initial_state()
    intervals = []
    for _ in range(10):
        result = schedule_review(state, 5, reference_time=REF)
        intervals.append(result.interval_days)
        state = result.state

    assert intervals[:2] == [1, 6]
    assert intervals == sorted(intervals)


def test_floor_ease_with_zero_interval_still_schedules_a_day():
    result = schedule_review(ReviewState(repetitions=2, ease_factor=1.3, interval_days=0), 3, reference_time=REF)
    assert result.ease_factor == pytest.approx(1.3)
    assert result.interval_days == 1


def test_half_days_round_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(12.49) == 12
    assert round_half_up(0.4) == 0


def test_default_reference_time_is_utc_now():
    before = datetime.now(timezone.utc)
    result = schedule_review(ReviewState(), 4)
    assert result.next_review_at.tzinfo is not None
    assert result.next_review_at >= before + timedelta(days=1)


def test_custom_params_are_used():
    params = SchedulerParams(initial_ease_factor=2.0, min_ease_factor=1.5, first_interval_days=2, second_interval_days=4)
    first = schedule_review(SM2Algorithm.initial_state(params), 5, reference_time=REF, params=params)
    assert first.interval_days == 2
    assert first.ease_factor == pytest.approx(2.1)

    second = schedule_review(first.state, 5, reference_time=REF, params=params)
    assert second.interval_days == 4

    failed = schedule_review(second.state, 0, reference_time=REF, params=params)
    assert failed.ease_factor == pytest.approx(1.5)


@pytest.mark.parametrize("quality", [-1, 6, 3.0, True, "3", None])
def test_invalid_quality_rejected(quality):
    with pytest.raises(ValidationError) as excinfo:
        schedule_review(ReviewState(), quality, reference_time=REF)
    assert any("quality" in err for err in excinfo.value.errors)


@pytest.mark.parametrize("state,field", [
    (ReviewState(repetitions=-1), "repetitions"),
    (ReviewState(interval_days=-3), "interval_days"),
    (ReviewState(ease_factor=1.2), "ease_factor"),
    (ReviewState(ease_factor=math.nan), "ease_factor"),
    (ReviewState(ease_factor=math.inf), "ease_factor"),
    (ReviewState(repetitions=1.5), "repetitions"),
    (ReviewState(repetitions=5, ease_factor=2.5, interval_days=10**9), "interval_days"),
    (ReviewState(repetitions=5, ease_factor=1e308, interval_days=10), "interval_days"),
    (ReviewState(repetitions=5, ease_factor=2.5, interval_days=10**8), "interval_days"),
])
def test_invalid_state_rejected(state, field):
    with pytest.raises(ValidationError) as excinfo:
        schedule_review(state, 4, reference_time=REF)
    assert any(err.startswith(field) for err in excinfo.value.errors)


def test_huge_ease_still_schedules_when_interval_is_fixed():
    state = ReviewState(repetitions=5, ease_factor=1e308, interval_days=10)
    failed = schedule_review(state, 1, reference_time=REF)
    assert failed.interval_days == 1

    restarted = schedule_review(ReviewState(repetitions=0, ease_factor=1e308, interval_days=0), 5, reference_time=REF)
    assert restarted.interval_days == 1
    assert math.isfinite(restarted.ease_factor)


def test_all_state_problems_reported_together():
    with pytest.raises(ValidationError) as excinfo:
        schedule_review(ReviewState(repetitions=-1, ease_factor=0.5, interval_days=-1), 4, reference_time=REF)
    assert len(excinfo.value.errors) == 3


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        schedule_review(ReviewState(), 9, reference_time=REF)


def test_initial_state_uses_params():
    assert SM2Algorithm.initial_state() == ReviewState(0, DEFAULT_PARAMS.initial_ease_factor, 0)


def test_due_and_overdue_helpers():
    due_at = datetime(2026, 1, 10, 12, 0)
    assert SM2Algorithm.is_due_for_review(due_at, datetime(2026, 1, 10, 12, 0))
    assert not SM2Algorithm.is_due_for_review(due_at, datetime(2026, 1, 10, 11, 59))

    assert SM2Algorithm.get_days_overdue(due_at, datetime(2026, 1, 9)) == 0
    assert SM2Algorithm.get_days_overdue(due_at, datetime(2026, 1, 13, 13, 0)) == 3

    assert SM2Algorithm.get_days_until_review(due_at, datetime(2026, 1, 9, 12, 0)) == 1
    assert SM2Algorithm.get_days_until_review(due_at, datetime(2026, 1, 9, 13, 0)) == 1
    assert SM2Algorithm.get_days_until_review(due_at, datetime(2026, 1, 8, 11, 0)) == 3
    assert SM2Algorithm.get_days_until_review(due_at, datetime(2026, 1, 11)) == 0
