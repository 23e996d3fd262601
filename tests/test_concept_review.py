"""Tests for crud/concept_review.py -- persisted review records."""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from spaced_review.crud import (
    archive_mastered_reviews,
    get_concepts_due_for_review,
    get_next_session_info,
    get_review,
    get_review_schedule,
    get_review_statistics,
    get_upcoming_reviews,
    record_review,
    reset_review,
    schedule_initial_review,
)
from spaced_review.errors import NotFoundError, ValidationError
from spaced_review.crud.concept_review import review_mastery
from spaced_review.models import ConceptReview, ReviewSession


def test_first_review_creates_record(db, student, now):
    result = record_review(db, student.id, "math:fractions", 5, subject_id="math", now=now)

    assert result.review.repetitions == 1
    assert result.review.interval_days == 1
    assert result.review.ease_factor == pytest.approx(2.6)
    assert result.review.last_reviewed_at == now
    assert result.review.next_review_at == now + timedelta(days=1)
    assert result.review.total_reviews == 1
    assert result.review.average_quality == pytest.approx(5.0)


def test_reviews_accumulate(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    record_review(db, student.id, "math:fractions", 5, now=now + timedelta(days=1))
    result = record_review(db, student.id, "math:fractions", 3, now=now + timedelta(days=7))

    assert result.review.repetitions == 3
    assert result.review.total_reviews == 3
    assert result.review.average_quality == pytest.approx(13 / 3)
    # ease 2.7 -> 2.56 after a quality 3, 6 * 2.56 = 15.36
    assert result.review.interval_days == 15
    assert db.query(ReviewSession).count() == 3
    assert db.query(ConceptReview).count() == 1


def test_failed_review_resets_progress(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    record_review(db, student.id, "math:fractions", 5, now=now + timedelta(days=1))
    result = record_review(db, student.id, "math:fractions", 1, now=now + timedelta(days=7))

    assert result.review.repetitions == 0
    assert result.review.interval_days == 1
    assert result.review.next_review_at == now + timedelta(days=8)


def test_subject_is_filled_in_later(db, student, now):
    record_review(db, student.id, "math:fractions", 4, now=now)
    result = record_review(db, student.id, "math:fractions", 4, subject_id="math", now=now)
    assert result.review.subject_id == "math"


def test_session_log_keeps_each_review(db, student, now):
    record_review(db, student.id, "math:fractions", 4, session_id="a", now=now)
    record_review(db, student.id, "math:fractions", 2, session_id="b", now=now + timedelta(hours=1))

    review = get_review(db, student.id, "math:fractions")
    assert [(s.session_id, s.quality) for s in review.sessions] == [("a", 4), ("b", 2)]


def test_invalid_quality_writes_nothing(db, student, now):
    with pytest.raises(ValidationError):
        record_review(db, student.id, "math:fractions", 6, now=now)
    assert db.query(ConceptReview).count() == 0
    assert db.query(ReviewSession).count() == 0


def test_invalid_quality_leaves_existing_record_untouched(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    with pytest.raises(ValidationError):
        record_review(db, student.id, "math:fractions", -1, now=now + timedelta(days=1))

    review = get_review(db, student.id, "math:fractions")
    assert review.total_reviews == 1
    assert review.repetitions == 1


def test_unknown_student(db, now):
    with pytest.raises(NotFoundError):
        record_review(db, 999, "math:fractions", 4, now=now)


def test_schedule_initial_review_is_idempotent(db, student, now):
    first = schedule_initial_review(db, student.id, "science:plants", subject_id="science", now=now)
    second = schedule_initial_review(db, student.id, "science:plants", initial_quality=5, now=now + timedelta(days=3))

    assert first.id == second.id
    assert second.next_review_at == now + timedelta(days=1)
    assert first.repetitions == 1
    assert first.ease_factor == pytest.approx(2.36)
    assert first.average_quality == pytest.approx(3.0)


def test_schedule_initial_review_with_failed_attempt(db, student, now):
    record = schedule_initial_review(db, student.id, "science:plants", initial_quality=1, now=now)
    assert record.repetitions == 0
    assert record.interval_days == 1


def test_due_concepts_ordered_by_due_date(db, student, now):
    record_review(db, student.id, "math:fractions", 5, subject_id="math", now=now - timedelta(days=5))
    record_review(db, student.id, "english:nouns", 5, subject_id="english", now=now - timedelta(days=2))
    record_review(db, student.id, "math:decimals", 5, subject_id="math", now=now)

    due = get_concepts_due_for_review(db, student.id, now=now)
    assert [d.concept_id for d in due] == ["math:fractions", "english:nouns"]
    assert [d.days_overdue for d in due] == [4, 1]

    math_only = get_concepts_due_for_review(db, student.id, subject_id="math", now=now)
    assert [d.concept_id for d in math_only] == ["math:fractions"]


def test_due_concepts_other_student_hidden(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now - timedelta(days=5))
    assert get_concepts_due_for_review(db, student.id + 1, now=now) == []


def test_review_schedule_for_unseen_concept(db, student, now):
    view = get_review_schedule(db, student.id, "math:geometry", now=now)
    assert view.is_new is True
    assert view.is_due is True
    assert view.next_review_at == now
    assert view.mastery == 0


def test_review_schedule_for_tracked_concept(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    record_review(db, student.id, "math:fractions", 5, now=now)

    view = get_review_schedule(db, student.id, "math:fractions", now=now + timedelta(days=2))
    assert view.is_new is False
    assert view.is_due is False
    assert view.days_until_review == 4
    assert view.interval_days == 6
    assert view.total_reviews == 2
    assert view.mastery > 0


def test_review_statistics(db, student, now):
    for i in range(10):
        record_review(db, student.id, "math:fractions", 5, now=now - timedelta(days=400) + timedelta(days=i))
    record_review(db, student.id, "english:nouns", 4, now=now)
    record_review(db, student.id, "english:verbs", 0, now=now - timedelta(days=3))

    stats = get_review_statistics(db, student.id, now=now)
    assert stats.total_concepts == 3
    # fractions is pushed years out, verbs was due two days ago
    assert stats.due_for_review == 1
    assert stats.upcoming_reviews == 1
    assert stats.total_reviews == 12
    assert stats.concepts_by_mastery.mastered == 1
    assert stats.concepts_by_mastery.mastered + stats.concepts_by_mastery.learning + stats.concepts_by_mastery.new == 3


def test_review_statistics_empty(db, student, now):
    stats = get_review_statistics(db, student.id, now=now)
    assert stats.total_concepts == 0
    assert stats.average_mastery == 0


def test_upcoming_reviews_bucketed_by_day(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    record_review(db, student.id, "math:decimals", 4, now=now)
    schedule_initial_review(db, student.id, "english:nouns", now=now - timedelta(days=1))

    days = get_upcoming_reviews(db, student.id, days=7, now=now)
    assert len(days) == 7
    assert days[0].day == now.date()
    assert days[0].concept_ids == ["english:nouns"]
    assert days[1].count == 2
    assert sorted(days[1].concept_ids) == ["math:decimals", "math:fractions"]
    assert sum(d.count for d in days[2:]) == 0


def test_reset_review(db, student, now):
    record_review(db, student.id, "math:fractions", 5, now=now)
    record_review(db, student.id, "math:fractions", 5, now=now)

    record = reset_review(db, student.id, "math:fractions", now=now + timedelta(days=1))
    assert record.repetitions == 0
    assert record.ease_factor == pytest.approx(2.5)
    assert record.next_review_at == now + timedelta(days=1)
    assert record.total_reviews == 2


def test_reset_unknown_review(db, student, now):
    with pytest.raises(NotFoundError):
        reset_review(db, student.id, "math:nothing", now=now)


def add_review(db, student, concept_id, now, **fields):
    values = dict(
        ease_factor=2.5,
        interval_days=1,
        repetitions=0,
        last_reviewed_at=now,
        next_review_at=now + timedelta(days=1),
        total_reviews=1,
        average_quality=3.0,
    )
    values.update(fields)
    record = ConceptReview(student_id=student.id, concept_id=concept_id, **values)
    db.add(record)
    db.commit()
    return record


def test_average_mastery_rounds_halves_up(db, student, now):
    # mastery 50 and 51, average 50.5
    add_review(db, student, "math:fractions", now, average_quality=5.0, ease_factor=1.3)
    add_review(db, student, "math:decimals", now, average_quality=5.0, ease_factor=1.36)

    assert [review_mastery(r) for r in db.query(ConceptReview).order_by(ConceptReview.id)] == [50, 51]
    assert get_review_statistics(db, student.id, now=now).average_mastery == 51


def test_archive_retires_long_mastered_concepts(db, student, now):
    old = now - timedelta(days=200)
    add_review(db, student, "math:fractions", now, repetitions=9, ease_factor=3.0, average_quality=5.0,
               last_reviewed_at=old, next_review_at=now - timedelta(days=1))
    add_review(db, student, "math:decimals", now, repetitions=9, ease_factor=3.0, average_quality=5.0,
               last_reviewed_at=now - timedelta(days=10), next_review_at=now - timedelta(days=1))
    add_review(db, student, "math:angles", now, repetitions=3, ease_factor=3.0, average_quality=5.0,
               last_reviewed_at=old, next_review_at=now - timedelta(days=2))

    assert archive_mastered_reviews(db, student.id, now=now) == 1
    assert get_review(db, student.id, "math:fractions").archived is True

    due = get_concepts_due_for_review(db, student.id, now=now)
    assert [d.concept_id for d in due] == ["math:angles", "math:decimals"]
    assert get_review_schedule(db, student.id, "math:fractions", now=now).is_due is False

    stats = get_review_statistics(db, student.id, now=now)
    assert stats.total_concepts == 3
    assert stats.due_for_review == 2

    assert archive_mastered_reviews(db, student.id, now=now) == 0


def test_reviewing_an_archived_concept_restores_it(db, student, now):
    add_review(db, student, "math:fractions", now, repetitions=9, ease_factor=3.0, average_quality=5.0,
               last_reviewed_at=now - timedelta(days=365), next_review_at=now - timedelta(days=1))
    archive_mastered_reviews(db, student.id, now=now)

    result = record_review(db, student.id, "math:fractions", 4, now=now)
    assert result.review.archived is False
    assert result.review.repetitions == 10


def test_next_session_info(db, student, now):
    record_review(db, student.id, "math:fractions", 5, subject_id="math", now=now - timedelta(days=3))
    record_review(db, student.id, "math:decimals", 5, subject_id="math", now=now)
    record_review(db, student.id, "english:nouns", 5, subject_id="english", now=now - timedelta(days=5))

    info = get_next_session_info(db, student.id, now=now)
    assert info.has_due_concepts
    assert info.due_count == 2
    assert info.upcoming_week == 1
    assert info.next_review_at == now - timedelta(days=4)

    math_info = get_next_session_info(db, student.id, subject_id="math", now=now)
    assert math_info.due_count == 1
    assert math_info.next_review_at == now - timedelta(days=2)


def test_next_session_info_without_reviews(db, student, now):
    info = get_next_session_info(db, student.id, now=now)
    assert not info.has_due_concepts
    assert info.next_review_at is None
