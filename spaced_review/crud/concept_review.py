import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from spaced_review.config import settings
from spaced_review.errors import NotFoundError
from spaced_review.mastery import calculate_mastery, mastery_band
from spaced_review.models import ConceptReview, ReviewSession
from spaced_review.crud.student import require_student
from spaced_review.schemas import (
    DueConcept,
    MasteryBreakdown,
    NextSessionInfo,
    ReviewRecordResponse,
    ReviewResult,
    ReviewScheduleView,
    ReviewStatistics,
    UpcomingDay,
)
from spaced_review.sm2 import SM2Algorithm, SchedulerParams, round_half_up

logger = logging.getLogger(__name__)

UPCOMING_WINDOW_DAYS = 7

# A mastered concept is archived after this many repetitions and days untouched
ARCHIVE_MIN_REPETITIONS = 8
ARCHIVE_AFTER_DAYS = 180


def utcnow() -> datetime:
    """Current time as naive UTC, the form stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _params(params: Optional[SchedulerParams]) -> SchedulerParams:
    return params if params is not None else settings.scheduler_params()


def review_mastery(review: ConceptReview, params: Optional[SchedulerParams] = None) -> int:
    """Mastery estimate of a stored review record"""
    return calculate_mastery(
        review.average_quality,
        review.repetitions,
        review.ease_factor,
        _params(params)
    )


def get_review(db: Session, student_id: int, concept_id: str) -> Optional[ConceptReview]:
    """Get the review record of one concept for a student"""
    return db.query(ConceptReview).filter(
        ConceptReview.student_id == student_id,
        ConceptReview.concept_id == concept_id
    ).first()


def record_review(
    db: Session,
    student_id: int,
    concept_id: str,
    quality: int,
    subject_id: Optional[str] = None,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> ReviewResult:
    """
    Apply a review to a concept and persist the new SM-2 state.

    Creates the record on first review. Concurrent submissions for the same
    (student, concept) are last-writer-wins.

    Raises:
        ValidationError: quality outside 0-5, nothing is written
        NotFoundError: unknown student
    """
    params = _params(params)
    now = now or utcnow()
    require_student(db, student_id)

    review = get_review(db, student_id, concept_id)
    prior_state = review.to_state() if review else SM2Algorithm.initial_state(params)

    # Validate and compute before touching the session
    scheduled = SM2Algorithm.schedule_review(prior_state, quality, reference_time=now, params=params)

    if review is None:
        review = ConceptReview(
            student_id=student_id,
            concept_id=concept_id,
            subject_id=subject_id,
            total_reviews=0,
            average_quality=0.0
        )
        db.add(review)
    elif subject_id and not review.subject_id:
        review.subject_id = subject_id

    total = review.total_reviews or 0
    review.average_quality = ((review.average_quality or 0.0) * total + quality) / (total + 1)
    review.total_reviews = total + 1

    review.ease_factor = scheduled.ease_factor
    review.interval_days = scheduled.interval_days
    review.repetitions = scheduled.repetitions
    review.last_reviewed_at = now
    review.archived = False
    review.next_review_at = scheduled.next_review_at

    db.flush()
    db.add(ReviewSession(
        review_id=review.id,
        session_id=session_id,
        quality=quality,
        reviewed_at=now
    ))
    db.commit()
    db.refresh(review)

    logger.info(
        "Recorded review student=%s concept=%s quality=%s next=%s (in %s days)",
        student_id, concept_id, quality, review.next_review_at.date(), review.interval_days
    )

    return ReviewResult(
        review=ReviewRecordResponse.model_validate(review),
        mastery=review_mastery(review, params)
    )


def schedule_initial_review(
    db: Session,
    student_id: int,
    concept_id: str,
    subject_id: Optional[str] = None,
    initial_quality: int = 3,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> ReviewRecordResponse:
    """Start tracking a newly learned concept; returns the existing record if any"""
    params = _params(params)
    now = now or utcnow()
    require_student(db, student_id)

    existing = get_review(db, student_id, concept_id)
    if existing:
        return ReviewRecordResponse.model_validate(existing)

    scheduled = SM2Algorithm.schedule_review(
        SM2Algorithm.initial_state(params), initial_quality, reference_time=now, params=params
    )
    review = ConceptReview(
        student_id=student_id,
        concept_id=concept_id,
        subject_id=subject_id,
        ease_factor=scheduled.ease_factor,
        interval_days=scheduled.interval_days,
        repetitions=scheduled.repetitions,
        last_reviewed_at=now,
        next_review_at=scheduled.next_review_at,
        total_reviews=1,
        average_quality=float(initial_quality)
    )
    db.add(review)
    db.commit()
    db.refresh(review)

    logger.info("Scheduled first review student=%s concept=%s for %s", student_id, concept_id, review.next_review_at.date())
    return ReviewRecordResponse.model_validate(review)


def get_concepts_due_for_review(
    db: Session,
    student_id: int,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None
) -> List[DueConcept]:
    """Get concepts whose next review has passed, most overdue first"""
    now = now or utcnow()
    query = db.query(ConceptReview).filter(
        ConceptReview.student_id == student_id,
        ConceptReview.next_review_at <= now,
        ConceptReview.archived.is_(False)
    )
    if subject_id:
        query = query.filter(ConceptReview.subject_id == subject_id)
    query = query.order_by(ConceptReview.next_review_at.asc())
    if limit:
        query = query.limit(limit)

    return [
        DueConcept(
            id=review.id,
            concept_id=review.concept_id,
            subject_id=review.subject_id,
            last_reviewed_at=review.last_reviewed_at,
            next_review_at=review.next_review_at,
            ease_factor=review.ease_factor,
            interval_days=review.interval_days,
            repetitions=review.repetitions,
            days_overdue=SM2Algorithm.get_days_overdue(review.next_review_at, now)
        )
        for review in query.all()
    ]


def get_review_schedule(
    db: Session,
    student_id: int,
    concept_id: str,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> ReviewScheduleView:
    """Where a concept stands in its review cycle; unseen concepts are due now"""
    now = now or utcnow()
    review = get_review(db, student_id, concept_id)

    if review is None:
        return ReviewScheduleView(
            is_new=True,
            next_review_at=now,
            interval_days=0,
            repetitions=0,
            mastery=0
        )

    is_due = not review.archived and SM2Algorithm.is_due_for_review(review.next_review_at, now)
    return ReviewScheduleView(
        is_new=False,
        next_review_at=review.next_review_at,
        interval_days=review.interval_days,
        repetitions=review.repetitions,
        ease_factor=review.ease_factor,
        mastery=review_mastery(review, params),
        is_due=is_due,
        days_until_review=SM2Algorithm.get_days_until_review(review.next_review_at, now),
        total_reviews=review.total_reviews,
        average_quality=review.average_quality,
        archived=review.archived
    )


def get_review_statistics(
    db: Session,
    student_id: int,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> ReviewStatistics:
    """Aggregate due counts, mastery and review totals for a student"""
    now = now or utcnow()
    reviews = db.query(ConceptReview).filter(ConceptReview.student_id == student_id).all()

    due = 0
    upcoming = 0
    bands = {"mastered": 0, "learning": 0, "new": 0}
    mastery_total = 0

    for review in reviews:
        # Archived concepts still count toward mastery, never toward due work
        if not review.archived:
            if SM2Algorithm.is_due_for_review(review.next_review_at, now):
                due += 1
            elif SM2Algorithm.get_days_until_review(review.next_review_at, now) <= UPCOMING_WINDOW_DAYS:
                upcoming += 1

        score = review_mastery(review, params)
        mastery_total += score
        bands[mastery_band(score)] += 1

    average_mastery = round_half_up(mastery_total / len(reviews)) if reviews else 0

    return ReviewStatistics(
        total_concepts=len(reviews),
        due_for_review=due,
        upcoming_reviews=upcoming,
        average_mastery=average_mastery,
        total_reviews=sum(r.total_reviews for r in reviews),
        concepts_by_mastery=MasteryBreakdown(**bands)
    )


def get_upcoming_reviews(
    db: Session,
    student_id: int,
    days: int = 30,
    now: Optional[datetime] = None
) -> List[UpcomingDay]:
    """Bucket review dates into one entry per day, starting today"""
    now = now or utcnow()
    start = now.date()
    buckets = OrderedDict((start + timedelta(days=i), []) for i in range(days))

    reviews = db.query(ConceptReview).filter(
        ConceptReview.student_id == student_id,
        ConceptReview.archived.is_(False)
    ).order_by(ConceptReview.next_review_at.asc()).all()

    for review in reviews:
        review_day = review.next_review_at.date()
        if review_day in buckets:
            buckets[review_day].append(review.concept_id)

    return [
        UpcomingDay(day=day, count=len(concept_ids), concept_ids=concept_ids)
        for day, concept_ids in buckets.items()
    ]


def reset_review(
    db: Session,
    student_id: int,
    concept_id: str,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> ReviewRecordResponse:
    """Put a concept back to its never-reviewed state, due immediately"""
    params = _params(params)
    review = get_review(db, student_id, concept_id)
    if review is None:
        raise NotFoundError(f"No review record for concept {concept_id!r} of student {student_id}")

    initial = SM2Algorithm.initial_state(params)
    review.ease_factor = initial.ease_factor
    review.interval_days = initial.interval_days
    review.repetitions = initial.repetitions
    review.last_reviewed_at = None
    review.archived = False
    review.next_review_at = now or utcnow()
    db.commit()
    db.refresh(review)

    logger.info("Reset review student=%s concept=%s", student_id, concept_id)
    return ReviewRecordResponse.model_validate(review)


def archive_mastered_reviews(
    db: Session,
    student_id: int,
    days_old: int = ARCHIVE_AFTER_DAYS,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> int:
    """
    Retire long-mastered concepts from the review queue.

    A concept is archived when it scores as mastered, has at least
    ARCHIVE_MIN_REPETITIONS successful repetitions and was last reviewed more
    than ``days_old`` days ago. Reviewing or resetting it brings it back.

    Returns:
        Number of concepts archived by this call
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=days_old)
    candidates = db.query(ConceptReview).filter(
        ConceptReview.student_id == student_id,
        ConceptReview.archived.is_(False),
        ConceptReview.repetitions >= ARCHIVE_MIN_REPETITIONS,
        ConceptReview.last_reviewed_at < cutoff
    ).all()

    archived = 0
    for review in candidates:
        if mastery_band(review_mastery(review, params)) == "mastered":
            review.archived = True
            archived += 1
    db.commit()

    logger.info("Archived %d mastered concepts for student %s", archived, student_id)
    return archived


def get_next_session_info(
    db: Session,
    student_id: int,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> NextSessionInfo:
    """What is waiting for the next review session; next_review_at is the earliest one"""
    now = now or utcnow()
    query = db.query(ConceptReview).filter(
        ConceptReview.student_id == student_id,
        ConceptReview.archived.is_(False)
    )
    if subject_id:
        query = query.filter(ConceptReview.subject_id == subject_id)
    reviews = query.order_by(ConceptReview.next_review_at.asc()).all()

    due = [r for r in reviews if SM2Algorithm.is_due_for_review(r.next_review_at, now)]
    upcoming = [
        r for r in reviews
        if not SM2Algorithm.is_due_for_review(r.next_review_at, now)
        and SM2Algorithm.get_days_until_review(r.next_review_at, now) <= UPCOMING_WINDOW_DAYS
    ]

    return NextSessionInfo(
        has_due_concepts=bool(due),
        due_count=len(due),
        upcoming_week=len(upcoming),
        next_review_at=reviews[0].next_review_at if reviews else None
    )
