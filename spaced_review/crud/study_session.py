import logging
import uuid
from datetime import datetime
from typing import Optional, Set

from sqlalchemy.orm import Session

from spaced_review.config import settings
from spaced_review.crud.concept_review import (
    get_concepts_due_for_review,
    get_next_session_info,
    record_review,
    utcnow,
)
from spaced_review.crud.student import require_student
from spaced_review.errors import NotFoundError, ValidationError
from spaced_review.models import ConceptReview, ReviewSession, StudySession
from spaced_review.schemas import SessionReviewResult, SessionSummary, StudySessionResponse
from spaced_review.sm2 import PASSING_QUALITY, SchedulerParams

logger = logging.getLogger(__name__)


def get_study_session(db: Session, session_id: str) -> Optional[StudySession]:
    """Get a review session by its public id"""
    return db.query(StudySession).filter(StudySession.session_id == session_id).first()


def require_study_session(db: Session, session_id: str) -> StudySession:
    """Get a review session or raise NotFoundError"""
    session = get_study_session(db, session_id)
    if session is None:
        raise NotFoundError(f"Review session {session_id!r} not found")
    return session


def _session_reviews(db: Session, session: StudySession):
    return db.query(ConceptReview.concept_id, ReviewSession.quality).join(
        ReviewSession, ReviewSession.review_id == ConceptReview.id
    ).filter(
        ReviewSession.session_id == session.session_id,
        ConceptReview.student_id == session.student_id
    ).all()


def _completed_concepts(db: Session, session: StudySession) -> Set[str]:
    """Queued concepts reviewed at least once in this session"""
    reviewed = {row.concept_id for row in _session_reviews(db, session)}
    return reviewed & set(session.concept_ids)


def _to_response(db: Session, session: StudySession) -> StudySessionResponse:
    return StudySessionResponse(
        session_id=session.session_id,
        student_id=session.student_id,
        subject_id=session.subject_id,
        concept_ids=list(session.concept_ids),
        started_at=session.started_at,
        completed_at=session.completed_at,
        total_concepts=len(session.concept_ids),
        completed_concepts=len(_completed_concepts(db, session))
    )


def start_review_session(
    db: Session,
    student_id: int,
    subject_id: Optional[str] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> StudySessionResponse:
    """
    Open a review session over the student's due concepts.

    The queue holds at most ``limit`` concepts (default: the configured
    due_list_limit), most overdue first. An empty queue is still a session.
    """
    now = now or utcnow()
    require_student(db, student_id)

    due = get_concepts_due_for_review(
        db, student_id, subject_id=subject_id, now=now, limit=limit or settings.due_list_limit
    )
    session = StudySession(
        session_id=uuid.uuid4().hex,
        student_id=student_id,
        subject_id=subject_id,
        concept_ids=[item.concept_id for item in due],
        started_at=now
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    logger.info("Started review session %s for student %s with %d concepts", session.session_id, student_id, len(due))
    return _to_response(db, session)


def get_session_progress(db: Session, session_id: str) -> StudySessionResponse:
    """Current queue and progress of a review session"""
    return _to_response(db, require_study_session(db, session_id))


def review_in_session(
    db: Session,
    session_id: str,
    concept_id: str,
    quality: int,
    now: Optional[datetime] = None,
    params: Optional[SchedulerParams] = None
) -> SessionReviewResult:
    """
    Record a review of a queued concept under this session's id.

    Raises:
        NotFoundError: unknown session
        ValidationError: session already completed, concept not queued, or
            quality outside 0-5
    """
    session = require_study_session(db, session_id)
    if session.completed_at is not None:
        raise ValidationError(f"Review session {session_id} is already complete", ["session_id: session is complete"])
    if concept_id not in session.concept_ids:
        raise ValidationError(
            f"Concept {concept_id!r} is not queued in session {session_id}",
            ["concept_id: not queued in this session"]
        )

    result = record_review(
        db,
        session.student_id,
        concept_id,
        quality,
        subject_id=session.subject_id,
        session_id=session.session_id,
        now=now,
        params=params
    )

    completed = len(_completed_concepts(db, session))
    total = len(session.concept_ids)
    return SessionReviewResult(
        review=result.review,
        mastery=result.mastery,
        completed_concepts=completed,
        total_concepts=total,
        is_complete=completed >= total
    )


def complete_review_session(
    db: Session,
    session_id: str,
    now: Optional[datetime] = None
) -> SessionSummary:
    """Close a review session and summarise it, with what the next one holds"""
    now = now or utcnow()
    session = require_study_session(db, session_id)
    if session.completed_at is not None:
        raise ValidationError(f"Review session {session_id} is already complete", ["session_id: session is complete"])

    session.completed_at = now
    db.commit()

    qualities = [row.quality for row in _session_reviews(db, session)]
    reviews = len(qualities)
    correct = sum(1 for quality in qualities if quality >= PASSING_QUALITY)

    summary = SessionSummary(
        session_id=session.session_id,
        total_concepts=len(session.concept_ids),
        completed_concepts=len(_completed_concepts(db, session)),
        reviews=reviews,
        correct=correct,
        accuracy=(correct / reviews * 100) if reviews else 0.0,
        average_quality=(sum(qualities) / reviews) if reviews else 0.0,
        duration_minutes=(now - session.started_at).total_seconds() / 60,
        next_session=get_next_session_info(db, session.student_id, session.subject_id, now=now)
    )

    logger.info(
        "Completed review session %s: %d reviews, average quality %.2f",
        session.session_id, reviews, summary.average_quality
    )
    return summary
