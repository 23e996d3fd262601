from spaced_review.crud.student import create_student, get_student, require_student
from spaced_review.crud.concept_review import (
    get_review,
    record_review,
    schedule_initial_review,
    get_concepts_due_for_review,
    get_review_schedule,
    get_review_statistics,
    get_upcoming_reviews,
    reset_review,
    archive_mastered_reviews,
    get_next_session_info
)
from spaced_review.crud.streak import update_daily_streak, get_streak_info
from spaced_review.crud.study_session import (
    get_study_session,
    get_session_progress,
    start_review_session,
    review_in_session,
    complete_review_session
)

__all__ = [
    "create_student",
    "get_student",
    "require_student",
    "get_review",
    "record_review",
    "schedule_initial_review",
    "get_concepts_due_for_review",
    "get_review_schedule",
    "get_review_statistics",
    "get_upcoming_reviews",
    "reset_review",
    "archive_mastered_reviews",
    "get_next_session_info",
    "update_daily_streak",
    "get_streak_info",
    "get_study_session",
    "get_session_progress",
    "start_review_session",
    "review_in_session",
    "complete_review_session",
]
