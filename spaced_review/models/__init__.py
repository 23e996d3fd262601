from spaced_review.models.student import Student
from spaced_review.models.concept_review import ConceptReview
from spaced_review.models.review_session import ReviewSession
from spaced_review.models.daily_activity import DailyActivity
from spaced_review.models.study_session import StudySession

__all__ = [
    "Student",
    "ConceptReview",
    "ReviewSession",
    "DailyActivity",
    "StudySession"
]
