from pydantic import BaseModel, ConfigDict, Field, StrictInt, WrapSerializer
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union
from datetime import date, datetime, timezone


def _as_utc(value: datetime, handler):
    # Stored timestamps are naive UTC; mark them as UTC on the wire
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return handler(value)

UTCDateTime = Annotated[datetime, WrapSerializer(_as_utc, when_used="json-unless-none")]


class WireModel(BaseModel):
    """JSON bodies use camelCase keys; Python code uses snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StudentCreate(BaseModel):
    """Schema for creating a student"""
    name: str
    grade: str

class StudentResponse(StudentCreate):
    """Schema for student response"""
    id: int

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Pure scheduling request/response
# ---------------------------------------------------------------------------

class PriorState(WireModel):
    """Review state carried by the caller between reviews"""
    repetitions: StrictInt = Field(ge=0)
    ease_factor: float = Field(allow_inf_nan=False)
    interval_days: StrictInt = Field(ge=0)

class ScheduleRequest(WireModel):
    """Schema for a stateless scheduling call"""
    quality: StrictInt = Field(ge=0, le=5)
    prior_state: PriorState

class ScheduleResponse(WireModel):
    """New review state and the moment of the next review"""
    repetitions: int
    ease_factor: float
    interval_days: int
    next_review_at: UTCDateTime


# ---------------------------------------------------------------------------
# Review commands, tagged by "action"
# ---------------------------------------------------------------------------

class RecordReviewCommand(WireModel):
    """Record a review of a concept the student has seen before"""
    action: Literal["review"] = "review"
    student_id: int
    concept_id: str = Field(min_length=1)
    quality: StrictInt = Field(ge=0, le=5)
    subject_id: Optional[str] = None
    session_id: Optional[str] = None

class ScheduleInitialCommand(WireModel):
    """Start tracking a freshly learned concept"""
    action: Literal["schedule"]
    student_id: int
    concept_id: str = Field(min_length=1)
    subject_id: Optional[str] = None
    quality: StrictInt = Field(default=3, ge=0, le=5)

ReviewCommand = Annotated[
    Union[RecordReviewCommand, ScheduleInitialCommand],
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Service responses
# ---------------------------------------------------------------------------

class ReviewRecordResponse(WireModel):
    """Persisted review state of one concept"""
    id: int
    student_id: int
    concept_id: str
    subject_id: Optional[str] = None
    repetitions: int
    ease_factor: float
    interval_days: int
    last_reviewed_at: Optional[UTCDateTime] = None
    next_review_at: UTCDateTime
    total_reviews: int
    average_quality: float
    archived: bool = False

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class ReviewResult(WireModel):
    """Outcome of recording a review"""
    review: ReviewRecordResponse
    mastery: int

class DueConcept(WireModel):
    """Concept whose next review date has passed"""
    id: int
    concept_id: str
    subject_id: Optional[str] = None
    last_reviewed_at: Optional[UTCDateTime] = None
    next_review_at: UTCDateTime
    ease_factor: float
    interval_days: int
    repetitions: int
    days_overdue: int

class ReviewScheduleView(WireModel):
    """Where one concept stands in its review cycle"""
    is_new: bool
    next_review_at: UTCDateTime
    interval_days: int
    repetitions: int
    mastery: int
    ease_factor: Optional[float] = None
    is_due: bool = True
    days_until_review: int = 0
    total_reviews: int = 0
    average_quality: Optional[float] = None
    archived: bool = False

class MasteryBreakdown(WireModel):
    mastered: int = 0
    learning: int = 0
    new: int = 0

class ReviewStatistics(WireModel):
    """Aggregate review figures for a student"""
    total_concepts: int
    due_for_review: int
    upcoming_reviews: int
    average_mastery: int
    total_reviews: int
    concepts_by_mastery: MasteryBreakdown

class UpcomingDay(WireModel):
    """Reviews falling on one calendar day"""
    day: date
    count: int
    concept_ids: List[str]


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------

class StudySessionResponse(WireModel):
    """A review session and the concepts queued for it"""
    session_id: str
    student_id: int
    subject_id: Optional[str] = None
    concept_ids: List[str]
    started_at: UTCDateTime
    completed_at: Optional[UTCDateTime] = None
    total_concepts: int
    completed_concepts: int = 0

class SessionReviewResult(WireModel):
    """Outcome of reviewing one queued concept"""
    review: ReviewRecordResponse
    mastery: int
    completed_concepts: int
    total_concepts: int
    is_complete: bool

class NextSessionInfo(WireModel):
    has_due_concepts: bool
    due_count: int
    upcoming_week: int
    next_review_at: Optional[UTCDateTime] = None

class SessionSummary(WireModel):
    """Figures for a finished review session"""
    session_id: str
    total_concepts: int
    completed_concepts: int
    reviews: int
    correct: int
    accuracy: float  # percent of reviews with passing quality
    average_quality: float
    duration_minutes: float
    next_session: NextSessionInfo


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

class Milestone(WireModel):
    days: int
    name: str
    days_remaining: Optional[int] = None
    is_approaching: bool = False

class StreakUpdate(WireModel):
    """Result of logging study time for today"""
    current_streak: int
    previous_streak: int
    is_new_streak: bool
    milestone: Optional[Milestone] = None

class StreakInfo(WireModel):
    """Current streak standing for a student"""
    current_streak: int
    longest_streak: int
    days_until_streak_loss: int
    streak_at_risk: bool
    milestone: Optional[Milestone] = None
    today_minutes: int = 0


class ConceptSheetRow(BaseModel):
    """Schema for one concept row of an import sheet"""
    subject: str
    concept: str
    learned_on: Optional[date] = None
    quality: int = Field(default=3, ge=0, le=5)
