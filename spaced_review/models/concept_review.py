from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from spaced_review.database import Base
from spaced_review.sm2 import ReviewState

class ConceptReview(Base):
    """SM-2 spaced repetition tracking per (student, concept)"""
    __tablename__ = "concept_reviews"
    __table_args__ = (
        UniqueConstraint("student_id", "concept_id", name="uq_concept_review_student_concept"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    concept_id = Column(String, nullable=False)
    subject_id = Column(String)
    
    # SM-2 algorithm fields
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval_days = Column(Integer, nullable=False, default=0)
    repetitions = Column(Integer, nullable=False, default=0)  # consecutive successful reviews
    
    # Naive UTC timestamps
    last_reviewed_at = Column(DateTime)
    next_review_at = Column(DateTime, nullable=False, index=True)
    
    total_reviews = Column(Integer, nullable=False, default=0)
    average_quality = Column(Float, nullable=False, default=0.0)
    archived = Column(Boolean, nullable=False, default=False)  # retired once long mastered
    
    student = relationship("Student", back_populates="concept_reviews")
    sessions = relationship("ReviewSession", back_populates="review", order_by="ReviewSession.reviewed_at")

    def to_state(self) -> ReviewState:
        return ReviewState(
            repetitions=self.repetitions,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days
        )
