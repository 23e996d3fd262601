from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from spaced_review.database import Base

class ReviewSession(Base):
    """Append-only log of every review submitted for a concept"""
    __tablename__ = "review_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("concept_reviews.id"), nullable=False)
    session_id = Column(String)  # caller's study session, if any
    quality = Column(Integer, nullable=False)  # 0-5
    reviewed_at = Column(DateTime, nullable=False)
    
    review = relationship("ConceptReview", back_populates="sessions")
