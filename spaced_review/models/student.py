from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from spaced_review.database import Base

class Student(Base):
    """Learner whose concept reviews are scheduled"""
    __tablename__ = "students"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    grade = Column(String, nullable=False)  # K, 1, 2, ... 12
    created_at = Column(DateTime, default=datetime.utcnow)
    
    concept_reviews = relationship("ConceptReview", back_populates="student")
    daily_activity = relationship("DailyActivity", back_populates="student")
    study_sessions = relationship("StudySession", back_populates="student")
