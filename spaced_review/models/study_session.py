from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from spaced_review.database import Base

class StudySession(Base):
    """One sitting of reviews over a queue of due concepts"""
    __tablename__ = "study_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, unique=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(String)
    
    concept_ids = Column(JSON, nullable=False)  # queue order, most overdue first
    
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    
    student = relationship("Student", back_populates="study_sessions")
