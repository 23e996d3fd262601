from sqlalchemy import Column, Integer, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from spaced_review.database import Base

class DailyActivity(Base):
    """Study minutes and streak snapshot for one student on one day"""
    __tablename__ = "daily_activity"
    __table_args__ = (
        UniqueConstraint("student_id", "activity_date", name="uq_daily_activity_student_date"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    activity_date = Column(Date, nullable=False)
    
    minutes_studied = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    
    student = relationship("Student", back_populates="daily_activity")
