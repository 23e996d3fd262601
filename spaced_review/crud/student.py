from sqlalchemy.orm import Session
from spaced_review.errors import NotFoundError
from spaced_review.models import Student
from spaced_review.schemas import StudentCreate
from typing import Optional

def create_student(db: Session, student: StudentCreate) -> Student:
    """Create a new student"""
    db_student = Student(**student.model_dump())
    db.add(db_student)
    db.commit()
    db.refresh(db_student)
    return db_student

def get_student(db: Session, student_id: int) -> Optional[Student]:
    """Get student by ID"""
    return db.query(Student).filter(Student.id == student_id).first()

def require_student(db: Session, student_id: int) -> Student:
    """Get student by ID or raise NotFoundError"""
    student = get_student(db, student_id)
    if student is None:
        raise NotFoundError(f"Student {student_id} not found")
    return student
