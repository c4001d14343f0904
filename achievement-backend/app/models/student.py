# app/models/student.py
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, timezone

from app.core.database import Base

def _now():
    return datetime.now(timezone.utc)

class Lecturer(Base):
    __tablename__ = "lecturers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, unique=True)
    lecturer_id = Column(String(20), nullable=False, unique=True)
    department = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    advisees = relationship("Student", back_populates="advisor")

    def __repr__(self):
        return f"<Lecturer {self.lecturer_id}>"

class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, unique=True)
    student_id = Column(String(20), nullable=False, unique=True)
    program_study = Column(String(100), nullable=True)
    academic_year = Column(String(10), nullable=True)
    advisor_id = Column(String(36), ForeignKey("lecturers.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_now)

    advisor = relationship("Lecturer", back_populates="advisees")

    def __repr__(self):
        return f"<Student {self.student_id}>"
