# app/models/achievement_reference.py
from sqlalchemy import Column, String, DateTime, Text, Index, Enum as SQLEnum
import uuid
import enum

from app.core.database import Base

class AchievementStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DELETED = "deleted"

class AchievementReference(Base):
    __tablename__ = "achievement_references"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String, nullable=False, index=True)
    mongo_achievement_id = Column(String(24), nullable=False, unique=True)

    status = Column(
        SQLEnum(
            AchievementStatus,
            name="achievement_status",
            values_callable=lambda e: [s.value for s in e],
            validate_strings=True,
        ),
        nullable=False,
        default=AchievementStatus.DRAFT,
        index=True,
    )

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String, nullable=True)
    rejection_note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_achievement_references_student_created", "student_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "mongo_achievement_id": self.mongo_achievement_id,
            "status": AchievementStatus(self.status).value,
            "submitted_at": self.submitted_at,
            "verified_at": self.verified_at,
            "verified_by": self.verified_by,
            "rejection_note": self.rejection_note,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"<AchievementReference {self.id} {self.status}>"
