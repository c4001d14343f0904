# app/models/achievement.py
from beanie import Document, Indexed
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Type
from datetime import datetime
from enum import Enum

class AchievementType(str, Enum):
    COMPETITION = "competition"
    PUBLICATION = "publication"
    CERTIFICATION = "certification"
    ORGANIZATIONAL = "organizational"
    OTHER = "other"

class CompetitionLevel(str, Enum):
    INTERNATIONAL = "international"
    NATIONAL = "national"
    REGIONAL = "regional"
    LOCAL = "local"

class PublicationKind(str, Enum):
    JOURNAL = "journal"
    CONFERENCE = "conference"
    BOOK = "book"

# Type-specific detail bags. Unknown keys are kept as-is.

class DetailBag(BaseModel):
    model_config = ConfigDict(extra="allow", use_enum_values=True)

class CompetitionDetails(DetailBag):
    competition_name: Optional[str] = None
    competition_level: Optional[CompetitionLevel] = None
    rank: Optional[int] = Field(default=None, ge=1)
    medal_type: Optional[str] = None
    event_date: Optional[datetime] = None
    location: Optional[str] = None
    organizer: Optional[str] = None

class PublicationDetails(DetailBag):
    publication_type: Optional[PublicationKind] = None
    publication_title: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    issn: Optional[str] = None

class CertificationDetails(DetailBag):
    certification_name: Optional[str] = None
    issued_by: Optional[str] = None
    certification_number: Optional[str] = None
    valid_until: Optional[datetime] = None

class OrganizationalDetails(DetailBag):
    organization_name: Optional[str] = None
    position: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

DETAIL_MODELS: Dict[AchievementType, Type[DetailBag]] = {
    AchievementType.COMPETITION: CompetitionDetails,
    AchievementType.PUBLICATION: PublicationDetails,
    AchievementType.CERTIFICATION: CertificationDetails,
    AchievementType.ORGANIZATIONAL: OrganizationalDetails,
    AchievementType.OTHER: DetailBag,
}

class Attachment(BaseModel):
    file_name: str
    file_url: str
    file_type: str = "application/octet-stream"
    uploaded_at: Optional[datetime] = None

class AchievementDetail(BaseModel):
    """Store-agnostic view of a detail document"""
    id: str
    student_id: str
    achievement_type: AchievementType
    title: str
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    attachments: List[Attachment] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    points: float = 0
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

class AchievementDocument(Document):
    student_id: Indexed(str)

    # Basic Information
    achievement_type: AchievementType
    title: str
    description: str = ""

    # Variant fields, shape depends on achievement_type
    details: Dict[str, Any] = Field(default_factory=dict)

    # Evidence and classification
    attachments: List[Attachment] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    points: float = 0

    # Metadata
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    class Settings:
        name = "achievements"
        indexes = [
            "tags",
            "deleted_at",
            [("student_id", 1), ("created_at", -1)],
        ]

    def to_detail(self) -> AchievementDetail:
        return AchievementDetail(
            id=str(self.id),
            **self.model_dump(exclude={"id", "revision_id"}),
        )
