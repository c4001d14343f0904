# app/schemas/achievement.py
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing import List, Optional, Dict, Any, Mapping, Type, TypeVar
from datetime import datetime

from app.core.exceptions import ValidationError
from app.models.achievement import (
    AchievementType,
    AchievementDetail,
    Attachment,
    DETAIL_MODELS,
)
from app.models.achievement_reference import AchievementStatus

MAX_TAGS = 20

def _normalize_tags(tags: List[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    if len(seen) > MAX_TAGS:
        raise ValueError(f"Maximum {MAX_TAGS} tags allowed")
    return seen

def validate_details(achievement_type: AchievementType, details: Dict[str, Any]) -> Dict[str, Any]:
    """Check a detail bag against the model for its type, keeping extra keys"""
    model = DETAIL_MODELS[achievement_type]
    try:
        return model.model_validate(details or {}).model_dump(exclude_none=True)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ValueError(f"details.{field}: {first['msg']}") from e

class AttachmentCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str
    file_type: str = "application/octet-stream"

    @field_validator('file_url')
    @classmethod
    def validate_url(cls, v):
        if not v or not v.startswith(('http://', 'https://')):
            raise ValueError('file_url must start with http:// or https://')
        return v

    def to_attachment(self) -> Attachment:
        return Attachment(**self.model_dump())

class AchievementCreate(BaseModel):
    title: str = Field(..., max_length=200)
    achievement_type: AchievementType
    description: str = Field("", max_length=5000)
    details: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    points: float = Field(0, ge=0, allow_inf_nan=False)
    attachments: List[AttachmentCreate] = Field(default_factory=list)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('title must not be empty')
        return v

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, v):
        return _normalize_tags(v)

    @model_validator(mode='after')
    def validate_detail_bag(self):
        self.details = validate_details(self.achievement_type, self.details)
        return self

class AchievementUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    details: Optional[Dict[str, Any]] = None
    tags: Optional[List[str]] = None
    points: Optional[float] = Field(None, ge=0, allow_inf_nan=False)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError('title must not be empty')
        return v

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, v):
        return None if v is None else _normalize_tags(v)

class VerifyRequest(BaseModel):
    points: float = Field(0, ge=0, allow_inf_nan=False)

class RejectRequest(BaseModel):
    note: str = ""

class ReferenceResponse(BaseModel):
    id: str
    student_id: str
    mongo_achievement_id: str
    status: AchievementStatus
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ReferenceSummary(ReferenceResponse):
    title: Optional[str] = None
    achievement_type: Optional[AchievementType] = None
    points: Optional[float] = None
    tags: List[str] = Field(default_factory=list)

class CreateAchievementResponse(BaseModel):
    reference_id: str
    detail_id: str
    status: AchievementStatus = AchievementStatus.DRAFT

class AchievementHistory(BaseModel):
    reference: ReferenceResponse
    detail: AchievementDetail

ModelT = TypeVar("ModelT", bound=BaseModel)

def parse_payload(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate a raw payload, raising the domain ValidationError on failure"""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be an object")

    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "invalid payload"}
        raise ValidationError(f"{first['field']}: {first['message']}", {"errors": errors}) from e
