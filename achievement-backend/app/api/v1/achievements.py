# app/api/v1/achievements.py
from fastapi import APIRouter, Body, Depends, Query, Response
from typing import List, Optional, Dict, Any

from app.api.deps import get_lifecycle_service, get_query_service
from app.core.exceptions import ValidationError
from app.core.security import get_current_user
from app.models.achievement import AchievementDetail
from app.models.achievement_reference import AchievementStatus
from app.schemas.achievement import (
    AchievementHistory,
    CreateAchievementResponse,
    ReferenceResponse,
    ReferenceSummary,
    RejectRequest,
    VerifyRequest,
)
from app.services.achievement_service import AchievementLifecycleService
from app.services.authorization import AuthContext
from app.services.query_service import AchievementQueryService

router = APIRouter()

@router.get("/achievements", response_model=List[ReferenceSummary])
async def list_achievements(
    student_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    current_user: AuthContext = Depends(get_current_user),
    queries: AchievementQueryService = Depends(get_query_service),
):
    """
    Achievements of one student, newest first. Students default to their own.
    """
    student_id = student_id or current_user.student_id
    if not student_id:
        raise ValidationError("student_id is required")
    return await queries.get_by_student(current_user, student_id, limit, offset)

@router.post("/achievements", response_model=CreateAchievementResponse, status_code=201)
async def create_achievement(
    achievement_data: Dict[str, Any] = Body(...),
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    """Create a draft achievement for the calling student"""
    student_id = current_user.student_id
    if not student_id:
        raise ValidationError("only students can create achievements")

    reference_id, detail_id = await lifecycle.create(current_user, student_id, achievement_data)
    return CreateAchievementResponse(reference_id=reference_id, detail_id=detail_id)

@router.get("/achievements/queue", response_model=List[ReferenceSummary])
async def list_by_status(
    status: AchievementStatus = Query(AchievementStatus.SUBMITTED),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    current_user: AuthContext = Depends(get_current_user),
    queries: AchievementQueryService = Depends(get_query_service),
):
    """Achievements in one status within the caller's scope"""
    return await queries.list_by_status(current_user, status, limit, offset)

@router.get("/achievements/tags/{tag}", response_model=List[AchievementDetail])
async def find_by_tag(
    tag: str,
    limit: Optional[int] = Query(None),
    current_user: AuthContext = Depends(get_current_user),
    queries: AchievementQueryService = Depends(get_query_service),
):
    return await queries.find_by_tag(current_user, tag, limit)

@router.get("/achievements/{detail_id}", response_model=AchievementDetail)
async def get_achievement_detail(
    detail_id: str,
    current_user: AuthContext = Depends(get_current_user),
    queries: AchievementQueryService = Depends(get_query_service),
):
    return await queries.get_detail(current_user, detail_id)

@router.get("/achievements/{detail_id}/history", response_model=AchievementHistory)
async def achievement_history(
    detail_id: str,
    current_user: AuthContext = Depends(get_current_user),
    queries: AchievementQueryService = Depends(get_query_service),
):
    """Status metadata and detail, including soft-deleted achievements"""
    return await queries.history(current_user, detail_id)

@router.put("/achievements/{reference_id}", response_model=AchievementDetail)
async def update_achievement(
    reference_id: str,
    update_data: Dict[str, Any] = Body(...),
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    """Edit a draft achievement"""
    return await lifecycle.update_detail(current_user, reference_id, update_data)

@router.post("/achievements/{reference_id}/submit", response_model=ReferenceResponse)
async def submit_achievement(
    reference_id: str,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    reference = await lifecycle.submit(current_user, reference_id)
    return ReferenceResponse.model_validate(reference)

@router.post("/achievements/{reference_id}/verify", response_model=ReferenceResponse)
async def verify_achievement(
    reference_id: str,
    body: VerifyRequest,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    """Approve a submitted achievement and award points"""
    reference = await lifecycle.verify(current_user, reference_id, body.points)
    return ReferenceResponse.model_validate(reference)

@router.post("/achievements/{reference_id}/reject", response_model=ReferenceResponse)
async def reject_achievement(
    reference_id: str,
    body: RejectRequest,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    """Reject a submitted achievement with a note"""
    reference = await lifecycle.reject(current_user, reference_id, body.note)
    return ReferenceResponse.model_validate(reference)

@router.delete("/achievements/{reference_id}", status_code=204)
async def delete_achievement(
    reference_id: str,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    await lifecycle.delete(current_user, reference_id)
    return Response(status_code=204)

@router.delete("/achievements/{reference_id}/purge", status_code=204)
async def purge_achievement(
    reference_id: str,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    """Remove a deleted reference row for good (admin only)"""
    await lifecycle.purge(current_user, reference_id)
    return Response(status_code=204)

@router.post("/achievements/{reference_id}/attachments", response_model=AchievementDetail, status_code=201)
async def add_attachment(
    reference_id: str,
    attachment: Dict[str, Any] = Body(...),
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.add_attachment(current_user, reference_id, attachment)

@router.delete("/achievements/{reference_id}/attachments/{file_name}", response_model=AchievementDetail)
async def remove_attachment(
    reference_id: str,
    file_name: str,
    current_user: AuthContext = Depends(get_current_user),
    lifecycle: AchievementLifecycleService = Depends(get_lifecycle_service),
):
    return await lifecycle.remove_attachment(current_user, reference_id, file_name)
