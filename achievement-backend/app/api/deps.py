# app/api/deps.py
from fastapi import Request

from app.services.achievement_service import AchievementLifecycleService
from app.services.query_service import AchievementQueryService

def get_lifecycle_service(request: Request) -> AchievementLifecycleService:
    return request.app.state.lifecycle_service

def get_query_service(request: Request) -> AchievementQueryService:
    return request.app.state.query_service
