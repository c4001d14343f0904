# app/main.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.orm import sessionmaker
from typing import Optional
import logging

from app.api.v1 import achievements
from app.config import settings
from app.core import database, mongo
from app.core.exceptions import AchievementError, ValidationError
from app.core.logging_config import setup_logging
from app.repositories.detail_store import BeanieDetailStore, DetailStore
from app.repositories.reference_store import ReferenceStore
from app.repositories.relationships import RelationshipDirectory
from app.services.achievement_service import AchievementLifecycleService
from app.services.authorization import AuthorizationService
from app.services.consistency import ConsistencyMonitor
from app.services.query_service import AchievementQueryService

logger = logging.getLogger(__name__)

def configure_services(
    app: FastAPI,
    detail_store: DetailStore,
    session_factory: sessionmaker,
    monitor: Optional[ConsistencyMonitor] = None,
) -> None:
    """Wire the stores into the lifecycle and query services"""
    reference_store = ReferenceStore(session_factory)
    authorization = AuthorizationService(RelationshipDirectory(session_factory))
    monitor = monitor or ConsistencyMonitor()

    app.state.monitor = monitor
    app.state.lifecycle_service = AchievementLifecycleService(
        detail_store, reference_store, authorization, monitor=monitor
    )
    app.state.query_service = AchievementQueryService(detail_store, reference_store, authorization)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    setup_logging()
    session_factory = database.init_db()
    await mongo.init_mongo()
    configure_services(app, BeanieDetailStore(), session_factory)
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        mongo.close_mongo()
        database.close_db()

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(AchievementError)
async def achievement_error_handler(request: Request, exc: AchievementError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "invalid request"}
    error = ValidationError(f"{first['field']}: {first['message']}", {"errors": errors})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())

app.include_router(achievements.router, prefix=settings.API_V1_PREFIX, tags=["Achievements"])

@app.get("/")
async def read_root():
    return {"message": "Backend is running", "status": "ok"}
