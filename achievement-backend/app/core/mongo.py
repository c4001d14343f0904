# app/core/mongo.py
import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from app.config import settings
from app.models.achievement import AchievementDocument

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


async def init_mongo(url: Optional[str] = None, db_name: Optional[str] = None) -> AsyncIOMotorClient:
    """Connect to the document store and register beanie documents"""
    global _client

    timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
    _client = AsyncIOMotorClient(
        url or settings.MONGODB_URL,
        serverSelectionTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    database = _client[db_name or settings.MONGODB_DB_NAME]
    await init_beanie(database=database, document_models=[AchievementDocument])

    logger.info(f"Document store ready: {database.name}")
    return _client


def close_mongo() -> None:
    global _client
    if _client is not None:
        _client.close()
    _client = None
