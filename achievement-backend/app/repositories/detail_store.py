# app/repositories/detail_store.py
"""
Document-store adapter for achievement detail payloads.

Narrow create/read/update/soft-delete operations with no lifecycle rules.
The lifecycle coordinator is the only caller. Soft-deleted documents are
invisible to every read except get(..., include_deleted=True).
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Iterable
from datetime import datetime
import functools
import logging

from beanie import PydanticObjectId
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from app.core.exceptions import NotFound, StorageError
from app.models.achievement import (
    AchievementDocument,
    AchievementDetail,
    AchievementType,
    Attachment,
)

logger = logging.getLogger(__name__)

class DetailStore(ABC):

    @abstractmethod
    async def create(
        self,
        student_id: str,
        achievement_type: AchievementType,
        title: str,
        description: str,
        details: Dict[str, Any],
        tags: List[str],
        points: float,
        attachments: List[Attachment],
        now: datetime,
    ) -> AchievementDetail:
        """Insert a new detail document and return it with its generated id"""

    @abstractmethod
    async def get(self, detail_id: str, include_deleted: bool = False) -> AchievementDetail:
        """Fetch one document; NotFound if absent or soft-deleted (unless include_deleted)"""

    @abstractmethod
    async def get_many(self, detail_ids: Iterable[str]) -> Dict[str, AchievementDetail]:
        """Fetch non-deleted documents by id; missing ids are simply absent"""

    @abstractmethod
    async def update_fields(self, detail_id: str, changes: Dict[str, Any], now: datetime) -> None:
        ...

    @abstractmethod
    async def set_points(self, detail_id: str, points: float, now: datetime) -> None:
        ...

    @abstractmethod
    async def soft_delete(self, detail_id: str, now: datetime) -> None:
        ...

    @abstractmethod
    async def add_attachment(self, detail_id: str, attachment: Attachment, now: datetime) -> None:
        ...

    @abstractmethod
    async def remove_attachment(self, detail_id: str, file_name: str, now: datetime) -> None:
        ...

    @abstractmethod
    async def find_by_tag(
        self,
        tag: str,
        limit: int,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[AchievementDetail]:
        """Non-deleted documents carrying `tag`, newest first"""

    @abstractmethod
    async def find_unreferenced(self, referenced_ids: Iterable[str]) -> List[AchievementDetail]:
        """Documents (deleted or not) whose id is not in `referenced_ids`"""


def _object_id(detail_id: str) -> ObjectId:
    try:
        return ObjectId(detail_id)
    except (InvalidId, TypeError):
        raise NotFound("achievement", str(detail_id))


def _mongo_errors(func):
    """Translate driver failures into StorageError"""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.error(f"Document store call {func.__name__} failed: {e}")
            raise StorageError(f"document store unavailable: {e}") from e
    return wrapper


class BeanieDetailStore(DetailStore):
    """DetailStore backed by MongoDB through beanie"""

    def _collection(self):
        return AchievementDocument.get_motor_collection()

    async def _update_one(self, detail_id: str, update: Dict[str, Any], only_live: bool = True) -> None:
        query = {"_id": _object_id(detail_id)}
        if only_live:
            query["deleted_at"] = None

        result = await self._collection().update_one(query, update)
        if result.matched_count == 0:
            raise NotFound("achievement", detail_id)

    @_mongo_errors
    async def create(
        self,
        student_id: str,
        achievement_type: AchievementType,
        title: str,
        description: str,
        details: Dict[str, Any],
        tags: List[str],
        points: float,
        attachments: List[Attachment],
        now: datetime,
    ) -> AchievementDetail:
        document = AchievementDocument(
            student_id=student_id,
            achievement_type=achievement_type,
            title=title,
            description=description,
            details=details,
            attachments=[a.model_copy(update={"uploaded_at": a.uploaded_at or now}) for a in attachments],
            tags=tags,
            points=points,
            created_at=now,
            updated_at=now,
        )
        await document.insert()
        return document.to_detail()

    @_mongo_errors
    async def get(self, detail_id: str, include_deleted: bool = False) -> AchievementDetail:
        document = await AchievementDocument.get(PydanticObjectId(_object_id(detail_id)))
        if document is None or (document.deleted_at is not None and not include_deleted):
            raise NotFound("achievement", detail_id)
        return document.to_detail()

    @_mongo_errors
    async def get_many(self, detail_ids: Iterable[str]) -> Dict[str, AchievementDetail]:
        oids = []
        for detail_id in detail_ids:
            try:
                oids.append(ObjectId(detail_id))
            except (InvalidId, TypeError):
                continue
        if not oids:
            return {}

        documents = await AchievementDocument.find(
            {"_id": {"$in": oids}, "deleted_at": None}
        ).to_list()
        return {str(doc.id): doc.to_detail() for doc in documents}

    @_mongo_errors
    async def update_fields(self, detail_id: str, changes: Dict[str, Any], now: datetime) -> None:
        await self._update_one(detail_id, {"$set": {**changes, "updated_at": now}})

    @_mongo_errors
    async def set_points(self, detail_id: str, points: float, now: datetime) -> None:
        await self._update_one(detail_id, {"$set": {"points": points, "updated_at": now}})

    @_mongo_errors
    async def soft_delete(self, detail_id: str, now: datetime) -> None:
        await self._update_one(
            detail_id,
            {"$set": {"deleted_at": now, "updated_at": now}},
            only_live=False,
        )

    @_mongo_errors
    async def add_attachment(self, detail_id: str, attachment: Attachment, now: datetime) -> None:
        entry = attachment.model_copy(update={"uploaded_at": now}).model_dump()
        await self._update_one(
            detail_id,
            {"$push": {"attachments": entry}, "$set": {"updated_at": now}},
        )

    @_mongo_errors
    async def remove_attachment(self, detail_id: str, file_name: str, now: datetime) -> None:
        await self._update_one(
            detail_id,
            {"$pull": {"attachments": {"file_name": file_name}}, "$set": {"updated_at": now}},
        )

    @_mongo_errors
    async def find_by_tag(
        self,
        tag: str,
        limit: int,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[AchievementDetail]:
        query: Dict[str, Any] = {"tags": tag, "deleted_at": None}
        if student_ids is not None:
            query["student_id"] = {"$in": list(student_ids)}

        documents = await AchievementDocument.find(query).sort("-created_at").limit(limit).to_list()
        return [doc.to_detail() for doc in documents]

    @_mongo_errors
    async def find_unreferenced(self, referenced_ids: Iterable[str]) -> List[AchievementDetail]:
        known = []
        for detail_id in referenced_ids:
            try:
                known.append(ObjectId(detail_id))
            except (InvalidId, TypeError):
                continue

        documents = await AchievementDocument.find({"_id": {"$nin": known}}).to_list()
        return [doc.to_detail() for doc in documents]
