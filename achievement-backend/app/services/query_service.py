# app/services/query_service.py
from typing import List, Optional
import asyncio
import logging

from app.config import settings
from app.core.exceptions import Forbidden, NotFound, StorageError, ValidationError
from app.models.achievement import AchievementDetail
from app.models.achievement_reference import AchievementReference, AchievementStatus
from app.repositories.detail_store import DetailStore
from app.repositories.reference_store import ReferenceStore
from app.schemas.achievement import AchievementHistory, ReferenceResponse, ReferenceSummary
from app.services.authorization import Action, AuthContext, AuthorizationService
from app.utils.pagination import validate_page
from app.utils.retry import retry_read

logger = logging.getLogger(__name__)

class AchievementQueryService:
    """Read-only listings over references and detail documents"""

    def __init__(
        self,
        detail_store: DetailStore,
        reference_store: ReferenceStore,
        authorization: AuthorizationService,
        store_timeout: Optional[float] = None,
    ):
        self.detail_store = detail_store
        self.reference_store = reference_store
        self.authorization = authorization
        self.store_timeout = store_timeout or settings.STORE_TIMEOUT_SECONDS

    async def _read(self, call):
        async def guarded():
            try:
                return await asyncio.wait_for(call(), timeout=self.store_timeout)
            except asyncio.TimeoutError as e:
                raise StorageError(f"document store read timed out after {self.store_timeout}s") from e
        return await retry_read(guarded, attempts=settings.READ_RETRY_ATTEMPTS)

    async def _summaries(self, references: List[AchievementReference]) -> List[ReferenceSummary]:
        if not references:
            return []

        details = await self._read(
            lambda: self.detail_store.get_many([r.mongo_achievement_id for r in references])
        )
        summaries = []
        for reference in references:
            summary = ReferenceSummary.model_validate(reference)
            detail = details.get(reference.mongo_achievement_id)
            if detail is not None:
                summary.title = detail.title
                summary.achievement_type = detail.achievement_type
                summary.points = detail.points
                summary.tags = list(detail.tags)
            else:
                logger.warning(
                    f"Reference {reference.id} points at missing detail {reference.mongo_achievement_id}"
                )
            summaries.append(summary)
        return summaries

    async def get_by_student(
        self,
        actor: AuthContext,
        student_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ReferenceSummary]:
        """A student's achievements, newest first. Empty when there are none."""
        limit, offset = validate_page(limit, offset)
        self.authorization.require_capability(actor, Action.READ)
        if student_id not in self.authorization.scope_for(actor):
            raise Forbidden(f"not allowed to read achievements of student {student_id}")

        references = await retry_read(
            lambda: self.reference_store.list_by_student(student_id, limit, offset),
            attempts=settings.READ_RETRY_ATTEMPTS,
        )
        return await self._summaries(references)

    async def list_by_status(
        self,
        actor: AuthContext,
        status: AchievementStatus,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ReferenceSummary]:
        """References in one status within the caller's scope, e.g. an advisor's review queue"""
        limit, offset = validate_page(limit, offset)
        self.authorization.require_capability(actor, Action.READ)
        try:
            status = AchievementStatus(status)
        except ValueError:
            raise ValidationError(f"unknown status '{status}'")
        if status == AchievementStatus.DELETED:
            raise ValidationError("deleted achievements are not listed")

        student_ids = self.authorization.scope_for(actor).as_filter()
        if student_ids is not None and not student_ids:
            return []

        references = await retry_read(
            lambda: self.reference_store.list_by_status(status, limit, offset, student_ids),
            attempts=settings.READ_RETRY_ATTEMPTS,
        )
        return await self._summaries(references)

    async def find_by_tag(
        self,
        actor: AuthContext,
        tag: str,
        limit: Optional[int] = None,
    ) -> List[AchievementDetail]:
        limit, _ = validate_page(limit, 0)
        self.authorization.require_capability(actor, Action.READ)
        tag = (tag or "").strip().lower()
        if not tag:
            raise ValidationError("tag is required")

        student_ids = self.authorization.scope_for(actor).as_filter()
        if student_ids is not None and not student_ids:
            return []

        return await self._read(lambda: self.detail_store.find_by_tag(tag, limit, student_ids))

    async def get_detail(self, actor: AuthContext, detail_id: str) -> AchievementDetail:
        """A live detail document; soft-deleted ones are NotFound"""
        self.authorization.require_capability(actor, Action.READ)
        detail = await self._read(lambda: self.detail_store.get(detail_id))
        if detail.student_id not in self.authorization.scope_for(actor):
            raise Forbidden(f"not allowed to read achievement {detail_id}")
        return detail

    async def history(self, actor: AuthContext, detail_id: str) -> AchievementHistory:
        """Reference row plus detail, soft-deleted details included"""
        self.authorization.require_capability(actor, Action.READ)
        reference = await retry_read(
            lambda: self.reference_store.get_by_detail_id(detail_id),
            attempts=settings.READ_RETRY_ATTEMPTS,
        )
        if reference.student_id not in self.authorization.scope_for(actor):
            raise Forbidden(f"not allowed to read achievement {detail_id}")

        try:
            detail = await self._read(lambda: self.detail_store.get(detail_id, include_deleted=True))
        except NotFound:
            logger.error(f"Reference {reference.id} has no detail document {detail_id}")
            raise

        return AchievementHistory(
            reference=ReferenceResponse.model_validate(reference),
            detail=detail,
        )
