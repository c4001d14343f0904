# app/services/achievement_service.py
"""
Achievement lifecycle across the two stores.

    draft --submit--> submitted --verify--> verified
    draft --submit--> submitted --reject--> rejected
    draft --delete--------------------------> deleted

The detail document (document store) and the reference row (relational
store) are written without a shared transaction, so each operation follows a
fixed write order:

* create: detail first, then reference. A failed reference write leaves an
  unreferenced detail, which no listing can reach.
* verify: reference first, then points on the detail. A failed point sync
  leaves the achievement verified with stale points; the status stays.
* delete: soft-delete the detail first, then mark the reference deleted. A
  failed second write leaves a hidden detail behind a draft reference.

Every partial outcome is reported to the ConsistencyMonitor and the original
error is re-raised. Nothing is rolled back.
"""
from typing import Any, Callable, Mapping, Optional, Tuple
from datetime import datetime
import asyncio
import logging
import math

from app.config import settings
from app.core.exceptions import (
    AchievementError,
    ConsistencyWarning,
    InvalidTransition,
    NotFound,
    StorageError,
    ValidationError,
)
from app.models.achievement import AchievementDetail
from app.models.achievement_reference import AchievementReference, AchievementStatus
from app.repositories.detail_store import DetailStore
from app.repositories.reference_store import ReferenceStore
from app.schemas.achievement import (
    AchievementCreate,
    AchievementUpdate,
    AttachmentCreate,
    parse_payload,
    validate_details,
)
from app.services.authorization import Action, AuthContext, AuthorizationService
from app.services.consistency import ConsistencyMonitor
from app.utils.dates import utcnow
from app.utils.retry import retry_read

logger = logging.getLogger(__name__)

def _describe(error: BaseException) -> str:
    if isinstance(error, AchievementError):
        return error.message
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__

class AchievementLifecycleService:

    def __init__(
        self,
        detail_store: DetailStore,
        reference_store: ReferenceStore,
        authorization: AuthorizationService,
        monitor: Optional[ConsistencyMonitor] = None,
        clock: Callable[[], datetime] = utcnow,
        store_timeout: Optional[float] = None,
        point_sync_attempts: Optional[int] = None,
    ):
        self.detail_store = detail_store
        self.reference_store = reference_store
        self.authorization = authorization
        self.monitor = monitor or ConsistencyMonitor()
        self.clock = clock
        self.store_timeout = store_timeout or settings.STORE_TIMEOUT_SECONDS
        self.point_sync_attempts = max(1, point_sync_attempts or settings.POINT_SYNC_ATTEMPTS)

    # -- helpers ---------------------------------------------------------

    async def _detail_call(self, coro):
        """Await a document-store call under the store timeout"""
        try:
            return await asyncio.wait_for(coro, timeout=self.store_timeout)
        except asyncio.TimeoutError as e:
            # The write may or may not have landed
            raise StorageError(
                f"document store call timed out after {self.store_timeout}s"
            ) from e

    async def _load_reference(self, reference_id: str) -> AchievementReference:
        if not reference_id:
            raise ValidationError("reference id is required")
        return await retry_read(
            lambda: self.reference_store.get(reference_id),
            attempts=settings.READ_RETRY_ATTEMPTS,
        )

    def _flag(self, operation: str, reason: str, reference_id=None, detail_id=None, student_id=None):
        self.monitor.flag(ConsistencyWarning(
            operation,
            reason,
            reference_id=reference_id,
            detail_id=detail_id,
            student_id=student_id,
        ))

    @staticmethod
    def _require_draft(reference: AchievementReference, operation: str) -> None:
        status = AchievementStatus(reference.status)
        if status != AchievementStatus.DRAFT:
            raise InvalidTransition(status.value, operation, reference.id)

    # -- lifecycle -------------------------------------------------------

    async def create(
        self,
        actor: AuthContext,
        student_id: str,
        payload: Mapping[str, Any],
    ) -> Tuple[str, str]:
        """Create a draft achievement; returns (reference_id, detail_id)"""
        if not student_id:
            raise ValidationError("student id is required")
        self.authorization.require_student(actor, Action.CREATE, student_id)

        data = parse_payload(AchievementCreate, payload)
        now = self.clock()

        detail = await self._detail_call(self.detail_store.create(
            student_id=student_id,
            achievement_type=data.achievement_type,
            title=data.title,
            description=data.description,
            details=data.details,
            tags=data.tags,
            points=data.points,
            attachments=[a.to_attachment() for a in data.attachments],
            now=now,
        ))

        try:
            reference = self.reference_store.create(student_id, detail.id, now)
        except BaseException as e:
            # Cancellation included: the detail is already stored
            self._flag(
                "create",
                f"detail written but reference write failed: {_describe(e)}",
                detail_id=detail.id,
                student_id=student_id,
            )
            raise

        logger.info(
            f"Achievement created: reference={reference.id} detail={detail.id} student={student_id}"
        )
        return reference.id, detail.id

    async def submit(self, actor: AuthContext, reference_id: str) -> AchievementReference:
        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.SUBMIT, reference.student_id)

        now = self.clock()
        reference = self.reference_store.transition(
            reference_id,
            AchievementStatus.DRAFT,
            AchievementStatus.SUBMITTED,
            "submit",
            now,
            submitted_at=now,
        )
        logger.info(f"Achievement submitted: reference={reference_id}")
        return reference

    async def verify(self, actor: AuthContext, reference_id: str, points: float) -> AchievementReference:
        self.authorization.require_capability(actor, Action.VERIFY)
        if (
            isinstance(points, bool)
            or not isinstance(points, (int, float))
            or not math.isfinite(points)
            or points < 0
        ):
            raise ValidationError("points must be a finite, non-negative number")

        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.VERIFY, reference.student_id)

        now = self.clock()
        reference = self.reference_store.transition(
            reference_id,
            AchievementStatus.SUBMITTED,
            AchievementStatus.VERIFIED,
            "verify",
            now,
            verified_at=now,
            verified_by=actor.actor_id,
        )
        logger.info(f"Achievement verified: reference={reference_id} by={actor.actor_id} points={points}")

        await self._sync_points(reference, points, now)
        return reference

    async def _sync_points(self, reference: AchievementReference, points: float, now: datetime) -> None:
        """Copy awarded points onto the detail after the status change committed"""
        detail_id = reference.mongo_achievement_id
        last_error: Optional[AchievementError] = None

        try:
            for attempt in range(1, self.point_sync_attempts + 1):
                try:
                    await self._detail_call(self.detail_store.set_points(detail_id, points, now))
                    return
                except NotFound as e:
                    last_error = e
                    break
                except StorageError as e:
                    last_error = e
                    logger.warning(
                        f"Point sync failed for detail {detail_id} "
                        f"(attempt {attempt}/{self.point_sync_attempts}): {e}"
                    )
        except BaseException as e:
            # Cancelled or an unexpected failure; the status change has committed
            self._flag_stale_points(reference, _describe(e))
            raise

        self._flag_stale_points(reference, last_error.message)
        if isinstance(last_error, StorageError):
            raise last_error
        raise StorageError(f"points could not be written: {last_error.message}") from last_error

    def _flag_stale_points(self, reference: AchievementReference, reason: str) -> None:
        self._flag(
            "verify",
            f"reference verified but points not written: {reason}",
            reference_id=reference.id,
            detail_id=reference.mongo_achievement_id,
            student_id=reference.student_id,
        )

    async def reject(self, actor: AuthContext, reference_id: str, note: str) -> AchievementReference:
        self.authorization.require_capability(actor, Action.REJECT)
        note = (note or "").strip()
        if not note:
            raise ValidationError("rejection note is required")

        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.REJECT, reference.student_id)

        now = self.clock()
        reference = self.reference_store.transition(
            reference_id,
            AchievementStatus.SUBMITTED,
            AchievementStatus.REJECTED,
            "reject",
            now,
            verified_at=now,
            rejection_note=note,
        )
        logger.info(f"Achievement rejected: reference={reference_id} by={actor.actor_id}")
        return reference

    async def delete(self, actor: AuthContext, reference_id: str) -> None:
        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.DELETE, reference.student_id)
        self._require_draft(reference, "delete")

        now = self.clock()
        detail_id = reference.mongo_achievement_id
        await self._detail_call(self.detail_store.soft_delete(detail_id, now))

        try:
            self.reference_store.transition(
                reference_id,
                AchievementStatus.DRAFT,
                AchievementStatus.DELETED,
                "delete",
                now,
            )
        except BaseException as e:
            self._flag(
                "delete",
                f"detail soft-deleted but reference not marked deleted: {_describe(e)}",
                reference_id=reference_id,
                detail_id=detail_id,
                student_id=reference.student_id,
            )
            raise

        logger.info(f"Achievement deleted: reference={reference_id} detail={detail_id}")

    # -- draft editing ---------------------------------------------------

    async def update_detail(
        self,
        actor: AuthContext,
        reference_id: str,
        payload: Mapping[str, Any],
    ) -> AchievementDetail:
        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.UPDATE, reference.student_id)
        self._require_draft(reference, "update")

        data = parse_payload(AchievementUpdate, payload)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("no changes supplied")

        detail_id = reference.mongo_achievement_id
        if "details" in changes:
            current = await self._detail_call(self.detail_store.get(detail_id))
            try:
                changes["details"] = validate_details(current.achievement_type, changes["details"])
            except ValueError as e:
                raise ValidationError(str(e)) from e

        now = self.clock()
        await self._detail_call(self.detail_store.update_fields(detail_id, changes, now))
        logger.info(f"Achievement updated: reference={reference_id} fields={sorted(changes)}")
        return await self._detail_call(self.detail_store.get(detail_id))

    async def add_attachment(
        self,
        actor: AuthContext,
        reference_id: str,
        payload: Mapping[str, Any],
    ) -> AchievementDetail:
        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.UPDATE, reference.student_id)
        self._require_draft(reference, "attach")

        attachment = parse_payload(AttachmentCreate, payload).to_attachment()
        detail_id = reference.mongo_achievement_id
        await self._detail_call(self.detail_store.add_attachment(detail_id, attachment, self.clock()))
        return await self._detail_call(self.detail_store.get(detail_id))

    async def remove_attachment(
        self,
        actor: AuthContext,
        reference_id: str,
        file_name: str,
    ) -> AchievementDetail:
        if not file_name:
            raise ValidationError("file name is required")

        reference = await self._load_reference(reference_id)
        self.authorization.require_student(actor, Action.UPDATE, reference.student_id)
        self._require_draft(reference, "detach")

        detail_id = reference.mongo_achievement_id
        await self._detail_call(self.detail_store.remove_attachment(detail_id, file_name, self.clock()))
        return await self._detail_call(self.detail_store.get(detail_id))

    # -- administration --------------------------------------------------

    async def purge(self, actor: AuthContext, reference_id: str) -> None:
        """Physically remove a reference row that is already in 'deleted'"""
        self.authorization.require_capability(actor, Action.PURGE)
        if not reference_id:
            raise ValidationError("reference id is required")

        self.reference_store.delete(reference_id, expected=AchievementStatus.DELETED)
        logger.warning(f"Achievement reference purged: reference={reference_id} by={actor.user_id}")
