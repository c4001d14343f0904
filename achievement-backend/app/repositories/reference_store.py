# app/repositories/reference_store.py
"""
Relational-store adapter for achievement reference rows.

Status changes go through transition(), an UPDATE guarded by the expected
current status. When two requests race on the same row only one UPDATE
matches; the loser sees InvalidTransition with the status that beat it.
"""
from typing import List, Optional, Iterable, Set, Dict, Any
from datetime import datetime
import functools
import logging
import uuid

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import NotFound, StorageError, ValidationError, InvalidTransition
from app.models.achievement_reference import AchievementReference, AchievementStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"submitted_at", "verified_at", "verified_by", "rejection_note"}


def _sql_errors(func):
    """Translate driver failures into StorageError"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Reference store call {func.__name__} failed: {e}")
            raise StorageError(f"relational store unavailable: {e}") from e
    return wrapper


class ReferenceStore:
    """AchievementReference rows through SQLAlchemy, one session per call"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @_sql_errors
    def create(self, student_id: str, detail_id: str, now: datetime) -> AchievementReference:
        reference = AchievementReference(
            id=str(uuid.uuid4()),
            student_id=student_id,
            mongo_achievement_id=detail_id,
            status=AchievementStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as session:
            session.add(reference)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ValidationError(
                    f"a reference already exists for achievement {detail_id}",
                    {"detail_id": detail_id},
                ) from e
        return reference

    @_sql_errors
    def get(self, reference_id: str) -> AchievementReference:
        with self._session_factory() as session:
            reference = session.get(AchievementReference, reference_id)
        if reference is None:
            raise NotFound("achievement reference", reference_id)
        return reference

    @_sql_errors
    def get_by_detail_id(self, detail_id: str) -> AchievementReference:
        with self._session_factory() as session:
            reference = session.execute(
                select(AchievementReference).where(
                    AchievementReference.mongo_achievement_id == detail_id
                )
            ).scalar_one_or_none()
        if reference is None:
            raise NotFound("achievement reference for detail", detail_id)
        return reference

    @_sql_errors
    def list_by_student(
        self,
        student_id: str,
        limit: int,
        offset: int,
        include_deleted: bool = False,
    ) -> List[AchievementReference]:
        query = select(AchievementReference).where(AchievementReference.student_id == student_id)
        if not include_deleted:
            query = query.where(AchievementReference.status != AchievementStatus.DELETED)

        query = query.order_by(
            AchievementReference.created_at.desc(),
            AchievementReference.id.desc(),
        ).offset(offset).limit(limit)

        with self._session_factory() as session:
            return list(session.execute(query).scalars())

    @_sql_errors
    def list_by_status(
        self,
        status: AchievementStatus,
        limit: int,
        offset: int,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[AchievementReference]:
        query = select(AchievementReference).where(AchievementReference.status == status)
        if student_ids is not None:
            query = query.where(AchievementReference.student_id.in_(list(student_ids)))

        query = query.order_by(
            AchievementReference.created_at.desc(),
            AchievementReference.id.desc(),
        ).offset(offset).limit(limit)

        with self._session_factory() as session:
            return list(session.execute(query).scalars())

    @_sql_errors
    def transition(
        self,
        reference_id: str,
        expected: AchievementStatus,
        new_status: AchievementStatus,
        operation: str,
        now: datetime,
        **fields: Any,
    ) -> AchievementReference:
        """
        Move a row from `expected` to `new_status` in a single conditional
        UPDATE, setting any of submitted_at/verified_at/verified_by/rejection_note.

        Raises NotFound when the row is missing and InvalidTransition when its
        status is no longer `expected`.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"unsupported reference fields: {sorted(unknown)}")

        values: Dict[str, Any] = {"status": new_status, "updated_at": now, **fields}
        statement = (
            update(AchievementReference)
            .where(
                AchievementReference.id == reference_id,
                AchievementReference.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        with self._session_factory() as session:
            result = session.execute(statement)
            reference = session.get(AchievementReference, reference_id, populate_existing=True)
            session.commit()

        if result.rowcount == 0:
            if reference is None:
                raise NotFound("achievement reference", reference_id)
            raise InvalidTransition(
                AchievementStatus(reference.status).value, operation, reference_id
            )
        return reference

    @_sql_errors
    def delete(self, reference_id: str, expected: Optional[AchievementStatus] = None) -> None:
        """Physically remove a row, optionally only while it is in `expected`"""
        statement = delete(AchievementReference).where(AchievementReference.id == reference_id)
        if expected is not None:
            statement = statement.where(AchievementReference.status == expected)

        with self._session_factory() as session:
            result = session.execute(statement.execution_options(synchronize_session=False))
            if result.rowcount == 0:
                current = session.get(AchievementReference, reference_id)
                session.rollback()
                if current is None:
                    raise NotFound("achievement reference", reference_id)
                raise InvalidTransition(AchievementStatus(current.status).value, "purge", reference_id)
            session.commit()

    @_sql_errors
    def list_detail_ids(self) -> Set[str]:
        with self._session_factory() as session:
            return set(session.execute(select(AchievementReference.mongo_achievement_id)).scalars())
