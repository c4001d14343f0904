# app/repositories/relationships.py
from typing import Set
import logging

from sqlalchemy import select, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import StorageError
from app.models.student import Student

logger = logging.getLogger(__name__)

class RelationshipDirectory:
    """Read-only advisor/advisee lookups over the students table"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def is_advisor_of(self, lecturer_id: str, student_id: str) -> bool:
        query = select(
            exists().where(Student.id == student_id, Student.advisor_id == lecturer_id)
        )
        try:
            with self._session_factory() as session:
                return bool(session.execute(query).scalar())
        except SQLAlchemyError as e:
            logger.error(f"Advisor lookup failed for lecturer {lecturer_id}: {e}")
            raise StorageError(f"relational store unavailable: {e}") from e

    def advisees_of(self, lecturer_id: str) -> Set[str]:
        query = select(Student.id).where(Student.advisor_id == lecturer_id)
        try:
            with self._session_factory() as session:
                return set(session.execute(query).scalars())
        except SQLAlchemyError as e:
            logger.error(f"Advisee lookup failed for lecturer {lecturer_id}: {e}")
            raise StorageError(f"relational store unavailable: {e}") from e
