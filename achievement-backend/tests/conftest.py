"""
Shared fixtures: an in-memory SQLite relational store, an in-memory
document store, seeded students/lecturers and ready-made callers.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Iterable, Any

import pytest
from bson import ObjectId
from httpx import AsyncClient, ASGITransport

from app.core.database import Base, create_db_engine, create_session_factory
from app.core.exceptions import NotFound
from app.core.security import create_access_token
from app.models import achievement_reference, student  # noqa: F401
from app.models.achievement import AchievementDetail, Attachment
from app.models.student import Lecturer, Student
from app.repositories.detail_store import DetailStore
from app.repositories.reference_store import ReferenceStore
from app.repositories.relationships import RelationshipDirectory
from app.services.achievement_service import AchievementLifecycleService
from app.services.authorization import AuthContext, AuthorizationService, Role
from app.services.consistency import ConsistencyMonitor
from app.services.query_service import AchievementQueryService

S1 = "student-1"
S2 = "student-2"
L1 = "lecturer-1"
L2 = "lecturer-2"


class InMemoryDetailStore(DetailStore):
    """Dict-backed DetailStore with the same visibility rules as the Mongo one"""

    def __init__(self):
        self.documents: Dict[str, AchievementDetail] = {}

    def _live(self, detail_id: str) -> AchievementDetail:
        document = self.documents.get(detail_id)
        if document is None or document.is_deleted:
            raise NotFound("achievement", detail_id)
        return document

    async def create(self, student_id, achievement_type, title, description, details,
                     tags, points, attachments, now) -> AchievementDetail:
        detail = AchievementDetail(
            id=str(ObjectId()),
            student_id=student_id,
            achievement_type=achievement_type,
            title=title,
            description=description,
            details=dict(details),
            attachments=[a.model_copy(update={"uploaded_at": a.uploaded_at or now}) for a in attachments],
            tags=list(tags),
            points=points,
            created_at=now,
            updated_at=now,
        )
        self.documents[detail.id] = detail
        return detail.model_copy(deep=True)

    async def get(self, detail_id: str, include_deleted: bool = False) -> AchievementDetail:
        document = self.documents.get(detail_id)
        if document is None or (document.is_deleted and not include_deleted):
            raise NotFound("achievement", detail_id)
        return document.model_copy(deep=True)

    async def get_many(self, detail_ids: Iterable[str]) -> Dict[str, AchievementDetail]:
        return {
            i: self.documents[i].model_copy(deep=True)
            for i in detail_ids
            if i in self.documents and not self.documents[i].is_deleted
        }

    async def update_fields(self, detail_id: str, changes: Dict[str, Any], now) -> None:
        document = self._live(detail_id)
        self.documents[detail_id] = document.model_copy(update={**changes, "updated_at": now})

    async def set_points(self, detail_id: str, points: float, now) -> None:
        await self.update_fields(detail_id, {"points": points}, now)

    async def soft_delete(self, detail_id: str, now) -> None:
        if detail_id not in self.documents:
            raise NotFound("achievement", detail_id)
        self.documents[detail_id] = self.documents[detail_id].model_copy(
            update={"deleted_at": now, "updated_at": now}
        )

    async def add_attachment(self, detail_id: str, attachment: Attachment, now) -> None:
        document = self._live(detail_id)
        attachments = document.attachments + [attachment.model_copy(update={"uploaded_at": now})]
        self.documents[detail_id] = document.model_copy(update={"attachments": attachments, "updated_at": now})

    async def remove_attachment(self, detail_id: str, file_name: str, now) -> None:
        document = self._live(detail_id)
        attachments = [a for a in document.attachments if a.file_name != file_name]
        self.documents[detail_id] = document.model_copy(update={"attachments": attachments, "updated_at": now})

    async def find_by_tag(self, tag: str, limit: int, student_ids: Optional[Iterable[str]] = None) -> List[AchievementDetail]:
        allowed = None if student_ids is None else set(student_ids)
        matches = [
            d for d in self.documents.values()
            if tag in d.tags and not d.is_deleted and (allowed is None or d.student_id in allowed)
        ]
        matches.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in matches[:limit]]

    async def find_unreferenced(self, referenced_ids: Iterable[str]) -> List[AchievementDetail]:
        known = set(referenced_ids)
        return [d.model_copy(deep=True) for i, d in self.documents.items() if i not in known]


class FakeClock:
    """Deterministic clock, one second per reading"""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = create_session_factory(engine)

    with factory() as session:
        session.add_all([
            Lecturer(id=L1, user_id="u-l1", lecturer_id="NIP001", department="Informatics"),
            Lecturer(id=L2, user_id="u-l2", lecturer_id="NIP002", department="Mathematics"),
        ])
        session.flush()
        session.add_all([
            Student(id=S1, user_id="u-s1", student_id="2101001", program_study="Informatics",
                    academic_year="2021", advisor_id=L1),
            Student(id=S2, user_id="u-s2", student_id="2101002", program_study="Mathematics",
                    academic_year="2021", advisor_id=L2),
        ])
        session.commit()

    yield factory
    engine.dispose()


@pytest.fixture
def detail_store():
    return InMemoryDetailStore()


@pytest.fixture
def reference_store(session_factory):
    return ReferenceStore(session_factory)


@pytest.fixture
def authorization(session_factory):
    return AuthorizationService(RelationshipDirectory(session_factory))


@pytest.fixture
def monitor():
    return ConsistencyMonitor()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle(detail_store, reference_store, authorization, monitor, clock):
    return AchievementLifecycleService(
        detail_store,
        reference_store,
        authorization,
        monitor=monitor,
        clock=clock,
        store_timeout=0.5,
        point_sync_attempts=2,
    )


@pytest.fixture
def queries(detail_store, reference_store, authorization):
    return AchievementQueryService(detail_store, reference_store, authorization, store_timeout=0.5)


@pytest.fixture
def student_s1():
    return AuthContext(user_id="u-s1", role=Role.STUDENT, student_id=S1)


@pytest.fixture
def student_s2():
    return AuthContext(user_id="u-s2", role=Role.STUDENT, student_id=S2)


@pytest.fixture
def advisor_l1():
    return AuthContext(user_id="u-l1", role=Role.ADVISOR, lecturer_id=L1)


@pytest.fixture
def advisor_l2():
    return AuthContext(user_id="u-l2", role=Role.ADVISOR, lecturer_id=L2)


@pytest.fixture
def admin():
    return AuthContext(user_id="u-admin", role=Role.ADMIN)


@pytest.fixture
def competition():
    return {
        "achievement_type": "competition",
        "title": "Olympiad",
        "description": "National informatics olympiad",
        "details": {"competition_level": "national", "rank": 1, "medal_type": "gold"},
        "tags": ["Olympiad", "programming"],
    }


@pytest.fixture
async def client(detail_store, session_factory, monitor):
    from app.main import app, configure_services

    configure_services(app, detail_store, session_factory, monitor=monitor)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(context: AuthContext) -> dict:
    claims = {"sub": context.user_id, "role": context.role.value}
    if context.student_id:
        claims["student_id"] = context.student_id
    if context.lecturer_id:
        claims["lecturer_id"] = context.lecturer_id
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def headers():
    return auth_headers