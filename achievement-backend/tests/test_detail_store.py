"""
Mongo detail store through beanie, backed by mongomock-motor.
"""
from datetime import datetime, timedelta, timezone

import pytest
from beanie import init_beanie
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import AutoReconnect

from app.core.exceptions import NotFound, StorageError
from app.models.achievement import AchievementDocument, AchievementType, Attachment
from app.repositories.detail_store import BeanieDetailStore

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
async def store():
    client = AsyncMongoMockClient()
    await init_beanie(database=client["achievements_test"], document_models=[AchievementDocument])
    return BeanieDetailStore()


async def _create(store, title="Olympiad", student_id="student-1", tags=("olympiad",), now=T0, attachments=()):
    return await store.create(
        student_id=student_id,
        achievement_type=AchievementType.COMPETITION,
        title=title,
        description="National round",
        details={"competition_level": "national", "rank": 1},
        tags=list(tags),
        points=0,
        attachments=list(attachments),
        now=now,
    )


async def test_create_and_get(store):
    certificate = Attachment(file_name="certificate.pdf", file_url="https://files.example.edu/c.pdf")

    created = await _create(store, attachments=[certificate])
    fetched = await store.get(created.id)

    assert ObjectId.is_valid(created.id)
    assert fetched.id == created.id
    assert fetched.student_id == "student-1"
    assert fetched.achievement_type == AchievementType.COMPETITION
    assert fetched.details == {"competition_level": "national", "rank": 1}
    assert fetched.tags == ["olympiad"]
    assert fetched.attachments[0].uploaded_at is not None
    assert not fetched.is_deleted


async def test_soft_deleted_document_is_hidden(store):
    gone = await _create(store, title="Withdrawn")
    kept = await _create(store, title="Kept", now=T0 + timedelta(hours=1))

    await store.soft_delete(gone.id, T0 + timedelta(hours=2))

    with pytest.raises(NotFound):
        await store.get(gone.id)
    assert (await store.get(gone.id, include_deleted=True)).is_deleted
    assert set(await store.get_many([gone.id, kept.id])) == {kept.id}
    assert [d.id for d in await store.find_by_tag("olympiad", 10)] == [kept.id]


async def test_writes_skip_soft_deleted_documents(store):
    detail = await _create(store)
    await store.soft_delete(detail.id, T0)

    with pytest.raises(NotFound):
        await store.set_points(detail.id, 10, T0)
    with pytest.raises(NotFound):
        await store.update_fields(detail.id, {"title": "Renamed"}, T0)
    # soft delete itself matches deleted documents
    await store.soft_delete(detail.id, T0 + timedelta(minutes=1))


async def test_unknown_and_malformed_ids(store):
    detail = await _create(store)

    with pytest.raises(NotFound):
        await store.get("not-an-object-id")
    with pytest.raises(NotFound):
        await store.get(str(ObjectId()))
    with pytest.raises(NotFound):
        await store.set_points("not-an-object-id", 5, T0)
    with pytest.raises(NotFound):
        await store.set_points(str(ObjectId()), 5, T0)

    assert set(await store.get_many(["junk", detail.id])) == {detail.id}
    assert await store.get_many(["junk"]) == {}


async def test_update_fields_and_points(store):
    detail = await _create(store)

    await store.update_fields(detail.id, {"title": "Olympiad finals", "tags": ["finals"]}, T0 + timedelta(days=1))
    await store.set_points(detail.id, 40, T0 + timedelta(days=2))

    fetched = await store.get(detail.id)
    assert fetched.title == "Olympiad finals"
    assert fetched.tags == ["finals"]
    assert fetched.points == 40


async def test_attachments(store):
    detail = await _create(store)
    medal = Attachment(file_name="medal.jpg", file_url="https://files.example.edu/m.jpg", file_type="image/jpeg")

    await store.add_attachment(detail.id, medal, T0)
    assert [a.file_name for a in (await store.get(detail.id)).attachments] == ["medal.jpg"]

    await store.remove_attachment(detail.id, "medal.jpg", T0)
    assert (await store.get(detail.id)).attachments == []


async def test_find_by_tag_scope_order_and_limit(store):
    first = await _create(store, title="First")
    second = await _create(store, title="Second", now=T0 + timedelta(hours=1))
    await _create(store, title="Other student", student_id="student-2", now=T0 + timedelta(hours=2))
    await _create(store, title="Untagged", tags=(), now=T0 + timedelta(hours=3))

    scoped = await store.find_by_tag("olympiad", 10, student_ids=["student-1"])
    assert [d.id for d in scoped] == [second.id, first.id]

    assert len(await store.find_by_tag("olympiad", 2)) == 2
    assert await store.find_by_tag("olympiad", 10, student_ids=[]) == []


async def test_find_unreferenced_includes_deleted(store):
    referenced = await _create(store, title="Referenced")
    stray = await _create(store, title="Stray")
    deleted = await _create(store, title="Deleted stray")
    await store.soft_delete(deleted.id, T0)

    orphans = await store.find_unreferenced([referenced.id, "junk"])

    assert {o.id for o in orphans} == {stray.id, deleted.id}


async def test_driver_errors_become_storage_errors(store, monkeypatch):
    detail = await _create(store)

    class Unreachable:
        async def update_one(self, *args, **kwargs):
            raise AutoReconnect("connection pool paused")

    monkeypatch.setattr(store, "_collection", lambda: Unreachable())

    with pytest.raises(StorageError):
        await store.set_points(detail.id, 10, T0)
