import pytest

from app.core.exceptions import Forbidden, NotFound, StorageError, ValidationError
from app.models.achievement_reference import AchievementStatus


async def _create(lifecycle, student, student_id, title, tags=("olympiad",)):
    return await lifecycle.create(student, student_id, {
        "achievement_type": "competition",
        "title": title,
        "tags": list(tags),
    })


async def test_get_by_student_merges_details(lifecycle, queries, student_s1, competition):
    first, _ = await _create(lifecycle, student_s1, "student-1", "Regional round")
    second, _ = await lifecycle.create(student_s1, "student-1", competition)

    summaries = await queries.get_by_student(student_s1, "student-1", 10, 0)

    assert [s.id for s in summaries] == [second, first]
    assert summaries[0].title == "Olympiad"
    assert summaries[0].tags == ["olympiad", "programming"]
    assert summaries[0].status == AchievementStatus.DRAFT


async def test_get_by_student_pagination(lifecycle, queries, student_s1):
    created = [(await _create(lifecycle, student_s1, "student-1", f"Round {i}"))[0] for i in range(3)]

    page = await queries.get_by_student(student_s1, "student-1", 2, 1)
    assert [s.id for s in page] == [created[1], created[0]]

    with pytest.raises(ValidationError):
        await queries.get_by_student(student_s1, "student-1", 0, 0)
    with pytest.raises(ValidationError):
        await queries.get_by_student(student_s1, "student-1", 10, -1)


async def test_get_by_student_scope(lifecycle, queries, student_s1, student_s2, advisor_l1, advisor_l2, admin):
    await _create(lifecycle, student_s1, "student-1", "Olympiad")

    assert len(await queries.get_by_student(advisor_l1, "student-1")) == 1
    assert len(await queries.get_by_student(admin, "student-1")) == 1

    with pytest.raises(Forbidden):
        await queries.get_by_student(student_s2, "student-1")
    with pytest.raises(Forbidden):
        await queries.get_by_student(advisor_l2, "student-1")


async def test_get_by_student_empty(queries, admin, student_s1):
    assert await queries.get_by_student(student_s1, "student-1") == []
    assert await queries.get_by_student(admin, "student-unknown") == []


async def test_review_queue_is_scoped(lifecycle, queries, student_s1, student_s2, advisor_l1, advisor_l2, admin):
    mine, _ = await _create(lifecycle, student_s1, "student-1", "Olympiad")
    theirs, _ = await _create(lifecycle, student_s2, "student-2", "Hackathon")
    draft, _ = await _create(lifecycle, student_s1, "student-1", "Still a draft")
    await lifecycle.submit(student_s1, mine)
    await lifecycle.submit(student_s2, theirs)

    assert [s.id for s in await queries.list_by_status(advisor_l1, AchievementStatus.SUBMITTED)] == [mine]
    assert [s.id for s in await queries.list_by_status(advisor_l2, "submitted")] == [theirs]
    assert {s.id for s in await queries.list_by_status(admin, AchievementStatus.SUBMITTED)} == {mine, theirs}
    assert [s.id for s in await queries.list_by_status(student_s1, AchievementStatus.DRAFT)] == [draft]
    assert await queries.list_by_status(student_s2, AchievementStatus.DRAFT) == []


async def test_review_queue_rejects_deleted_and_unknown(queries, admin):
    with pytest.raises(ValidationError):
        await queries.list_by_status(admin, AchievementStatus.DELETED)
    with pytest.raises(ValidationError):
        await queries.list_by_status(admin, "archived")


async def test_find_by_tag(lifecycle, queries, student_s1, student_s2, advisor_l2):
    await _create(lifecycle, student_s1, "student-1", "Olympiad", tags=["Olympiad", "math"])
    await _create(lifecycle, student_s2, "student-2", "Hackathon", tags=["olympiad"])

    assert [d.title for d in await queries.find_by_tag(student_s1, " OLYMPIAD ")] == ["Olympiad"]
    assert [d.title for d in await queries.find_by_tag(advisor_l2, "olympiad")] == ["Hackathon"]
    assert await queries.find_by_tag(student_s1, "chess") == []

    with pytest.raises(ValidationError):
        await queries.find_by_tag(student_s1, "  ")


async def test_get_detail(lifecycle, queries, student_s1, student_s2):
    reference_id, detail_id = await _create(lifecycle, student_s1, "student-1", "Olympiad")

    assert (await queries.get_detail(student_s1, detail_id)).title == "Olympiad"
    with pytest.raises(Forbidden):
        await queries.get_detail(student_s2, detail_id)

    await lifecycle.delete(student_s1, reference_id)
    with pytest.raises(NotFound):
        await queries.get_detail(student_s1, detail_id)


async def test_history_includes_decision(lifecycle, queries, student_s1, advisor_l1):
    reference_id, detail_id = await _create(lifecycle, student_s1, "student-1", "Olympiad")
    await lifecycle.submit(student_s1, reference_id)
    await lifecycle.reject(advisor_l1, reference_id, "missing certificate")

    history = await queries.history(advisor_l1, detail_id)

    assert history.reference.id == reference_id
    assert history.reference.status == AchievementStatus.REJECTED
    assert history.reference.rejection_note == "missing certificate"
    assert history.detail.id == detail_id


async def test_reads_retry_storage_errors(lifecycle, queries, detail_store, student_s1, monkeypatch):
    await _create(lifecycle, student_s1, "student-1", "Olympiad")
    original = detail_store.get_many
    calls = []

    async def flaky_get_many(detail_ids):
        calls.append(1)
        if len(calls) == 1:
            raise StorageError("socket closed")
        return await original(detail_ids)

    monkeypatch.setattr(detail_store, "get_many", flaky_get_many)

    summaries = await queries.get_by_student(student_s1, "student-1")
    assert summaries[0].title == "Olympiad"
    assert len(calls) == 2


async def test_reads_give_up_after_retries(lifecycle, queries, detail_store, student_s1, monkeypatch):
    await _create(lifecycle, student_s1, "student-1", "Olympiad")

    async def broken_get_many(detail_ids):
        raise StorageError("socket closed")

    monkeypatch.setattr(detail_store, "get_many", broken_get_many)

    with pytest.raises(StorageError):
        await queries.get_by_student(student_s1, "student-1")
