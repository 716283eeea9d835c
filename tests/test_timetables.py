from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.timetables import service
from app.api.v1.timetables.schemas import TimetableCreate, TimetableEntryUpsert, TimetableUpdate
from app.core.enums import TimetableStatus
from app.core.exceptions import (
    AlreadyPublishedError,
    ConflictError,
    NotDraftError,
    NotFoundError,
    TeacherConflictError,
    ValidationError,
)
from app.core.models import Substitution, SubstitutionPeriod, Timetable, TimetableEntry

from tests.conftest import ACADEMIC_YEAR_ID, BRANCH_ID, TENANT_ID


def _entry(day_of_week, period_slot_id, teacher_id=None, **extra):
    return TimetableEntryUpsert(day_of_week=day_of_week, period_slot_id=period_slot_id, teacher_id=teacher_id, **extra)


async def _published_count(db: AsyncSession, section_id) -> int:
    result = await db.execute(
        select(Timetable).where(
            Timetable.section_id == section_id,
            Timetable.academic_year_id == ACADEMIC_YEAR_ID,
            Timetable.status == TimetableStatus.PUBLISHED.value,
        )
    )
    return len(result.scalars().all())


@pytest.mark.asyncio
async def test_new_timetable_is_draft(db_session: AsyncSession) -> None:
    created = await service.create_timetable(
        db_session,
        TENANT_ID,
        TimetableCreate(
            branch_id=BRANCH_ID,
            section_id=uuid4(),
            academic_year_id=ACADEMIC_YEAR_ID,
            name="Grade 5A",
            effective_from=date(2026, 4, 1),
        ),
    )

    assert created.status == TimetableStatus.DRAFT
    assert created.published_at is None


@pytest.mark.asyncio
async def test_publish_archives_previous_version(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    section_id = uuid4()
    t1 = await make_timetable(section_id, [(0, slots.p1, teachers.alice)], publish=True, name="v1")
    assert t1.status == TimetableStatus.PUBLISHED

    # The next version may reuse the same cells: the old version is archived on publish.
    t2 = await make_timetable(section_id, [(0, slots.p1, teachers.alice)], name="v2")
    publisher = uuid4()
    published = await service.publish_timetable(db_session, TENANT_ID, t2.id, published_by=publisher)

    assert published.status == TimetableStatus.PUBLISHED
    assert published.published_by == publisher
    assert published.published_at is not None
    old = await service.get_timetable(db_session, TENANT_ID, t1.id)
    assert old.status == TimetableStatus.ARCHIVED
    current = await service.get_published_for_section(db_session, TENANT_ID, section_id, ACADEMIC_YEAR_ID)
    assert current.id == t2.id
    assert await _published_count(db_session, section_id) == 1


@pytest.mark.asyncio
async def test_publish_non_draft_fails(db_session: AsyncSession, make_timetable) -> None:
    published = await make_timetable(publish=True)

    with pytest.raises(AlreadyPublishedError):
        await service.publish_timetable(db_session, TENANT_ID, published.id)

    archived = await service.archive_timetable(db_session, TENANT_ID, published.id)
    with pytest.raises(AlreadyPublishedError):
        await service.publish_timetable(db_session, TENANT_ID, archived.id)


@pytest.mark.asyncio
async def test_published_for_section_not_found(db_session: AsyncSession, make_timetable) -> None:
    draft = await make_timetable()

    with pytest.raises(NotFoundError):
        await service.get_published_for_section(db_session, TENANT_ID, draft.section_id, ACADEMIC_YEAR_ID)


@pytest.mark.asyncio
async def test_entry_conflicting_with_other_section_is_rejected(
    db_session: AsyncSession, slots, teachers, make_timetable
) -> None:
    s1 = uuid4()
    t1 = await make_timetable(s1, [(1, slots.p1, teachers.alice)], publish=True)
    t2 = await make_timetable(uuid4())

    with pytest.raises(TeacherConflictError) as exc_info:
        await service.upsert_entry(db_session, TENANT_ID, t2.id, _entry(1, slots.p1, teachers.alice))

    conflicts = exc_info.value.conflicts
    assert len(conflicts) == 1
    assert conflicts[0].timetable_id == t1.id
    assert conflicts[0].section_id == s1
    assert conflicts[0].day_name == "Monday"
    assert conflicts[0].period_name == "Period 1"
    assert conflicts[0].teacher_name == "Alice Rao"
    detail = exc_info.value.to_detail()
    assert detail["code"] == "TEACHER_CONFLICT"
    assert detail["conflicts"][0]["start_time"] == "09:00"

    entries = await service.list_entries(db_session, TENANT_ID, t2.id)
    assert entries.total == 0


@pytest.mark.asyncio
async def test_draft_and_archived_timetables_never_conflict(
    db_session: AsyncSession, slots, teachers, make_timetable
) -> None:
    await make_timetable(uuid4(), [(0, slots.p1, teachers.alice)])
    archived = await make_timetable(uuid4(), [(0, slots.p2, teachers.alice)], publish=True)
    await service.archive_timetable(db_session, TENANT_ID, archived.id)
    t3 = await make_timetable(uuid4())

    await service.upsert_entry(db_session, TENANT_ID, t3.id, _entry(0, slots.p1, teachers.alice))
    await service.upsert_entry(db_session, TENANT_ID, t3.id, _entry(0, slots.p2, teachers.alice))

    entries = await service.list_entries(db_session, TENANT_ID, t3.id)
    assert entries.total == 2


@pytest.mark.asyncio
async def test_publish_rechecks_conflicts(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    # Both drafts book Alice in the same cell; only the first can be published.
    t1 = await make_timetable(uuid4(), [(0, slots.p1, teachers.alice)])
    t2 = await make_timetable(uuid4(), [(0, slots.p1, teachers.alice), (1, slots.p1, teachers.bob)])
    await service.publish_timetable(db_session, TENANT_ID, t1.id)

    with pytest.raises(TeacherConflictError) as exc_info:
        await service.publish_timetable(db_session, TENANT_ID, t2.id)

    assert [c.timetable_id for c in exc_info.value.conflicts] == [t1.id]
    still_draft = await service.get_timetable(db_session, TENANT_ID, t2.id)
    assert still_draft.status == TimetableStatus.DRAFT


@pytest.mark.asyncio
async def test_upsert_same_cell_twice_keeps_one_entry(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    t = await make_timetable()
    subject_id = uuid4()

    first = await service.upsert_entry(
        db_session, TENANT_ID, t.id, _entry(2, slots.p1, teachers.alice, subject_id=subject_id, room_number="101")
    )
    second = await service.upsert_entry(
        db_session, TENANT_ID, t.id, _entry(2, slots.p1, teachers.alice, subject_id=subject_id, room_number="101")
    )

    assert first.id == second.id
    entries = await service.list_entries(db_session, TENANT_ID, t.id)
    assert entries.total == 1


@pytest.mark.asyncio
async def test_upsert_overwrites_occupied_cell(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    t = await make_timetable(entries=[(2, slots.p1, teachers.alice)])

    replaced = await service.upsert_entry(
        db_session, TENANT_ID, t.id, _entry(2, slots.p1, teachers.bob, room_number="Lab")
    )

    entries = await service.list_entries(db_session, TENANT_ID, t.id)
    assert entries.total == 1
    assert entries.items[0].id == replaced.id
    assert entries.items[0].teacher_id == teachers.bob
    assert entries.items[0].room_number == "Lab"


@pytest.mark.asyncio
async def test_free_period_without_teacher(db_session: AsyncSession, slots, make_timetable) -> None:
    t = await make_timetable()

    entry = await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(5, slots.p3, is_free_period=True))

    assert entry.teacher_id is None
    assert entry.is_free_period is True
    assert entry.day_name == "Friday"


@pytest.mark.asyncio
async def test_upsert_validates_day_and_slot(db_session: AsyncSession, slots, make_timetable) -> None:
    t = await make_timetable()

    with pytest.raises(ValidationError):
        await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(7, slots.p1))
    with pytest.raises(NotFoundError):
        await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(0, uuid4()))


@pytest.mark.asyncio
async def test_non_draft_timetable_is_read_only(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    t = await make_timetable(entries=[(0, slots.p1, teachers.alice)], publish=True, name="Original")
    entry_id = (await service.list_entries(db_session, TENANT_ID, t.id)).items[0].id

    with pytest.raises(NotDraftError):
        await service.update_timetable(db_session, TENANT_ID, t.id, TimetableUpdate(name="Renamed"))
    with pytest.raises(NotDraftError):
        await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(1, slots.p1, teachers.bob))
    with pytest.raises(NotDraftError):
        await service.bulk_upsert_entries(db_session, TENANT_ID, t.id, [_entry(1, slots.p1, teachers.bob)])
    with pytest.raises(NotDraftError):
        await service.delete_entry(db_session, TENANT_ID, t.id, entry_id)
    with pytest.raises(NotDraftError):
        await service.delete_timetable(db_session, TENANT_ID, t.id)

    unchanged = await service.get_timetable(db_session, TENANT_ID, t.id)
    assert unchanged.name == "Original"
    assert len(unchanged.entries) == 1


@pytest.mark.asyncio
async def test_update_draft(db_session: AsyncSession, make_timetable) -> None:
    t = await make_timetable()

    updated = await service.update_timetable(
        db_session,
        TENANT_ID,
        t.id,
        TimetableUpdate(name="Term 1", effective_from=date(2026, 4, 1), effective_to=date(2026, 9, 30)),
    )

    assert updated.name == "Term 1"
    assert updated.effective_to == date(2026, 9, 30)

    with pytest.raises(ValidationError):
        await service.update_timetable(db_session, TENANT_ID, t.id, TimetableUpdate(effective_to=date(2026, 3, 1)))


@pytest.mark.asyncio
async def test_archive_from_draft(db_session: AsyncSession, make_timetable) -> None:
    t = await make_timetable()

    archived = await service.archive_timetable(db_session, TENANT_ID, t.id)

    assert archived.status == TimetableStatus.ARCHIVED


@pytest.mark.asyncio
async def test_delete_draft_removes_entries(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    t = await make_timetable(entries=[(0, slots.p1, teachers.alice), (0, slots.p2, teachers.bob)])

    await service.delete_timetable(db_session, TENANT_ID, t.id)

    with pytest.raises(NotFoundError):
        await service.get_timetable(db_session, TENANT_ID, t.id)
    remaining = await db_session.execute(select(TimetableEntry).where(TimetableEntry.timetable_id == t.id))
    assert remaining.scalars().all() == []


@pytest.mark.asyncio
async def test_delete_entry_detaches_substitution_periods(
    db_session: AsyncSession, slots, teachers, make_timetable
) -> None:
    t = await make_timetable(entries=[(1, slots.p1, teachers.alice)])
    entry_id = (await service.list_entries(db_session, TENANT_ID, t.id)).items[0].id
    # Written directly; create_substitution only links published entries.
    substitution = Substitution(
        tenant_id=TENANT_ID,
        branch_id=BRANCH_ID,
        original_teacher_id=teachers.alice,
        substitute_teacher_id=teachers.bob,
        substitution_date=date(2026, 2, 2),
    )
    substitution.periods.append(SubstitutionPeriod(period_slot_id=slots.p1, timetable_entry_id=entry_id))
    db_session.add(substitution)
    await db_session.commit()

    await service.delete_entry(db_session, TENANT_ID, t.id, entry_id)

    periods = (
        await db_session.execute(select(SubstitutionPeriod).execution_options(populate_existing=True))
    ).scalars().all()
    assert len(periods) == 1
    assert periods[0].timetable_entry_id is None


@pytest.mark.asyncio
async def test_bulk_upsert_is_all_or_nothing(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    await make_timetable(uuid4(), [(1, slots.p2, teachers.bob)], publish=True)
    t = await make_timetable(uuid4())

    with pytest.raises(TeacherConflictError) as exc_info:
        await service.bulk_upsert_entries(
            db_session,
            TENANT_ID,
            t.id,
            [_entry(1, slots.p1, teachers.alice), _entry(1, slots.p2, teachers.bob), _entry(1, slots.p3, teachers.carol)],
        )

    assert exc_info.value.message.startswith("Entry 1:")
    entries = await service.list_entries(db_session, TENANT_ID, t.id)
    assert entries.total == 0


@pytest.mark.asyncio
async def test_bulk_upsert_writes_all_entries(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    t = await make_timetable()

    result = await service.bulk_upsert_entries(
        db_session,
        TENANT_ID,
        t.id,
        [_entry(1, slots.p3, teachers.alice), _entry(0, slots.p2, teachers.bob), _entry(0, slots.p1, teachers.alice)],
    )

    assert result.total == 3
    assert [(e.day_of_week, e.period_name) for e in result.items] == [
        (0, "Period 1"),
        (0, "Period 2"),
        (1, "Period 3"),
    ]


@pytest.mark.asyncio
async def test_teacher_schedule_covers_published_only(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    s1 = uuid4()
    await make_timetable(s1, [(1, slots.p1, teachers.alice), (0, slots.p3, teachers.alice)], publish=True)
    await make_timetable(uuid4(), [(0, slots.p1, teachers.alice), (0, slots.p2, teachers.bob)], publish=True)
    await make_timetable(uuid4(), [(2, slots.p1, teachers.alice)])

    schedule = await service.get_teacher_schedule(db_session, TENANT_ID, teachers.alice, ACADEMIC_YEAR_ID)

    assert schedule.total == 3
    assert [(e.day_of_week, e.period_name) for e in schedule.items] == [
        (0, "Period 1"),
        (0, "Period 3"),
        (1, "Period 1"),
    ]
    assert schedule.items[1].section_id == s1

    other_year = await service.get_teacher_schedule(db_session, TENANT_ID, teachers.alice, uuid4())
    assert other_year.total == 0


@pytest.mark.asyncio
async def test_my_schedule_resolves_staff_from_user(db_session: AsyncSession, slots, teachers, make_timetable) -> None:
    await make_timetable(entries=[(3, slots.p2, teachers.alice)], publish=True)

    mine = await service.get_my_schedule(db_session, TENANT_ID, teachers.alice_user_id, ACADEMIC_YEAR_ID)

    assert mine.teacher_id == teachers.alice
    assert mine.total == 1

    with pytest.raises(NotFoundError):
        await service.get_my_schedule(db_session, TENANT_ID, uuid4(), ACADEMIC_YEAR_ID)


@pytest.mark.asyncio
async def test_list_timetables_filters(db_session: AsyncSession, make_timetable) -> None:
    section_id = uuid4()
    await make_timetable(section_id, publish=True)
    await make_timetable(section_id)
    await make_timetable(uuid4())

    by_section = await service.list_timetables(db_session, TENANT_ID, section_id=section_id)
    drafts = await service.list_timetables(db_session, TENANT_ID, status="draft")
    page = await service.list_timetables(db_session, TENANT_ID, limit=1)

    assert by_section.total == 2
    assert drafts.total == 2
    assert page.total == 3
    assert len(page.items) == 1


# ----- Unique-constraint races -----

@pytest.fixture()
def commit_fails_once(db_session: AsyncSession, monkeypatch):
    """The next commit hits a unique violation, as if a concurrent writer got there first."""
    real_commit = db_session.commit
    calls = []

    async def commit() -> None:
        calls.append(True)
        if len(calls) == 1:
            await db_session.flush()
            raise IntegrityError("INSERT", {}, Exception("duplicate key value violates unique constraint"))
        await real_commit()

    def arm() -> None:
        monkeypatch.setattr(db_session, "commit", commit)

    return arm


@pytest.mark.asyncio
async def test_upsert_entry_race_maps_to_conflict(
    db_session: AsyncSession, slots, teachers, make_timetable, commit_fails_once
) -> None:
    t = await make_timetable()
    commit_fails_once()

    with pytest.raises(ConflictError) as exc_info:
        await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(1, slots.p1, teachers.alice))

    assert exc_info.value.code == "CONFLICT"
    assert (await service.list_entries(db_session, TENANT_ID, t.id)).total == 0
    retried = await service.upsert_entry(db_session, TENANT_ID, t.id, _entry(1, slots.p1, teachers.alice))
    assert retried.teacher_id == teachers.alice


@pytest.mark.asyncio
async def test_bulk_upsert_race_maps_to_conflict(
    db_session: AsyncSession, slots, teachers, make_timetable, commit_fails_once
) -> None:
    t = await make_timetable()
    commit_fails_once()

    with pytest.raises(ConflictError) as exc_info:
        await service.bulk_upsert_entries(
            db_session, TENANT_ID, t.id, [_entry(1, slots.p1, teachers.alice), _entry(1, slots.p2, teachers.bob)]
        )

    assert exc_info.value.code == "CONFLICT"
    assert (await service.list_entries(db_session, TENANT_ID, t.id)).total == 0


@pytest.mark.asyncio
async def test_publish_race_maps_to_conflict_and_keeps_previous_version(
    db_session: AsyncSession, slots, teachers, make_timetable, commit_fails_once
) -> None:
    section_id = uuid4()
    v1 = await make_timetable(section_id, [(1, slots.p1, teachers.alice)], publish=True, name="v1")
    v2 = await make_timetable(section_id, [(1, slots.p2, teachers.alice)], name="v2")
    commit_fails_once()

    with pytest.raises(ConflictError) as exc_info:
        await service.publish_timetable(db_session, TENANT_ID, v2.id)

    assert exc_info.value.code == "CONFLICT"
    assert "concurrently" in exc_info.value.message
    assert (await service.get_timetable(db_session, TENANT_ID, v1.id)).status == TimetableStatus.PUBLISHED
    assert (await service.get_timetable(db_session, TENANT_ID, v2.id)).status == TimetableStatus.DRAFT
    assert await _published_count(db_session, section_id) == 1
