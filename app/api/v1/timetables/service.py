"""
Timetable lifecycle: draft -> published -> archived.

Only drafts are edited. Publishing archives the published sibling for the same
(section, academic year) in the same transaction, so at most one timetable per
section and year is ever published. Every entry that names a teacher is checked
against the conflict detector before it is written.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import TimetableStatus
from app.core.exceptions import (
    AlreadyPublishedError,
    ConflictError,
    NotDraftError,
    NotFoundError,
    TeacherConflictError,
    ValidationError,
)
from app.core.models import PeriodSlot, Staff, SubstitutionPeriod, Timetable, TimetableEntry
from app.core.weekdays import day_name, validate_day_of_week
from app.db.locks import acquire_xact_lock

from . import conflicts
from .schemas import (
    TeacherConflict,
    TeacherScheduleEntry,
    TeacherScheduleResponse,
    TimetableCreate,
    TimetableDetailResponse,
    TimetableEntryListResponse,
    TimetableEntryResponse,
    TimetableEntryUpsert,
    TimetableListResponse,
    TimetableResponse,
    TimetableUpdate,
)

logger = logging.getLogger(__name__)


def _to_response(t: Timetable) -> TimetableResponse:
    return TimetableResponse.model_validate(t)


def _entry_to_response(e: TimetableEntry, slot: Optional[PeriodSlot]) -> TimetableEntryResponse:
    return TimetableEntryResponse(
        id=e.id,
        timetable_id=e.timetable_id,
        day_of_week=e.day_of_week,
        day_name=day_name(e.day_of_week),
        period_slot_id=e.period_slot_id,
        period_name=slot.name if slot else None,
        start_time=slot.start_time if slot else None,
        end_time=slot.end_time if slot else None,
        subject_id=e.subject_id,
        teacher_id=e.teacher_id,
        room_number=e.room_number,
        notes=e.notes,
        is_free_period=e.is_free_period,
        updated_at=e.updated_at,
    )


def _check_effective_dates(effective_from, effective_to) -> None:
    if effective_from and effective_to and effective_to < effective_from:
        raise ValidationError("effective_to must not be before effective_from")


async def _get_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    for_update: bool = False,
) -> Timetable:
    stmt = select(Timetable).where(Timetable.id == timetable_id, Timetable.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Timetable not found")
    return obj


async def _get_draft(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> Timetable:
    obj = await _get_timetable(db, tenant_id, timetable_id, for_update=True)
    if obj.status != TimetableStatus.DRAFT.value:
        raise NotDraftError()
    return obj


async def _load_entries(db: AsyncSession, timetable_id: UUID) -> List[TimetableEntryResponse]:
    result = await db.execute(
        select(TimetableEntry, PeriodSlot)
        .join(PeriodSlot, PeriodSlot.id == TimetableEntry.period_slot_id)
        .where(TimetableEntry.timetable_id == timetable_id)
        .order_by(TimetableEntry.day_of_week, PeriodSlot.display_order, PeriodSlot.start_time)
    )
    return [_entry_to_response(e, slot) for e, slot in result.all()]


async def _to_detail(db: AsyncSession, t: Timetable) -> TimetableDetailResponse:
    entries = await _load_entries(db, t.id)
    return TimetableDetailResponse(**_to_response(t).model_dump(), entries=entries)


def _is_superseded_by(conflict: TeacherConflict, timetable: Timetable) -> bool:
    """Conflicts with the version of the same section/year are dropped: publishing archives it."""
    return conflict.section_id == timetable.section_id and conflict.academic_year_id == timetable.academic_year_id


async def _blocking_conflicts(
    db: AsyncSession,
    timetable: Timetable,
    teacher_id: UUID,
    day_of_week: int,
    period_slot_id: UUID,
) -> List[TeacherConflict]:
    found = await conflicts.find_teacher_conflicts(
        db,
        timetable.tenant_id,
        teacher_id,
        day_of_week,
        period_slot_id,
        exclude_timetable_id=timetable.id,
    )
    return [c for c in found if not _is_superseded_by(c, timetable)]


# ----- Timetables -----

async def list_timetables(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: Optional[UUID] = None,
    section_id: Optional[UUID] = None,
    academic_year_id: Optional[UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> TimetableListResponse:
    stmt = select(Timetable).where(Timetable.tenant_id == tenant_id)
    if branch_id is not None:
        stmt = stmt.where(Timetable.branch_id == branch_id)
    if section_id is not None:
        stmt = stmt.where(Timetable.section_id == section_id)
    if academic_year_id is not None:
        stmt = stmt.where(Timetable.academic_year_id == academic_year_id)
    if status is not None:
        stmt = stmt.where(Timetable.status == status)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = stmt.order_by(Timetable.created_at.desc(), Timetable.id).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return TimetableListResponse(items=[_to_response(t) for t in result.scalars().all()], total=total)


async def get_timetable(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> TimetableDetailResponse:
    obj = await _get_timetable(db, tenant_id, timetable_id)
    return await _to_detail(db, obj)


async def get_published_for_section(
    db: AsyncSession,
    tenant_id: UUID,
    section_id: UUID,
    academic_year_id: UUID,
) -> TimetableDetailResponse:
    result = await db.execute(
        select(Timetable).where(
            Timetable.tenant_id == tenant_id,
            Timetable.section_id == section_id,
            Timetable.academic_year_id == academic_year_id,
            Timetable.status == TimetableStatus.PUBLISHED.value,
        )
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("No published timetable for this section and academic year")
    return await _to_detail(db, obj)


async def create_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    payload: TimetableCreate,
    created_by: Optional[UUID] = None,
) -> TimetableResponse:
    _check_effective_dates(payload.effective_from, payload.effective_to)
    obj = Timetable(
        tenant_id=tenant_id,
        branch_id=payload.branch_id,
        section_id=payload.section_id,
        academic_year_id=payload.academic_year_id,
        name=payload.name.strip(),
        description=payload.description,
        status=TimetableStatus.DRAFT.value,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        created_by=created_by,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj)


async def update_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    payload: TimetableUpdate,
) -> TimetableResponse:
    obj = await _get_draft(db, tenant_id, timetable_id)
    effective_from = payload.effective_from if payload.effective_from is not None else obj.effective_from
    effective_to = payload.effective_to if payload.effective_to is not None else obj.effective_to
    _check_effective_dates(effective_from, effective_to)

    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.description is not None:
        obj.description = payload.description
    obj.effective_from = effective_from
    obj.effective_to = effective_to
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj)


async def publish_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    published_by: Optional[UUID] = None,
) -> TimetableResponse:
    """Archive the published sibling and publish this draft as one unit of work."""
    obj = await _get_timetable(db, tenant_id, timetable_id, for_update=True)
    if obj.status != TimetableStatus.DRAFT.value:
        raise AlreadyPublishedError()

    entries = await db.execute(
        select(TimetableEntry).where(
            TimetableEntry.timetable_id == obj.id,
            TimetableEntry.teacher_id.is_not(None),
        )
    )
    teacher_entries = entries.scalars().all()
    await _lock_teacher_cells(db, tenant_id, teacher_entries)
    found: List[TeacherConflict] = []
    for e in teacher_entries:
        found.extend(await _blocking_conflicts(db, obj, e.teacher_id, e.day_of_week, e.period_slot_id))
    if found:
        await db.rollback()
        logger.warning("Publish of timetable %s rejected: %d teacher conflict(s)", timetable_id, len(found))
        raise TeacherConflictError("Timetable has teacher conflicts with other published timetables", found)

    siblings = await db.execute(
        select(Timetable)
        .where(
            Timetable.tenant_id == tenant_id,
            Timetable.section_id == obj.section_id,
            Timetable.academic_year_id == obj.academic_year_id,
            Timetable.status == TimetableStatus.PUBLISHED.value,
            Timetable.id != obj.id,
        )
        .with_for_update()
    )
    archived = []
    for sibling in siblings.scalars().all():
        sibling.status = TimetableStatus.ARCHIVED.value
        archived.append(sibling.id)
    # The sibling must leave the published set before this one enters it.
    await db.flush()

    obj.status = TimetableStatus.PUBLISHED.value
    obj.published_at = datetime.utcnow()
    obj.published_by = published_by
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Another timetable was published for this section concurrently")
    await db.refresh(obj)
    logger.info(
        "Timetable %s published for section %s (archived: %s)",
        obj.id,
        obj.section_id,
        ", ".join(str(a) for a in archived) or "none",
    )
    return _to_response(obj)


async def archive_timetable(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> TimetableResponse:
    obj = await _get_timetable(db, tenant_id, timetable_id, for_update=True)
    previous = obj.status
    obj.status = TimetableStatus.ARCHIVED.value
    await db.commit()
    await db.refresh(obj)
    logger.info("Timetable %s archived (was %s)", obj.id, previous)
    return _to_response(obj)


async def _detach_substitution_periods(db: AsyncSession, entry_ids: Iterable[UUID]) -> None:
    ids = list(entry_ids)
    if not ids:
        return
    await db.execute(
        update(SubstitutionPeriod)
        .where(SubstitutionPeriod.timetable_entry_id.in_(ids))
        .values(timetable_entry_id=None)
    )


async def delete_timetable(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> None:
    obj = await _get_draft(db, tenant_id, timetable_id)
    entry_ids = (
        await db.execute(select(TimetableEntry.id).where(TimetableEntry.timetable_id == obj.id))
    ).scalars().all()
    await _detach_substitution_periods(db, entry_ids)
    for entry in (await db.execute(select(TimetableEntry).where(TimetableEntry.timetable_id == obj.id))).scalars():
        await db.delete(entry)
    await db.flush()
    await db.delete(obj)
    await db.commit()
    logger.info("Draft timetable %s deleted with %d entries", timetable_id, len(entry_ids))


# ----- Entries -----

async def list_entries(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> TimetableEntryListResponse:
    await _get_timetable(db, tenant_id, timetable_id)
    items = await _load_entries(db, timetable_id)
    return TimetableEntryListResponse(items=items, total=len(items))


async def _get_period_slot(db: AsyncSession, tenant_id: UUID, period_slot_id: UUID) -> PeriodSlot:
    result = await db.execute(
        select(PeriodSlot).where(PeriodSlot.id == period_slot_id, PeriodSlot.tenant_id == tenant_id)
    )
    slot = result.scalar_one_or_none()
    if not slot:
        raise NotFoundError("Period slot not found")
    return slot


async def _write_entry(
    db: AsyncSession,
    timetable: Timetable,
    payload: TimetableEntryUpsert,
) -> Tuple[TimetableEntry, PeriodSlot]:
    """Check and stage one upsert keyed on (timetable, day, slot). Flushes, never commits."""
    validate_day_of_week(payload.day_of_week)
    slot = await _get_period_slot(db, timetable.tenant_id, payload.period_slot_id)

    if payload.teacher_id is not None:
        found = await _blocking_conflicts(db, timetable, payload.teacher_id, payload.day_of_week, slot.id)
        if found:
            logger.warning(
                "Entry rejected: teacher %s already committed on %s, slot %s",
                payload.teacher_id,
                day_name(payload.day_of_week),
                slot.name,
            )
            raise TeacherConflictError(
                f"Teacher is already assigned on {day_name(payload.day_of_week)} during {slot.name}",
                found,
            )

    result = await db.execute(
        select(TimetableEntry).where(
            TimetableEntry.timetable_id == timetable.id,
            TimetableEntry.day_of_week == payload.day_of_week,
            TimetableEntry.period_slot_id == slot.id,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = TimetableEntry(
            tenant_id=timetable.tenant_id,
            timetable_id=timetable.id,
            day_of_week=payload.day_of_week,
            period_slot_id=slot.id,
        )
        db.add(entry)
    entry.subject_id = payload.subject_id
    entry.teacher_id = payload.teacher_id
    entry.room_number = payload.room_number
    entry.notes = payload.notes
    entry.is_free_period = payload.is_free_period
    await db.flush()
    return entry, slot


async def _lock_teacher_cells(db: AsyncSession, tenant_id: UUID, cells: Iterable) -> None:
    """Lock (teacher, day, slot) for every entry or upsert payload that names a teacher."""
    # Sorted so concurrent writers take locks in the same order.
    keys = sorted(
        {(str(c.teacher_id), c.day_of_week, str(c.period_slot_id)) for c in cells if c.teacher_id is not None}
    )
    for teacher_id, day_of_week, period_slot_id in keys:
        await acquire_xact_lock(db, tenant_id, teacher_id, day_of_week, period_slot_id)


async def upsert_entry(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    payload: TimetableEntryUpsert,
) -> TimetableEntryResponse:
    try:
        timetable = await _get_draft(db, tenant_id, timetable_id)
        await _lock_teacher_cells(db, tenant_id, [payload])
        entry, slot = await _write_entry(db, timetable, payload)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Timetable entry was written concurrently; retry")
    except Exception:
        await db.rollback()
        raise
    await db.refresh(entry)
    return _entry_to_response(entry, slot)


async def bulk_upsert_entries(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    payloads: List[TimetableEntryUpsert],
) -> TimetableEntryListResponse:
    """All-or-nothing: the first failing entry aborts the batch and is reported with its position."""
    try:
        timetable = await _get_draft(db, tenant_id, timetable_id)
        await _lock_teacher_cells(db, tenant_id, payloads)
        for index, payload in enumerate(payloads):
            try:
                await _write_entry(db, timetable, payload)
            except TeacherConflictError as e:
                raise TeacherConflictError(f"Entry {index}: {e.message}", e.conflicts)
            except (NotFoundError, ValidationError) as e:
                raise type(e)(f"Entry {index}: {e.message}")
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Timetable entries were written concurrently; retry")
    except Exception:
        await db.rollback()
        raise
    items = await _load_entries(db, timetable_id)
    return TimetableEntryListResponse(items=items, total=len(items))


async def delete_entry(db: AsyncSession, tenant_id: UUID, timetable_id: UUID, entry_id: UUID) -> None:
    timetable = await _get_draft(db, tenant_id, timetable_id)
    result = await db.execute(
        select(TimetableEntry).where(
            TimetableEntry.id == entry_id,
            TimetableEntry.timetable_id == timetable.id,
        )
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFoundError("Timetable entry not found")
    await _detach_substitution_periods(db, [entry.id])
    await db.delete(entry)
    await db.commit()


# ----- Queries -----

async def check_conflicts(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    day_of_week: int,
    period_slot_id: UUID,
    exclude_timetable_id: Optional[UUID] = None,
) -> List[TeacherConflict]:
    validate_day_of_week(day_of_week)
    return await conflicts.find_teacher_conflicts(
        db, tenant_id, teacher_id, day_of_week, period_slot_id, exclude_timetable_id=exclude_timetable_id
    )


async def _published_entries_for_teacher(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    *criteria,
    day_of_week: Optional[int] = None,
) -> List[TeacherScheduleEntry]:
    result = await db.execute(
        select(TimetableEntry, PeriodSlot, Timetable)
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .join(PeriodSlot, PeriodSlot.id == TimetableEntry.period_slot_id)
        .where(*conflicts.published_commitments(tenant_id, teacher_id, day_of_week), *criteria)
        .order_by(TimetableEntry.day_of_week, PeriodSlot.display_order, PeriodSlot.start_time)
    )
    return [
        TeacherScheduleEntry(
            **_entry_to_response(e, slot).model_dump(),
            timetable_name=t.name,
            section_id=t.section_id,
            academic_year_id=t.academic_year_id,
        )
        for e, slot, t in result.all()
    ]


async def get_teacher_day_entries(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    day_of_week: int,
) -> List[TeacherScheduleEntry]:
    """Published entries of the teacher on one weekday, in slot order."""
    validate_day_of_week(day_of_week)
    return await _published_entries_for_teacher(db, tenant_id, teacher_id, day_of_week=day_of_week)


async def get_teacher_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    academic_year_id: UUID,
) -> TeacherScheduleResponse:
    """The teacher's entries across published timetables, ordered by day then slot."""
    items = await _published_entries_for_teacher(
        db, tenant_id, teacher_id, Timetable.academic_year_id == academic_year_id
    )
    return TeacherScheduleResponse(
        teacher_id=teacher_id,
        academic_year_id=academic_year_id,
        items=items,
        total=len(items),
    )


async def get_staff_id_for_user(db: AsyncSession, tenant_id: UUID, user_id: UUID) -> UUID:
    result = await db.execute(select(Staff.id).where(Staff.tenant_id == tenant_id, Staff.user_id == user_id))
    staff_id = result.scalars().first()
    if staff_id is None:
        raise NotFoundError("No staff record linked to this user")
    return staff_id


async def get_my_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    user_id: UUID,
    academic_year_id: UUID,
) -> TeacherScheduleResponse:
    staff_id = await get_staff_id_for_user(db, tenant_id, user_id)
    return await get_teacher_schedule(db, tenant_id, staff_id, academic_year_id)
