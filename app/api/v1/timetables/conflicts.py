"""
Teacher conflict detection. Read-only; no locking beyond the caller's transaction.

A teacher is committed at (day_of_week, period_slot) when a published timetable
has an entry for them there. On a calendar date they are also committed where a
non-cancelled substitution names them as the substitute for that slot. Draft and
archived timetables never commit anyone.

Both the timetable lifecycle and the substitution workflow ask these functions;
nothing else in the code base decides whether a teacher is free.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import SubstitutionStatus, TimetableStatus
from app.core.models import PeriodSlot, Staff, Substitution, SubstitutionPeriod, Timetable, TimetableEntry
from app.core.weekdays import day_name, day_of_week_for

from .schemas import TeacherConflict


def published_commitments(tenant_id: UUID, teacher_id: Optional[UUID] = None, day_of_week: Optional[int] = None):
    """WHERE clauses selecting entries of published timetables. Join Timetable before applying."""
    clauses = [
        TimetableEntry.tenant_id == tenant_id,
        TimetableEntry.teacher_id.is_not(None),
        Timetable.status == TimetableStatus.PUBLISHED.value,
    ]
    if teacher_id is not None:
        clauses.append(TimetableEntry.teacher_id == teacher_id)
    if day_of_week is not None:
        clauses.append(TimetableEntry.day_of_week == day_of_week)
    return clauses


def _active_substitutions(tenant_id: UUID, on_date: date):
    return [
        Substitution.tenant_id == tenant_id,
        Substitution.substitution_date == on_date,
        Substitution.status != SubstitutionStatus.CANCELLED.value,
    ]


async def find_teacher_conflicts(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    day_of_week: int,
    period_slot_id: UUID,
    exclude_timetable_id: Optional[UUID] = None,
) -> List[TeacherConflict]:
    """Every published entry that commits the teacher at (day_of_week, period_slot_id).
    Unordered; callers treat the result as a set."""
    stmt = (
        select(TimetableEntry, Timetable, PeriodSlot, Staff)
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .join(PeriodSlot, PeriodSlot.id == TimetableEntry.period_slot_id)
        .outerjoin(Staff, Staff.id == TimetableEntry.teacher_id)
        .where(
            *published_commitments(tenant_id, teacher_id, day_of_week),
            TimetableEntry.period_slot_id == period_slot_id,
        )
    )
    if exclude_timetable_id is not None:
        stmt = stmt.where(TimetableEntry.timetable_id != exclude_timetable_id)
    result = await db.execute(stmt)
    return [
        TeacherConflict(
            entry_id=e.id,
            timetable_id=t.id,
            timetable_name=t.name,
            section_id=t.section_id,
            academic_year_id=t.academic_year_id,
            subject_id=e.subject_id,
            teacher_id=e.teacher_id,
            teacher_name=staff.full_name if staff else None,
            day_of_week=e.day_of_week,
            day_name=day_name(e.day_of_week),
            period_slot_id=slot.id,
            period_name=slot.name,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )
        for e, t, slot, staff in result.all()
    ]


async def find_busy_slots(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    day_of_week: int,
    period_slot_ids: Sequence[UUID],
) -> List[UUID]:
    """Subset of period_slot_ids at which the teacher has a published entry on day_of_week."""
    if not period_slot_ids:
        return []
    result = await db.execute(
        select(TimetableEntry.period_slot_id)
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .where(
            *published_commitments(tenant_id, teacher_id, day_of_week),
            TimetableEntry.period_slot_id.in_(list(period_slot_ids)),
        )
        .distinct()
    )
    return list(result.scalars().all())


async def find_substitute_conflicts(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    on_date: date,
    period_slot_ids: Sequence[UUID],
    exclude_substitution_id: Optional[UUID] = None,
) -> List[UUID]:
    """Requested slots at which the teacher cannot substitute on on_date: a published entry on
    that weekday, or an active substitution already naming them as the substitute."""
    if not period_slot_ids:
        return []
    busy = set(await find_busy_slots(db, tenant_id, teacher_id, day_of_week_for(on_date), period_slot_ids))

    stmt = (
        select(SubstitutionPeriod.period_slot_id)
        .join(Substitution, Substitution.id == SubstitutionPeriod.substitution_id)
        .where(
            *_active_substitutions(tenant_id, on_date),
            Substitution.substitute_teacher_id == teacher_id,
            SubstitutionPeriod.period_slot_id.in_(list(period_slot_ids)),
        )
    )
    if exclude_substitution_id is not None:
        stmt = stmt.where(Substitution.id != exclude_substitution_id)
    result = await db.execute(stmt)
    busy.update(result.scalars().all())
    return [p for p in period_slot_ids if p in busy]


async def find_covered_slots(
    db: AsyncSession,
    tenant_id: UUID,
    original_teacher_id: UUID,
    on_date: date,
    period_slot_ids: Sequence[UUID],
    exclude_substitution_id: Optional[UUID] = None,
) -> List[UUID]:
    """Requested slots of the absent teacher already covered by an active substitution on on_date."""
    if not period_slot_ids:
        return []
    stmt = (
        select(SubstitutionPeriod.period_slot_id)
        .join(Substitution, Substitution.id == SubstitutionPeriod.substitution_id)
        .where(
            *_active_substitutions(tenant_id, on_date),
            Substitution.original_teacher_id == original_teacher_id,
            SubstitutionPeriod.period_slot_id.in_(list(period_slot_ids)),
        )
    )
    if exclude_substitution_id is not None:
        stmt = stmt.where(Substitution.id != exclude_substitution_id)
    result = await db.execute(stmt)
    covered = set(result.scalars().all())
    return [p for p in period_slot_ids if p in covered]


async def count_committed_periods(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_ids: Iterable[UUID],
    day_of_week: int,
) -> Dict[UUID, int]:
    """Published entries per teacher on day_of_week. Teachers without entries are absent from the map."""
    ids = list(teacher_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(TimetableEntry.teacher_id, func.count(TimetableEntry.id))
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .where(
            *published_commitments(tenant_id, day_of_week=day_of_week),
            TimetableEntry.teacher_id.in_(ids),
        )
        .group_by(TimetableEntry.teacher_id)
    )
    return {teacher_id: count for teacher_id, count in result.all()}


async def find_substitute_conflicts_by_teacher(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_ids: Iterable[UUID],
    on_date: date,
    period_slot_ids: Sequence[UUID],
) -> Dict[UUID, List[UUID]]:
    """find_substitute_conflicts for many teachers in two queries. Teachers who are free at
    every requested slot are absent from the map; each list keeps the request order."""
    ids = list(teacher_ids)
    slots = list(period_slot_ids)
    if not ids or not slots:
        return {}
    busy: Dict[UUID, set] = {}

    entries = await db.execute(
        select(TimetableEntry.teacher_id, TimetableEntry.period_slot_id)
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .where(
            *published_commitments(tenant_id, day_of_week=day_of_week_for(on_date)),
            TimetableEntry.teacher_id.in_(ids),
            TimetableEntry.period_slot_id.in_(slots),
        )
    )
    for teacher_id, slot_id in entries.all():
        busy.setdefault(teacher_id, set()).add(slot_id)

    covering = await db.execute(
        select(Substitution.substitute_teacher_id, SubstitutionPeriod.period_slot_id)
        .join(Substitution, Substitution.id == SubstitutionPeriod.substitution_id)
        .where(
            *_active_substitutions(tenant_id, on_date),
            Substitution.substitute_teacher_id.in_(ids),
            SubstitutionPeriod.period_slot_id.in_(slots),
        )
    )
    for teacher_id, slot_id in covering.all():
        busy.setdefault(teacher_id, set()).add(slot_id)

    return {teacher_id: [p for p in slots if p in taken] for teacher_id, taken in busy.items()}
