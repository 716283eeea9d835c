"""
Teacher substitutions: pending -> confirmed, pending|confirmed -> cancelled.

Creating a substitution, or moving it to a new substitute, validates inside the
same transaction that writes it, under locks keyed on (teacher, date) for both
teachers. Two requests for the same substitute on the same date therefore
serialize, and the second one sees the first.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.day_patterns.service import get_assigned_day_pattern
from app.api.v1.timetables import conflicts
from app.api.v1.timetables.service import get_teacher_day_entries
from app.core.config import settings
from app.core.enums import StaffType, SubstitutionStatus
from app.core.exceptions import (
    NotCancellableError,
    NotFoundError,
    NotPendingError,
    SubstituteConflictError,
    SubstitutionConflictError,
    ValidationError,
)
from app.core.models import PeriodSlot, Staff, Substitution, SubstitutionPeriod, Timetable, TimetableEntry
from app.core.weekdays import day_name, day_of_week_for
from app.db.locks import acquire_xact_lock

from .schemas import (
    AbsencePeriodsResponse,
    AvailableTeacher,
    AvailableTeachersResponse,
    SubstitutionCreate,
    SubstitutionListResponse,
    SubstitutionPeriodResponse,
    SubstitutionResponse,
    SubstitutionUpdate,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (SubstitutionStatus.PENDING.value, SubstitutionStatus.CONFIRMED.value)


async def _staff_names(db: AsyncSession, staff_ids: Iterable[UUID]) -> Dict[UUID, str]:
    ids = list(set(staff_ids))
    if not ids:
        return {}
    result = await db.execute(select(Staff).where(Staff.id.in_(ids)))
    return {s.id: s.full_name for s in result.scalars().all()}


async def _slots_by_id(db: AsyncSession, slot_ids: Iterable[UUID]) -> Dict[UUID, PeriodSlot]:
    ids = list(set(slot_ids))
    if not ids:
        return {}
    result = await db.execute(select(PeriodSlot).where(PeriodSlot.id.in_(ids)))
    return {s.id: s for s in result.scalars().all()}


async def _to_responses(db: AsyncSession, subs: Sequence[Substitution]) -> List[SubstitutionResponse]:
    names = await _staff_names(
        db, [s.original_teacher_id for s in subs] + [s.substitute_teacher_id for s in subs]
    )
    slots = await _slots_by_id(db, [p.period_slot_id for s in subs for p in s.periods])

    def _slot_order(p: SubstitutionPeriod):
        slot = slots.get(p.period_slot_id)
        return (slot.display_order, slot.start_time) if slot else (0, p.created_at.time())

    def _period(p: SubstitutionPeriod) -> SubstitutionPeriodResponse:
        slot = slots.get(p.period_slot_id)
        return SubstitutionPeriodResponse(
            id=p.id,
            period_slot_id=p.period_slot_id,
            period_name=slot.name if slot else None,
            start_time=slot.start_time if slot else None,
            end_time=slot.end_time if slot else None,
            timetable_entry_id=p.timetable_entry_id,
            subject_id=p.subject_id,
            section_id=p.section_id,
            room_number=p.room_number,
            notes=p.notes,
        )

    return [
        SubstitutionResponse(
            id=s.id,
            tenant_id=s.tenant_id,
            branch_id=s.branch_id,
            original_teacher_id=s.original_teacher_id,
            original_teacher_name=names.get(s.original_teacher_id),
            substitute_teacher_id=s.substitute_teacher_id,
            substitute_teacher_name=names.get(s.substitute_teacher_id),
            substitution_date=s.substitution_date,
            day_of_week=day_of_week_for(s.substitution_date),
            reason=s.reason,
            notes=s.notes,
            status=s.status,
            created_by=s.created_by,
            approved_by=s.approved_by,
            approved_at=s.approved_at,
            periods=[_period(p) for p in sorted(s.periods, key=_slot_order)],
            created_at=s.created_at,
            updated_at=s.updated_at,
        )
        for s in subs
    ]


async def _to_response(db: AsyncSession, s: Substitution) -> SubstitutionResponse:
    return (await _to_responses(db, [s]))[0]


async def _get_substitution(
    db: AsyncSession,
    tenant_id: UUID,
    substitution_id: UUID,
    for_update: bool = False,
) -> Substitution:
    stmt = (
        select(Substitution)
        .options(selectinload(Substitution.periods))
        .where(Substitution.id == substitution_id, Substitution.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Substitution not found")
    return obj


async def _reload(db: AsyncSession, tenant_id: UUID, substitution_id: UUID) -> SubstitutionResponse:
    return await _to_response(db, await _get_substitution(db, tenant_id, substitution_id))


async def _lock_teacher_dates(db: AsyncSession, tenant_id: UUID, on_date: date, *teacher_ids: UUID) -> None:
    # Sorted so two requests naming the same pair lock in the same order.
    for teacher_id in sorted({str(t) for t in teacher_ids}):
        await acquire_xact_lock(db, tenant_id, teacher_id, on_date.isoformat())


async def _ensure_original_not_covered(
    db: AsyncSession,
    tenant_id: UUID,
    original_teacher_id: UUID,
    on_date: date,
    period_slot_ids: Sequence[UUID],
    exclude_substitution_id: Optional[UUID] = None,
) -> None:
    covered = await conflicts.find_covered_slots(
        db, tenant_id, original_teacher_id, on_date, period_slot_ids, exclude_substitution_id
    )
    if covered:
        logger.warning(
            "Substitution rejected: teacher %s already covered on %s for %d period(s)",
            original_teacher_id,
            on_date,
            len(covered),
        )
        raise SubstitutionConflictError()


async def _ensure_substitute_free(
    db: AsyncSession,
    tenant_id: UUID,
    substitute_teacher_id: UUID,
    on_date: date,
    period_slot_ids: Sequence[UUID],
    exclude_substitution_id: Optional[UUID] = None,
) -> None:
    busy = await conflicts.find_substitute_conflicts(
        db, tenant_id, substitute_teacher_id, on_date, period_slot_ids, exclude_substitution_id
    )
    if busy:
        logger.warning(
            "Substitution rejected: substitute %s busy on %s for %d period(s)",
            substitute_teacher_id,
            on_date,
            len(busy),
        )
        raise SubstituteConflictError(period_slot_ids=busy)


async def _displaced_entries(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    day_of_week: int,
    period_slot_ids: Sequence[UUID],
) -> Dict[UUID, tuple]:
    """period_slot_id -> (entry, timetable) for the absent teacher's published entries that day."""
    result = await db.execute(
        select(TimetableEntry, Timetable)
        .join(Timetable, Timetable.id == TimetableEntry.timetable_id)
        .where(
            *conflicts.published_commitments(tenant_id, teacher_id, day_of_week),
            TimetableEntry.period_slot_id.in_(list(period_slot_ids)),
        )
    )
    return {e.period_slot_id: (e, t) for e, t in result.all()}


# ----- Queries -----

async def list_substitutions(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: Optional[UUID] = None,
    original_teacher_id: Optional[UUID] = None,
    substitute_teacher_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> SubstitutionListResponse:
    stmt = select(Substitution).where(Substitution.tenant_id == tenant_id)
    if branch_id is not None:
        stmt = stmt.where(Substitution.branch_id == branch_id)
    if original_teacher_id is not None:
        stmt = stmt.where(Substitution.original_teacher_id == original_teacher_id)
    if substitute_teacher_id is not None:
        stmt = stmt.where(Substitution.substitute_teacher_id == substitute_teacher_id)
    if start_date is not None:
        stmt = stmt.where(Substitution.substitution_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Substitution.substitution_date <= end_date)
    if status is not None:
        stmt = stmt.where(Substitution.status == status)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = (
        stmt.options(selectinload(Substitution.periods))
        .order_by(Substitution.substitution_date.desc(), Substitution.created_at.desc(), Substitution.id)
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    items = await _to_responses(db, result.scalars().all())
    return SubstitutionListResponse(items=items, total=total)


async def get_substitution(db: AsyncSession, tenant_id: UUID, substitution_id: UUID) -> SubstitutionResponse:
    return await _to_response(db, await _get_substitution(db, tenant_id, substitution_id))


# ----- Workflow -----

async def create_substitution(
    db: AsyncSession,
    tenant_id: UUID,
    payload: SubstitutionCreate,
    created_by: Optional[UUID] = None,
) -> SubstitutionResponse:
    """Record a pending substitution and all its periods, or nothing."""
    if payload.original_teacher_id == payload.substitute_teacher_id:
        raise ValidationError("Substitute teacher must differ from the original teacher")
    if not payload.periods:
        raise ValidationError("At least one period is required")
    slot_ids = [p.period_slot_id for p in payload.periods]
    if len(set(slot_ids)) != len(slot_ids):
        raise ValidationError("Each period slot may appear only once")

    try:
        found = await db.execute(
            select(PeriodSlot.id).where(PeriodSlot.tenant_id == tenant_id, PeriodSlot.id.in_(slot_ids))
        )
        if len(set(found.scalars().all())) != len(slot_ids):
            raise NotFoundError("Period slot not found")

        on_date = payload.substitution_date
        await _lock_teacher_dates(db, tenant_id, on_date, payload.original_teacher_id, payload.substitute_teacher_id)
        await _ensure_original_not_covered(db, tenant_id, payload.original_teacher_id, on_date, slot_ids)
        await _ensure_substitute_free(db, tenant_id, payload.substitute_teacher_id, on_date, slot_ids)

        displaced = await _displaced_entries(
            db, tenant_id, payload.original_teacher_id, day_of_week_for(on_date), slot_ids
        )
        obj = Substitution(
            tenant_id=tenant_id,
            branch_id=payload.branch_id,
            original_teacher_id=payload.original_teacher_id,
            substitute_teacher_id=payload.substitute_teacher_id,
            substitution_date=on_date,
            reason=payload.reason,
            notes=payload.notes,
            status=SubstitutionStatus.PENDING.value,
            created_by=created_by,
        )
        for p in payload.periods:
            entry, timetable = displaced.get(p.period_slot_id, (None, None))
            if p.timetable_entry_id is not None and (entry is None or entry.id != p.timetable_entry_id):
                raise ValidationError(
                    "timetable_entry_id must be the original teacher's published entry for this period"
                )
            obj.periods.append(
                SubstitutionPeriod(
                    period_slot_id=p.period_slot_id,
                    timetable_entry_id=entry.id if entry else None,
                    subject_id=p.subject_id or (entry.subject_id if entry else None),
                    section_id=p.section_id or (timetable.section_id if timetable else None),
                    room_number=p.room_number if p.room_number is not None else (entry.room_number if entry else None),
                    notes=p.notes,
                )
            )
        db.add(obj)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(
        "Substitution %s created: %s covers %s on %s (%d period(s))",
        obj.id,
        obj.substitute_teacher_id,
        obj.original_teacher_id,
        obj.substitution_date,
        len(slot_ids),
    )
    return await _reload(db, tenant_id, obj.id)


async def update_substitution(
    db: AsyncSession,
    tenant_id: UUID,
    substitution_id: UUID,
    payload: SubstitutionUpdate,
    updated_by: Optional[UUID] = None,
) -> SubstitutionResponse:
    """Teacher, reason and notes change only while pending. status may be forced from any state;
    bringing a cancelled substitution back re-runs both conflict checks."""
    try:
        obj = await _get_substitution(db, tenant_id, substitution_id, for_update=True)
        edits_details = (
            payload.substitute_teacher_id is not None or payload.reason is not None or payload.notes is not None
        )
        if edits_details and obj.status != SubstitutionStatus.PENDING.value:
            raise NotPendingError()

        slot_ids = [p.period_slot_id for p in obj.periods]
        new_substitute = payload.substitute_teacher_id
        if new_substitute is not None and new_substitute != obj.substitute_teacher_id:
            if new_substitute == obj.original_teacher_id:
                raise ValidationError("Substitute teacher must differ from the original teacher")
            await _lock_teacher_dates(db, tenant_id, obj.substitution_date, new_substitute)
            await _ensure_substitute_free(db, tenant_id, new_substitute, obj.substitution_date, slot_ids, obj.id)
            obj.substitute_teacher_id = new_substitute

        new_status = payload.status.value if payload.status is not None else None
        if (
            new_status in ACTIVE_STATUSES
            and obj.status == SubstitutionStatus.CANCELLED.value
        ):
            on_date = obj.substitution_date
            await _lock_teacher_dates(db, tenant_id, on_date, obj.original_teacher_id, obj.substitute_teacher_id)
            await _ensure_original_not_covered(db, tenant_id, obj.original_teacher_id, on_date, slot_ids, obj.id)
            await _ensure_substitute_free(db, tenant_id, obj.substitute_teacher_id, on_date, slot_ids, obj.id)

        if payload.reason is not None:
            obj.reason = payload.reason
        if payload.notes is not None:
            obj.notes = payload.notes
        if new_status is not None and new_status != obj.status:
            logger.info("Substitution %s status forced %s -> %s", obj.id, obj.status, new_status)
            obj.status = new_status
            if new_status == SubstitutionStatus.CONFIRMED.value and obj.approved_by is None:
                obj.approved_by = updated_by
                obj.approved_at = datetime.utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return await _reload(db, tenant_id, substitution_id)


async def confirm_substitution(
    db: AsyncSession,
    tenant_id: UUID,
    substitution_id: UUID,
    approved_by: Optional[UUID] = None,
) -> SubstitutionResponse:
    obj = await _get_substitution(db, tenant_id, substitution_id, for_update=True)
    if obj.status != SubstitutionStatus.PENDING.value:
        raise NotPendingError()
    obj.status = SubstitutionStatus.CONFIRMED.value
    obj.approved_by = approved_by
    obj.approved_at = datetime.utcnow()
    await db.commit()
    logger.info("Substitution %s confirmed by %s", substitution_id, approved_by)
    return await _reload(db, tenant_id, substitution_id)


async def cancel_substitution(db: AsyncSession, tenant_id: UUID, substitution_id: UUID) -> SubstitutionResponse:
    obj = await _get_substitution(db, tenant_id, substitution_id, for_update=True)
    if obj.status not in ACTIVE_STATUSES:
        raise NotCancellableError()
    obj.status = SubstitutionStatus.CANCELLED.value
    await db.commit()
    logger.info("Substitution %s cancelled", substitution_id)
    return await _reload(db, tenant_id, substitution_id)


async def delete_substitution(db: AsyncSession, tenant_id: UUID, substitution_id: UUID) -> None:
    obj = await _get_substitution(db, tenant_id, substitution_id, for_update=True)
    if obj.status != SubstitutionStatus.PENDING.value:
        raise NotPendingError("Only pending substitutions can be deleted")
    await db.delete(obj)
    await db.commit()
    logger.info("Substitution %s deleted", substitution_id)


# ----- Availability -----

async def periods_per_day(db: AsyncSession, tenant_id: UUID, branch_id: UUID, day_of_week: int) -> int:
    """total_periods of the day pattern assigned to the branch weekday, else the configured default."""
    _, pattern = await get_assigned_day_pattern(db, tenant_id, branch_id, day_of_week)
    if pattern is not None and pattern.total_periods:
        return pattern.total_periods
    return settings.default_periods_per_day


async def get_available_teachers(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
    on_date: date,
    period_slot_ids: Sequence[UUID],
    exclude_teacher_id: Optional[UUID] = None,
) -> AvailableTeachersResponse:
    """Advisory: nothing is reserved. create_substitution re-validates."""
    weekday = day_of_week_for(on_date)
    stmt = select(Staff).where(
        Staff.tenant_id == tenant_id,
        Staff.branch_id == branch_id,
        Staff.staff_type == StaffType.TEACHING.value,
        Staff.status == "active",
    )
    if exclude_teacher_id is not None:
        stmt = stmt.where(Staff.id != exclude_teacher_id)
    staff = (await db.execute(stmt)).scalars().all()

    total_periods = await periods_per_day(db, tenant_id, branch_id, weekday)
    staff_ids = [s.id for s in staff]
    committed = await conflicts.count_committed_periods(db, tenant_id, staff_ids, weekday)
    conflicting = await conflicts.find_substitute_conflicts_by_teacher(
        db, tenant_id, staff_ids, on_date, period_slot_ids
    )

    items: List[AvailableTeacher] = []
    for s in staff:
        busy = conflicting.get(s.id, [])
        count = committed.get(s.id, 0)
        items.append(
            AvailableTeacher(
                teacher_id=s.id,
                teacher_name=s.full_name,
                department_name=s.department_name,
                committed_periods=count,
                free_periods=max(total_periods - count, 0),
                has_conflict=bool(busy),
                conflicting_period_slot_ids=busy,
            )
        )
    items.sort(key=lambda t: (t.has_conflict, t.committed_periods, t.teacher_name.lower()))
    return AvailableTeachersResponse(
        substitution_date=on_date,
        day_of_week=weekday,
        day_name=day_name(weekday),
        periods_per_day=total_periods,
        items=items,
        total=len(items),
    )


async def get_absence_periods(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    on_date: date,
) -> AbsencePeriodsResponse:
    """Periods the absent teacher would have taught on on_date, from published timetables."""
    weekday = day_of_week_for(on_date)
    items = await get_teacher_day_entries(db, tenant_id, teacher_id, weekday)
    return AbsencePeriodsResponse(
        teacher_id=teacher_id,
        substitution_date=on_date,
        day_of_week=weekday,
        day_name=day_name(weekday),
        items=items,
        total=len(items),
    )
