from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InUseError, NotFoundError, ValidationError
from app.core.models import DayPattern, PeriodSlot, Shift, SubstitutionPeriod, TimetableEntry
from app.core.schemas import minutes_between

from .schemas import PeriodSlotCreate, PeriodSlotListResponse, PeriodSlotResponse, PeriodSlotUpdate


def _to_response(s: PeriodSlot) -> PeriodSlotResponse:
    return PeriodSlotResponse.model_validate(s)


async def _get_period_slot(db: AsyncSession, tenant_id: UUID, period_slot_id: UUID) -> PeriodSlot:
    result = await db.execute(
        select(PeriodSlot).where(PeriodSlot.id == period_slot_id, PeriodSlot.tenant_id == tenant_id)
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Period slot not found")
    return obj


async def _ensure_references(
    db: AsyncSession,
    tenant_id: UUID,
    day_pattern_id: Optional[UUID],
    shift_id: Optional[UUID],
) -> None:
    if day_pattern_id is not None:
        found = await db.execute(
            select(DayPattern.id).where(DayPattern.id == day_pattern_id, DayPattern.tenant_id == tenant_id)
        )
        if found.scalar_one_or_none() is None:
            raise NotFoundError("Day pattern not found")
    if shift_id is not None:
        found = await db.execute(select(Shift.id).where(Shift.id == shift_id, Shift.tenant_id == tenant_id))
        if found.scalar_one_or_none() is None:
            raise NotFoundError("Shift not found")


async def list_period_slots(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: Optional[UUID] = None,
    day_pattern_id: Optional[UUID] = None,
    shift_id: Optional[UUID] = None,
    slot_type: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> PeriodSlotListResponse:
    stmt = select(PeriodSlot).where(PeriodSlot.tenant_id == tenant_id)
    if branch_id is not None:
        stmt = stmt.where(PeriodSlot.branch_id == branch_id)
    if day_pattern_id is not None:
        stmt = stmt.where(PeriodSlot.day_pattern_id == day_pattern_id)
    if shift_id is not None:
        stmt = stmt.where(PeriodSlot.shift_id == shift_id)
    if slot_type is not None:
        stmt = stmt.where(PeriodSlot.slot_type == slot_type)
    if is_active is not None:
        stmt = stmt.where(PeriodSlot.is_active.is_(is_active))
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = stmt.order_by(PeriodSlot.display_order, PeriodSlot.start_time, PeriodSlot.id)
    result = await db.execute(stmt)
    return PeriodSlotListResponse(items=[_to_response(s) for s in result.scalars().all()], total=total)


async def get_period_slot(db: AsyncSession, tenant_id: UUID, period_slot_id: UUID) -> PeriodSlotResponse:
    return _to_response(await _get_period_slot(db, tenant_id, period_slot_id))


async def create_period_slot(
    db: AsyncSession,
    tenant_id: UUID,
    payload: PeriodSlotCreate,
    created_by: Optional[UUID] = None,
) -> PeriodSlotResponse:
    if payload.end_time <= payload.start_time:
        raise ValidationError("end_time must be after start_time")
    await _ensure_references(db, tenant_id, payload.day_pattern_id, payload.shift_id)
    duration = payload.duration_minutes or minutes_between(payload.start_time, payload.end_time)
    obj = PeriodSlot(
        tenant_id=tenant_id,
        branch_id=payload.branch_id,
        name=payload.name.strip(),
        period_number=payload.period_number,
        slot_type=payload.slot_type.value,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration_minutes=duration,
        day_pattern_id=payload.day_pattern_id,
        shift_id=payload.shift_id,
        display_order=payload.display_order,
        is_active=True,
        created_by=created_by,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj)


async def update_period_slot(
    db: AsyncSession,
    tenant_id: UUID,
    period_slot_id: UUID,
    payload: PeriodSlotUpdate,
) -> PeriodSlotResponse:
    obj = await _get_period_slot(db, tenant_id, period_slot_id)
    await _ensure_references(db, tenant_id, payload.day_pattern_id, payload.shift_id)
    times_changed = payload.start_time is not None or payload.end_time is not None
    new_start = payload.start_time if payload.start_time is not None else obj.start_time
    new_end = payload.end_time if payload.end_time is not None else obj.end_time
    if new_end <= new_start:
        raise ValidationError("end_time must be after start_time")

    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.period_number is not None:
        obj.period_number = payload.period_number
    if payload.slot_type is not None:
        obj.slot_type = payload.slot_type.value
    obj.start_time = new_start
    obj.end_time = new_end
    if payload.duration_minutes is not None:
        obj.duration_minutes = payload.duration_minutes
    elif times_changed:
        obj.duration_minutes = minutes_between(new_start, new_end)
    # An explicit null detaches the slot from its pattern or shift.
    if "day_pattern_id" in payload.model_fields_set:
        obj.day_pattern_id = payload.day_pattern_id
    if "shift_id" in payload.model_fields_set:
        obj.shift_id = payload.shift_id
    if payload.display_order is not None:
        obj.display_order = payload.display_order
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    await db.commit()
    await db.refresh(obj)
    return _to_response(obj)


async def is_period_slot_in_use(db: AsyncSession, period_slot_id: UUID) -> bool:
    entry = await db.execute(
        select(TimetableEntry.id).where(TimetableEntry.period_slot_id == period_slot_id).limit(1)
    )
    if entry.scalar_one_or_none() is not None:
        return True
    covered = await db.execute(
        select(SubstitutionPeriod.id).where(SubstitutionPeriod.period_slot_id == period_slot_id).limit(1)
    )
    return covered.scalar_one_or_none() is not None


async def delete_period_slot(db: AsyncSession, tenant_id: UUID, period_slot_id: UUID) -> None:
    obj = await _get_period_slot(db, tenant_id, period_slot_id)
    if await is_period_slot_in_use(db, obj.id):
        raise InUseError("Period slot is used by timetable entries or substitutions")
    await db.delete(obj)
    await db.commit()
