"""Shifts per branch. Code unique per (tenant, branch); a shift used by a period slot cannot be deleted."""

from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CodeExistsError, InUseError, NotFoundError, ValidationError
from app.core.models import PeriodSlot, Shift

from .schemas import ShiftCreate, ShiftListResponse, ShiftResponse, ShiftUpdate


def _to_response(s: Shift) -> ShiftResponse:
    return ShiftResponse.model_validate(s)


async def _get_shift(db: AsyncSession, tenant_id: UUID, shift_id: UUID) -> Shift:
    result = await db.execute(
        select(Shift).where(Shift.id == shift_id, Shift.tenant_id == tenant_id)
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Shift not found")
    return obj


async def get_shift_by_code(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
    code: str,
) -> Optional[Shift]:
    result = await db.execute(
        select(Shift).where(
            Shift.tenant_id == tenant_id,
            Shift.branch_id == branch_id,
            Shift.code == code,
        )
    )
    return result.scalar_one_or_none()


async def list_shifts(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: Optional[UUID] = None,
    is_active: Optional[bool] = None,
) -> ShiftListResponse:
    stmt = select(Shift).where(Shift.tenant_id == tenant_id)
    if branch_id is not None:
        stmt = stmt.where(Shift.branch_id == branch_id)
    if is_active is not None:
        stmt = stmt.where(Shift.is_active.is_(is_active))
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = stmt.order_by(Shift.display_order, Shift.name, Shift.id)
    result = await db.execute(stmt)
    return ShiftListResponse(items=[_to_response(s) for s in result.scalars().all()], total=total)


async def get_shift(db: AsyncSession, tenant_id: UUID, shift_id: UUID) -> ShiftResponse:
    return _to_response(await _get_shift(db, tenant_id, shift_id))


async def create_shift(
    db: AsyncSession,
    tenant_id: UUID,
    payload: ShiftCreate,
    created_by: Optional[UUID] = None,
) -> ShiftResponse:
    if payload.end_time <= payload.start_time:
        raise ValidationError("end_time must be after start_time")
    code = payload.code.strip()
    if await get_shift_by_code(db, tenant_id, payload.branch_id, code):
        raise CodeExistsError(f"Shift with code '{code}' already exists for this branch")
    try:
        obj = Shift(
            tenant_id=tenant_id,
            branch_id=payload.branch_id,
            name=payload.name.strip(),
            code=code,
            start_time=payload.start_time,
            end_time=payload.end_time,
            description=payload.description,
            display_order=payload.display_order,
            is_active=True,
            created_by=created_by,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
        return _to_response(obj)
    except IntegrityError:
        await db.rollback()
        raise CodeExistsError(f"Shift with code '{code}' already exists for this branch")


async def update_shift(
    db: AsyncSession,
    tenant_id: UUID,
    shift_id: UUID,
    payload: ShiftUpdate,
) -> ShiftResponse:
    obj = await _get_shift(db, tenant_id, shift_id)
    if payload.code is not None:
        new_code = payload.code.strip()
        if new_code != obj.code:
            existing = await get_shift_by_code(db, tenant_id, obj.branch_id, new_code)
            if existing and existing.id != obj.id:
                raise CodeExistsError(f"Shift with code '{new_code}' already exists for this branch")
            obj.code = new_code
    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.start_time is not None:
        obj.start_time = payload.start_time
    if payload.end_time is not None:
        obj.end_time = payload.end_time
    if payload.description is not None:
        obj.description = payload.description
    if payload.display_order is not None:
        obj.display_order = payload.display_order
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    if obj.end_time <= obj.start_time:
        await db.rollback()
        raise ValidationError("end_time must be after start_time")
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise CodeExistsError("Shift with this code already exists for this branch")
    await db.refresh(obj)
    return _to_response(obj)


async def is_shift_in_use(db: AsyncSession, shift_id: UUID) -> bool:
    result = await db.execute(select(PeriodSlot.id).where(PeriodSlot.shift_id == shift_id).limit(1))
    return result.scalar_one_or_none() is not None


async def delete_shift(db: AsyncSession, tenant_id: UUID, shift_id: UUID) -> None:
    obj = await _get_shift(db, tenant_id, shift_id)
    if await is_shift_in_use(db, obj.id):
        raise InUseError("Shift is used by one or more period slots")
    await db.delete(obj)
    await db.commit()
