"""Day patterns (code unique per tenant) and the per-branch weekday -> pattern assignment."""

import logging
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CodeExistsError, InUseError, NotFoundError
from app.core.models import DayPattern, DayPatternAssignment, PeriodSlot
from app.core.weekdays import day_name, validate_day_of_week

from .schemas import (
    DayPatternAssign,
    DayPatternAssignmentListResponse,
    DayPatternAssignmentResponse,
    DayPatternCreate,
    DayPatternListResponse,
    DayPatternResponse,
    DayPatternUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_PERIODS = 8


def _to_response(p: DayPattern) -> DayPatternResponse:
    return DayPatternResponse.model_validate(p)


def _assignment_to_response(
    a: DayPatternAssignment,
    pattern: Optional[DayPattern],
) -> DayPatternAssignmentResponse:
    return DayPatternAssignmentResponse(
        id=a.id,
        tenant_id=a.tenant_id,
        branch_id=a.branch_id,
        day_of_week=a.day_of_week,
        day_name=day_name(a.day_of_week),
        day_pattern_id=a.day_pattern_id,
        day_pattern_name=pattern.name if pattern else None,
        day_pattern_code=pattern.code if pattern else None,
        total_periods=pattern.total_periods if pattern else None,
        is_working_day=a.is_working_day,
        updated_at=a.updated_at,
    )


async def _get_day_pattern(db: AsyncSession, tenant_id: UUID, day_pattern_id: UUID) -> DayPattern:
    result = await db.execute(
        select(DayPattern).where(DayPattern.id == day_pattern_id, DayPattern.tenant_id == tenant_id)
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Day pattern not found")
    return obj


async def get_day_pattern_by_code(db: AsyncSession, tenant_id: UUID, code: str) -> Optional[DayPattern]:
    result = await db.execute(
        select(DayPattern).where(DayPattern.tenant_id == tenant_id, DayPattern.code == code)
    )
    return result.scalar_one_or_none()


async def list_day_patterns(
    db: AsyncSession,
    tenant_id: UUID,
    is_active: Optional[bool] = None,
) -> DayPatternListResponse:
    stmt = select(DayPattern).where(DayPattern.tenant_id == tenant_id)
    if is_active is not None:
        stmt = stmt.where(DayPattern.is_active.is_(is_active))
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = stmt.order_by(DayPattern.display_order, DayPattern.name, DayPattern.id)
    result = await db.execute(stmt)
    return DayPatternListResponse(items=[_to_response(p) for p in result.scalars().all()], total=total)


async def get_day_pattern(db: AsyncSession, tenant_id: UUID, day_pattern_id: UUID) -> DayPatternResponse:
    return _to_response(await _get_day_pattern(db, tenant_id, day_pattern_id))


async def create_day_pattern(
    db: AsyncSession,
    tenant_id: UUID,
    payload: DayPatternCreate,
    created_by: Optional[UUID] = None,
) -> DayPatternResponse:
    code = payload.code.strip()
    if await get_day_pattern_by_code(db, tenant_id, code):
        raise CodeExistsError(f"Day pattern with code '{code}' already exists")
    total_periods = payload.total_periods
    if total_periods is None or total_periods <= 0:
        total_periods = DEFAULT_TOTAL_PERIODS
    try:
        obj = DayPattern(
            tenant_id=tenant_id,
            name=payload.name.strip(),
            code=code,
            description=payload.description,
            total_periods=total_periods,
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
        raise CodeExistsError(f"Day pattern with code '{code}' already exists")


async def update_day_pattern(
    db: AsyncSession,
    tenant_id: UUID,
    day_pattern_id: UUID,
    payload: DayPatternUpdate,
) -> DayPatternResponse:
    obj = await _get_day_pattern(db, tenant_id, day_pattern_id)
    if payload.code is not None:
        new_code = payload.code.strip()
        if new_code != obj.code:
            existing = await get_day_pattern_by_code(db, tenant_id, new_code)
            if existing and existing.id != obj.id:
                raise CodeExistsError(f"Day pattern with code '{new_code}' already exists")
            obj.code = new_code
    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.description is not None:
        obj.description = payload.description
    if payload.total_periods is not None:
        obj.total_periods = payload.total_periods
    if payload.display_order is not None:
        obj.display_order = payload.display_order
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise CodeExistsError("Day pattern with this code already exists")
    await db.refresh(obj)
    return _to_response(obj)


async def is_day_pattern_in_use(db: AsyncSession, day_pattern_id: UUID) -> bool:
    assigned = await db.execute(
        select(DayPatternAssignment.id).where(DayPatternAssignment.day_pattern_id == day_pattern_id).limit(1)
    )
    if assigned.scalar_one_or_none() is not None:
        return True
    slot = await db.execute(select(PeriodSlot.id).where(PeriodSlot.day_pattern_id == day_pattern_id).limit(1))
    return slot.scalar_one_or_none() is not None


async def delete_day_pattern(db: AsyncSession, tenant_id: UUID, day_pattern_id: UUID) -> None:
    obj = await _get_day_pattern(db, tenant_id, day_pattern_id)
    if await is_day_pattern_in_use(db, obj.id):
        raise InUseError("Day pattern is assigned to a weekday or used by period slots")
    await db.delete(obj)
    await db.commit()


# ----- Assignments -----

async def _get_assignment(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
    day_of_week: int,
) -> Optional[DayPatternAssignment]:
    result = await db.execute(
        select(DayPatternAssignment).where(
            DayPatternAssignment.tenant_id == tenant_id,
            DayPatternAssignment.branch_id == branch_id,
            DayPatternAssignment.day_of_week == day_of_week,
        )
    )
    return result.scalar_one_or_none()


def _apply_assignment(obj: DayPatternAssignment, payload: DayPatternAssign) -> None:
    if "day_pattern_id" in payload.model_fields_set:
        obj.day_pattern_id = payload.day_pattern_id
    if payload.is_working_day is not None:
        obj.is_working_day = payload.is_working_day


async def assign_day_pattern(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
    day_of_week: int,
    payload: DayPatternAssign,
) -> DayPatternAssignmentResponse:
    """Upsert on (tenant, branch, day_of_week). A new row starts as a working day with no pattern;
    only the fields present in the payload are applied. Concurrent writers: last one wins."""
    validate_day_of_week(day_of_week)
    if payload.day_pattern_id is not None:
        await _get_day_pattern(db, tenant_id, payload.day_pattern_id)

    obj = await _get_assignment(db, tenant_id, branch_id, day_of_week)
    if obj is None:
        obj = DayPatternAssignment(
            tenant_id=tenant_id,
            branch_id=branch_id,
            day_of_week=day_of_week,
            day_pattern_id=None,
            is_working_day=True,
        )
        _apply_assignment(obj, payload)
        db.add(obj)
        try:
            await db.commit()
        except IntegrityError:
            # Another writer inserted the row first; fall through to update it.
            await db.rollback()
            obj = await _get_assignment(db, tenant_id, branch_id, day_of_week)
            if obj is None:
                raise
            _apply_assignment(obj, payload)
            await db.commit()
    else:
        _apply_assignment(obj, payload)
        await db.commit()
    await db.refresh(obj)

    # A rollback in the retry path expires anything loaded before it.
    pattern = None
    if obj.day_pattern_id is not None:
        pattern = await db.get(DayPattern, obj.day_pattern_id, populate_existing=True)
    logger.info(
        "Day pattern assignment set: branch=%s day=%s pattern=%s working=%s",
        branch_id,
        day_of_week,
        obj.day_pattern_id,
        obj.is_working_day,
    )
    return _assignment_to_response(obj, pattern)


async def list_day_pattern_assignments(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
) -> DayPatternAssignmentListResponse:
    result = await db.execute(
        select(DayPatternAssignment, DayPattern)
        .outerjoin(DayPattern, DayPattern.id == DayPatternAssignment.day_pattern_id)
        .where(
            DayPatternAssignment.tenant_id == tenant_id,
            DayPatternAssignment.branch_id == branch_id,
        )
        .order_by(DayPatternAssignment.day_of_week)
    )
    items = [_assignment_to_response(a, p) for a, p in result.all()]
    return DayPatternAssignmentListResponse(items=items, total=len(items))


async def get_assigned_day_pattern(
    db: AsyncSession,
    tenant_id: UUID,
    branch_id: UUID,
    day_of_week: int,
) -> Tuple[Optional[DayPatternAssignment], Optional[DayPattern]]:
    """Assignment for (branch, weekday) and its pattern, either may be None."""
    result = await db.execute(
        select(DayPatternAssignment, DayPattern)
        .outerjoin(DayPattern, DayPattern.id == DayPatternAssignment.day_pattern_id)
        .where(
            DayPatternAssignment.tenant_id == tenant_id,
            DayPatternAssignment.branch_id == branch_id,
            DayPatternAssignment.day_of_week == day_of_week,
        )
    )
    row = result.first()
    if row is None:
        return None, None
    return row[0], row[1]
