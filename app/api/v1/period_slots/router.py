from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import PeriodSlotType
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import PeriodSlotCreate, PeriodSlotListResponse, PeriodSlotResponse, PeriodSlotUpdate
from . import service

router = APIRouter(prefix="/api/v1/period-slots", tags=["period-slots"])


@router.get(
    "",
    response_model=PeriodSlotListResponse,
    dependencies=[Depends(check_permission("timetable_settings", "read"))],
)
async def list_period_slots(
    branch_id: Optional[UUID] = Query(None),
    day_pattern_id: Optional[UUID] = Query(None),
    shift_id: Optional[UUID] = Query(None),
    slot_type: Optional[PeriodSlotType] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_period_slots(
        db,
        current_user.tenant_id,
        branch_id=branch_id,
        day_pattern_id=day_pattern_id,
        shift_id=shift_id,
        slot_type=slot_type.value if slot_type else None,
        is_active=is_active,
    )


@router.post(
    "",
    response_model=PeriodSlotResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def create_period_slot(
    payload: PeriodSlotCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_period_slot(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{period_slot_id}",
    response_model=PeriodSlotResponse,
    dependencies=[Depends(check_permission("timetable_settings", "read"))],
)
async def get_period_slot(
    period_slot_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_period_slot(db, current_user.tenant_id, period_slot_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put(
    "/{period_slot_id}",
    response_model=PeriodSlotResponse,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def update_period_slot(
    period_slot_id: UUID,
    payload: PeriodSlotUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_period_slot(db, current_user.tenant_id, period_slot_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{period_slot_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def delete_period_slot(
    period_slot_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_period_slot(db, current_user.tenant_id, period_slot_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
