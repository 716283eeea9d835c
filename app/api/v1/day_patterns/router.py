from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    DayPatternAssign,
    DayPatternAssignmentListResponse,
    DayPatternAssignmentResponse,
    DayPatternCreate,
    DayPatternListResponse,
    DayPatternResponse,
    DayPatternUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/day-patterns", tags=["day-patterns"])
assignment_router = APIRouter(prefix="/api/v1/day-pattern-assignments", tags=["day-patterns"])


@router.get(
    "",
    response_model=DayPatternListResponse,
    dependencies=[Depends(check_permission("timetable_settings", "read"))],
)
async def list_day_patterns(
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_day_patterns(db, current_user.tenant_id, is_active=is_active)


@router.post(
    "",
    response_model=DayPatternResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def create_day_pattern(
    payload: DayPatternCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_day_pattern(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{day_pattern_id}",
    response_model=DayPatternResponse,
    dependencies=[Depends(check_permission("timetable_settings", "read"))],
)
async def get_day_pattern(
    day_pattern_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_day_pattern(db, current_user.tenant_id, day_pattern_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put(
    "/{day_pattern_id}",
    response_model=DayPatternResponse,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def update_day_pattern(
    day_pattern_id: UUID,
    payload: DayPatternUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_day_pattern(db, current_user.tenant_id, day_pattern_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{day_pattern_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def delete_day_pattern(
    day_pattern_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_day_pattern(db, current_user.tenant_id, day_pattern_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@assignment_router.get(
    "",
    response_model=DayPatternAssignmentListResponse,
    dependencies=[Depends(check_permission("timetable_settings", "read"))],
)
async def list_day_pattern_assignments(
    branch_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_day_pattern_assignments(db, current_user.tenant_id, branch_id)


@assignment_router.put(
    "/{branch_id}/{day_of_week}",
    response_model=DayPatternAssignmentResponse,
    dependencies=[Depends(check_permission("timetable_settings", "manage"))],
)
async def assign_day_pattern(
    branch_id: UUID,
    day_of_week: int,
    payload: DayPatternAssign,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.assign_day_pattern(db, current_user.tenant_id, branch_id, day_of_week, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
