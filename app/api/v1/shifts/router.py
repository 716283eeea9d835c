from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ShiftCreate, ShiftListResponse, ShiftResponse, ShiftUpdate
from . import service

router = APIRouter(prefix="/api/v1/shifts", tags=["shifts"])


@router.get(
    "",
    response_model=ShiftListResponse,
    dependencies=[Depends(check_permission("shifts", "read"))],
)
async def list_shifts(
    branch_id: Optional[UUID] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_shifts(db, current_user.tenant_id, branch_id=branch_id, is_active=is_active)


@router.post(
    "",
    response_model=ShiftResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("shifts", "manage"))],
)
async def create_shift(
    payload: ShiftCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_shift(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{shift_id}",
    response_model=ShiftResponse,
    dependencies=[Depends(check_permission("shifts", "read"))],
)
async def get_shift(
    shift_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_shift(db, current_user.tenant_id, shift_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put(
    "/{shift_id}",
    response_model=ShiftResponse,
    dependencies=[Depends(check_permission("shifts", "manage"))],
)
async def update_shift(
    shift_id: UUID,
    payload: ShiftUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_shift(db, current_user.tenant_id, shift_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{shift_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("shifts", "manage"))],
)
async def delete_shift(
    shift_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_shift(db, current_user.tenant_id, shift_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
