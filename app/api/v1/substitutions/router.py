from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import SubstitutionStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AbsencePeriodsResponse,
    AvailableTeachersResponse,
    SubstitutionCreate,
    SubstitutionListResponse,
    SubstitutionResponse,
    SubstitutionUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/substitutions", tags=["substitutions"])


@router.get(
    "",
    response_model=SubstitutionListResponse,
    dependencies=[Depends(check_permission("substitutions", "read"))],
)
async def list_substitutions(
    branch_id: Optional[UUID] = Query(None),
    original_teacher_id: Optional[UUID] = Query(None),
    substitute_teacher_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_filter: Optional[SubstitutionStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_substitutions(
        db,
        current_user.tenant_id,
        branch_id=branch_id,
        original_teacher_id=original_teacher_id,
        substitute_teacher_id=substitute_teacher_id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    response_model=SubstitutionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("substitutions", "create"))],
)
async def create_substitution(
    payload: SubstitutionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_substitution(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/available-teachers",
    response_model=AvailableTeachersResponse,
    dependencies=[Depends(check_permission("substitutions", "read"))],
)
async def get_available_teachers(
    branch_id: UUID,
    substitution_date: date = Query(..., alias="date"),
    period_slot_ids: List[UUID] = Query(default_factory=list),
    exclude_teacher_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_available_teachers(
        db,
        current_user.tenant_id,
        branch_id,
        substitution_date,
        period_slot_ids,
        exclude_teacher_id=exclude_teacher_id,
    )


@router.get(
    "/absence-periods",
    response_model=AbsencePeriodsResponse,
    dependencies=[Depends(check_permission("substitutions", "read"))],
)
async def get_absence_periods(
    teacher_id: UUID,
    substitution_date: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_absence_periods(db, current_user.tenant_id, teacher_id, substitution_date)


@router.get(
    "/{substitution_id}",
    response_model=SubstitutionResponse,
    dependencies=[Depends(check_permission("substitutions", "read"))],
)
async def get_substitution(
    substitution_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_substitution(db, current_user.tenant_id, substitution_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put(
    "/{substitution_id}",
    response_model=SubstitutionResponse,
    dependencies=[Depends(check_permission("substitutions", "update"))],
)
async def update_substitution(
    substitution_id: UUID,
    payload: SubstitutionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_substitution(
            db, current_user.tenant_id, substitution_id, payload, updated_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{substitution_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("substitutions", "delete"))],
)
async def delete_substitution(
    substitution_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_substitution(db, current_user.tenant_id, substitution_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{substitution_id}/confirm",
    response_model=SubstitutionResponse,
    dependencies=[Depends(check_permission("substitutions", "approve"))],
)
async def confirm_substitution(
    substitution_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.confirm_substitution(
            db, current_user.tenant_id, substitution_id, approved_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{substitution_id}/cancel",
    response_model=SubstitutionResponse,
    dependencies=[Depends(check_permission("substitutions", "approve"))],
)
async def cancel_substitution(
    substitution_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.cancel_substitution(db, current_user.tenant_id, substitution_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
