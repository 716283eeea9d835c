from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import TimetableStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    ConflictCheckResponse,
    TeacherScheduleResponse,
    TimetableCreate,
    TimetableDetailResponse,
    TimetableEntryBulkUpsert,
    TimetableEntryListResponse,
    TimetableEntryResponse,
    TimetableEntryUpsert,
    TimetableListResponse,
    TimetableResponse,
    TimetableUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/timetables", tags=["timetables"])


@router.get(
    "",
    response_model=TimetableListResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def list_timetables(
    branch_id: Optional[UUID] = Query(None),
    section_id: Optional[UUID] = Query(None),
    academic_year_id: Optional[UUID] = Query(None),
    status_filter: Optional[TimetableStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_timetables(
        db,
        current_user.tenant_id,
        branch_id=branch_id,
        section_id=section_id,
        academic_year_id=academic_year_id,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    response_model=TimetableResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetables", "create"))],
)
async def create_timetable(
    payload: TimetableCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_timetable(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/conflicts",
    response_model=ConflictCheckResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def check_conflicts(
    teacher_id: UUID,
    day_of_week: int,
    period_slot_id: UUID,
    exclude_timetable_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        found = await service.check_conflicts(
            db,
            current_user.tenant_id,
            teacher_id,
            day_of_week,
            period_slot_id,
            exclude_timetable_id=exclude_timetable_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return ConflictCheckResponse(has_conflict=bool(found), conflicts=found)


@router.get(
    "/published",
    response_model=TimetableDetailResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def get_published_for_section(
    section_id: UUID,
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_published_for_section(db, current_user.tenant_id, section_id, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/teacher/me", response_model=TeacherScheduleResponse)
async def get_my_schedule(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Schedule of the calling teacher; no extra permission needed."""
    try:
        return await service.get_my_schedule(db, current_user.tenant_id, current_user.id, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/teacher/{teacher_id}",
    response_model=TeacherScheduleResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def get_teacher_schedule(
    teacher_id: UUID,
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_teacher_schedule(db, current_user.tenant_id, teacher_id, academic_year_id)


@router.get(
    "/{timetable_id}",
    response_model=TimetableDetailResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def get_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_timetable(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put(
    "/{timetable_id}",
    response_model=TimetableResponse,
    dependencies=[Depends(check_permission("timetables", "update"))],
)
async def update_timetable(
    timetable_id: UUID,
    payload: TimetableUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_timetable(db, current_user.tenant_id, timetable_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{timetable_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetables", "delete"))],
)
async def delete_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_timetable(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{timetable_id}/publish",
    response_model=TimetableResponse,
    dependencies=[Depends(check_permission("timetables", "publish"))],
)
async def publish_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.publish_timetable(db, current_user.tenant_id, timetable_id, published_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{timetable_id}/archive",
    response_model=TimetableResponse,
    dependencies=[Depends(check_permission("timetables", "publish"))],
)
async def archive_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.archive_timetable(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{timetable_id}/entries",
    response_model=TimetableEntryListResponse,
    dependencies=[Depends(check_permission("timetables", "read"))],
)
async def list_entries(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_entries(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{timetable_id}/entries",
    response_model=TimetableEntryResponse,
    dependencies=[Depends(check_permission("timetables", "update"))],
)
async def upsert_entry(
    timetable_id: UUID,
    payload: TimetableEntryUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.upsert_entry(db, current_user.tenant_id, timetable_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{timetable_id}/entries/bulk",
    response_model=TimetableEntryListResponse,
    dependencies=[Depends(check_permission("timetables", "update"))],
)
async def bulk_upsert_entries(
    timetable_id: UUID,
    payload: TimetableEntryBulkUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.bulk_upsert_entries(db, current_user.tenant_id, timetable_id, payload.entries)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete(
    "/{timetable_id}/entries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetables", "update"))],
)
async def delete_entry(
    timetable_id: UUID,
    entry_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_entry(db, current_user.tenant_id, timetable_id, entry_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
