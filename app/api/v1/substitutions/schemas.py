from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from app.api.v1.timetables.schemas import TeacherScheduleEntry
from app.core.enums import SubstitutionStatus


class SubstitutionPeriodInput(BaseModel):
    period_slot_id: UUID
    timetable_entry_id: Optional[UUID] = Field(
        None, description="Displaced entry; looked up from the absent teacher's published timetable when omitted"
    )
    subject_id: Optional[UUID] = None
    section_id: Optional[UUID] = None
    room_number: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class SubstitutionCreate(BaseModel):
    branch_id: UUID
    original_teacher_id: UUID
    substitute_teacher_id: UUID
    substitution_date: date
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    periods: List[SubstitutionPeriodInput]


class SubstitutionUpdate(BaseModel):
    substitute_teacher_id: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    status: Optional[SubstitutionStatus] = None


class SubstitutionPeriodResponse(BaseModel):
    id: UUID
    period_slot_id: UUID
    period_name: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    timetable_entry_id: Optional[UUID] = None
    subject_id: Optional[UUID] = None
    section_id: Optional[UUID] = None
    room_number: Optional[str] = None
    notes: Optional[str] = None

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: Optional[time]) -> Optional[str]:
        return t.strftime("%H:%M") if t else None


class SubstitutionResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID
    original_teacher_id: UUID
    original_teacher_name: Optional[str] = None
    substitute_teacher_id: UUID
    substitute_teacher_name: Optional[str] = None
    substitution_date: date
    day_of_week: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: SubstitutionStatus
    created_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    periods: List[SubstitutionPeriodResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SubstitutionListResponse(BaseModel):
    items: List[SubstitutionResponse]
    total: int


class AvailableTeacher(BaseModel):
    teacher_id: UUID
    teacher_name: str
    department_name: Optional[str] = None
    committed_periods: int
    free_periods: int
    has_conflict: bool
    conflicting_period_slot_ids: List[UUID] = Field(default_factory=list)


class AvailableTeachersResponse(BaseModel):
    substitution_date: date
    day_of_week: int
    day_name: str
    periods_per_day: int
    items: List[AvailableTeacher]
    total: int


class AbsencePeriodsResponse(BaseModel):
    teacher_id: UUID
    substitution_date: date
    day_of_week: int
    day_name: str
    items: List[TeacherScheduleEntry]
    total: int
