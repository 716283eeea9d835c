from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from app.core.enums import TimetableStatus


class TimetableCreate(BaseModel):
    branch_id: UUID
    section_id: UUID
    academic_year_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class TimetableUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class TimetableEntryUpsert(BaseModel):
    day_of_week: int = Field(..., description="0=Sunday .. 6=Saturday")
    period_slot_id: UUID
    subject_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    room_number: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    is_free_period: bool = False


class TimetableEntryBulkUpsert(BaseModel):
    entries: List[TimetableEntryUpsert] = Field(..., min_length=1)


class TimetableEntryResponse(BaseModel):
    id: UUID
    timetable_id: UUID
    day_of_week: int
    day_name: str
    period_slot_id: UUID
    period_name: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    subject_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    room_number: Optional[str] = None
    notes: Optional[str] = None
    is_free_period: bool
    updated_at: datetime

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: Optional[time]) -> Optional[str]:
        """Output as 24-hour string HH:MM (e.g. 09:00, 09:45)."""
        return t.strftime("%H:%M") if t else None


class TimetableEntryListResponse(BaseModel):
    items: List[TimetableEntryResponse]
    total: int


class TimetableResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID
    section_id: UUID
    academic_year_id: UUID
    name: str
    description: Optional[str] = None
    status: TimetableStatus
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    published_at: Optional[datetime] = None
    published_by: Optional[UUID] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TimetableDetailResponse(TimetableResponse):
    entries: List[TimetableEntryResponse] = Field(default_factory=list)


class TimetableListResponse(BaseModel):
    items: List[TimetableResponse]
    total: int


class TeacherScheduleEntry(TimetableEntryResponse):
    timetable_name: str
    section_id: UUID
    academic_year_id: UUID


class TeacherScheduleResponse(BaseModel):
    teacher_id: UUID
    academic_year_id: UUID
    items: List[TeacherScheduleEntry]
    total: int


class TeacherConflict(BaseModel):
    """A published entry that already commits the teacher at (day_of_week, period_slot)."""

    entry_id: UUID
    timetable_id: UUID
    timetable_name: str
    section_id: UUID
    academic_year_id: UUID
    subject_id: Optional[UUID] = None
    teacher_id: UUID
    teacher_name: Optional[str] = None
    day_of_week: int
    day_name: str
    period_slot_id: UUID
    period_name: str
    start_time: time
    end_time: time

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return t.strftime("%H:%M")


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicts: List[TeacherConflict]
