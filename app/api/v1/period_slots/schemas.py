from datetime import datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_serializer, field_validator

from app.core.enums import TEACHING_SLOT_TYPES, PeriodSlotType
from app.core.schemas import parse_optional_time_24, parse_time_24


class PeriodSlotCreate(BaseModel):
    branch_id: UUID
    name: str = Field(..., min_length=1, max_length=50)
    period_number: Optional[int] = Field(None, ge=0, description="Null for breaks, assembly, lunch")
    slot_type: PeriodSlotType = PeriodSlotType.REGULAR
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:45")
    duration_minutes: Optional[int] = Field(None, ge=1, description="Derived from the times when omitted")
    day_pattern_id: Optional[UUID] = None
    shift_id: Optional[UUID] = None
    display_order: int = 0

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return parse_time_24(v)


class PeriodSlotUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    period_number: Optional[int] = Field(None, ge=0)
    slot_type: Optional[PeriodSlotType] = None
    start_time: Optional[Union[str, time]] = None
    end_time: Optional[Union[str, time]] = None
    duration_minutes: Optional[int] = Field(None, ge=1)
    day_pattern_id: Optional[UUID] = None
    shift_id: Optional[UUID] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Optional[Union[str, time]]) -> Optional[time]:
        return parse_optional_time_24(v)


class PeriodSlotResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID
    name: str
    period_number: Optional[int] = None
    slot_type: str
    start_time: time
    end_time: time
    duration_minutes: int
    day_pattern_id: Optional[UUID] = None
    shift_id: Optional[UUID] = None
    display_order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @computed_field
    @property
    def is_teaching(self) -> bool:
        return self.slot_type in TEACHING_SLOT_TYPES

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return t.strftime("%H:%M")


class PeriodSlotListResponse(BaseModel):
    items: List[PeriodSlotResponse]
    total: int
