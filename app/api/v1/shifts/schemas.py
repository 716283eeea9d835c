from datetime import datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.core.schemas import parse_optional_time_24, parse_time_24


class ShiftCreate(BaseModel):
    branch_id: UUID
    name: str = Field(..., min_length=1, max_length=50)
    code: str = Field(..., min_length=1, max_length=20)
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 08:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 14:00")
    description: Optional[str] = None
    display_order: int = 0

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return parse_time_24(v)


class ShiftUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    start_time: Optional[Union[str, time]] = None
    end_time: Optional[Union[str, time]] = None
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Optional[Union[str, time]]) -> Optional[time]:
        return parse_optional_time_24(v)


class ShiftResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID
    name: str
    code: str
    start_time: time
    end_time: time
    description: Optional[str] = None
    display_order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return t.strftime("%H:%M")


class ShiftListResponse(BaseModel):
    items: List[ShiftResponse]
    total: int
