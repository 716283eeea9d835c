from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DayPatternCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    total_periods: Optional[int] = Field(None, description="Defaults to 8 when omitted or not positive")
    display_order: int = 0


class DayPatternUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    total_periods: Optional[int] = Field(None, ge=1)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class DayPatternResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    code: str
    description: Optional[str] = None
    total_periods: int
    display_order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DayPatternListResponse(BaseModel):
    items: List[DayPatternResponse]
    total: int


class DayPatternAssign(BaseModel):
    """Patch for one (branch, day_of_week). Send day_pattern_id: null to unassign; omit a field to keep it."""

    day_pattern_id: Optional[UUID] = None
    is_working_day: Optional[bool] = None


class DayPatternAssignmentResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID
    day_of_week: int
    day_name: str
    day_pattern_id: Optional[UUID] = None
    day_pattern_name: Optional[str] = None
    day_pattern_code: Optional[str] = None
    total_periods: Optional[int] = None
    is_working_day: bool
    updated_at: datetime


class DayPatternAssignmentListResponse(BaseModel):
    items: List[DayPatternAssignmentResponse]
    total: int
