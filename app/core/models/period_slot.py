import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Time
from sqlalchemy.dialects.postgresql import UUID

from app.core.enums import PeriodSlotType
from app.db.session import Base


class PeriodSlot(Base):
    """A timed slot of the school day: teaching period, break, assembly, lunch..."""

    __tablename__ = "period_slots"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_period_slot_times"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # e.g. "Period 1", "Lunch Break"
    period_number = Column(Integer, nullable=True)  # null for breaks/assembly
    slot_type = Column(String(20), nullable=False, default=PeriodSlotType.REGULAR.value)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    day_pattern_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.day_patterns.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    shift_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.shifts.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
