"""Day patterns (Regular, Half Day, ...) and their per-branch weekday assignment."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class DayPattern(Base):
    __tablename__ = "day_patterns"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_day_pattern_tenant_code"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # e.g. "Regular Day", "Half Day"
    code = Column(String(20), nullable=False)  # e.g. "REG", "HALF"
    description = Column(Text, nullable=True)
    total_periods = Column(Integer, nullable=False, default=8)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class DayPatternAssignment(Base):
    """Which day pattern a branch follows on a weekday. One row per (tenant, branch, day_of_week)."""

    __tablename__ = "day_pattern_assignments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "branch_id", "day_of_week", name="uq_day_pattern_assignment"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_day_pattern_assignment_dow"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    day_pattern_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.day_patterns.id", ondelete="RESTRICT"),
        nullable=True,
    )
    is_working_day = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    day_pattern = relationship("DayPattern", foreign_keys=[day_pattern_id])
