"""Teacher substitutions: a substitute covers some of an absent teacher's periods on one date."""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.enums import SubstitutionStatus
from app.db.session import Base


class Substitution(Base):
    __tablename__ = "substitutions"
    __table_args__ = (
        CheckConstraint("original_teacher_id <> substitute_teacher_id", name="ck_substitution_different_teachers"),
        Index("ix_substitutions_tenant_date_status", "tenant_id", "substitution_date", "status"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    original_teacher_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    substitute_teacher_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    substitution_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=SubstitutionStatus.PENDING.value)  # pending | confirmed | cancelled
    created_by = Column(UUID(as_uuid=True), nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    periods = relationship(
        "SubstitutionPeriod",
        back_populates="substitution",
        cascade="all, delete-orphan",
        order_by="SubstitutionPeriod.created_at",
    )


class SubstitutionPeriod(Base):
    """One covered period. timetable_entry_id links back to the displaced grid cell, if any."""

    __tablename__ = "substitution_periods"
    __table_args__ = (
        UniqueConstraint("substitution_id", "period_slot_id", name="uq_substitution_period_slot"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    substitution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.substitutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timetable_entry_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetable_entries.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    period_slot_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.period_slots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    subject_id = Column(UUID(as_uuid=True), nullable=True)
    section_id = Column(UUID(as_uuid=True), nullable=True)
    room_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    substitution = relationship("Substitution", back_populates="periods")
