"""Timetable (source of truth). One weekly grid per section/academic year; only one published at a time."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.core.enums import TimetableStatus
from app.db.session import Base

_PUBLISHED = text("status = 'published'")


class Timetable(Base):
    __tablename__ = "timetables"
    __table_args__ = (
        # At most one published timetable per section and academic year
        Index(
            "uq_published_timetable",
            "section_id",
            "academic_year_id",
            unique=True,
            postgresql_where=_PUBLISHED,
            sqlite_where=_PUBLISHED,
        ),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    section_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    academic_year_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=TimetableStatus.DRAFT.value)  # draft | published | archived
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    published_by = Column(UUID(as_uuid=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class TimetableEntry(Base):
    """One cell of the weekly grid: (day_of_week, period_slot) -> subject/teacher/room."""

    __tablename__ = "timetable_entries"
    __table_args__ = (
        UniqueConstraint("timetable_id", "day_of_week", "period_slot_id", name="uq_timetable_entry"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_timetable_entry_dow"),
        Index("ix_timetable_entries_teacher_day_slot", "teacher_id", "day_of_week", "period_slot_id"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    timetable_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    period_slot_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.period_slots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    subject_id = Column(UUID(as_uuid=True), nullable=True)
    teacher_id = Column(UUID(as_uuid=True), nullable=True)
    room_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    is_free_period = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
