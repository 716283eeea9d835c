"""Staff directory read model. Owned by the HR side; the scheduling services only query it."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from app.core.enums import StaffType
from app.db.session import Base


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)  # login account, when the staff member has one
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    staff_type = Column(String(20), nullable=False, default=StaffType.TEACHING.value)  # teaching | non_teaching
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    department_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name
