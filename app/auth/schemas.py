from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Authenticated caller as carried by the access token.
    tenant_id scopes every query; branch_id is the caller's home branch when the token has one.
    """

    id: UUID
    tenant_id: UUID
    role: str
    branch_id: Optional[UUID] = None
    permissions: List[str] = Field(default_factory=list)  # "module:action", e.g. "timetables:publish"

    def has_permission(self, module: str, action: str) -> bool:
        return f"{module}:{action}" in self.permissions or f"{module}:*" in self.permissions
