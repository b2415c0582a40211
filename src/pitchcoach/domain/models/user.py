from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr


class UserRole(str, Enum):
    TRAINEE = "trainee"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def sees_whole_organization(self) -> bool:
        return self in (UserRole.ADMIN, UserRole.MANAGER)


class User(BaseModel):
    id: UUID
    email: EmailStr
    role: UserRole
    # Organization that this user belongs to.
    tenant_id: str
